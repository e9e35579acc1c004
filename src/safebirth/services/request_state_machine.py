"""Help-request state machine: validates case transitions.

PENDING -> ACCEPTED -> IN_PROGRESS -> COMPLETED, any active status ->
CANCELLED. ESCALATED is reserved for future aging logic and is terminal.
"""

from safebirth.domain.enums import (
    ACTIVE_REQUEST_STATUSES,
    RequestActor,
    RequestStatus,
)
from safebirth.services.errors import DispatchError


class InvalidTransitionError(DispatchError):
    """Raised when a help-request state transition is not allowed."""

    def __init__(
        self,
        current_status: RequestStatus,
        target_status: RequestStatus,
        reason: str,
        case_code: str = "",
    ):
        self.current_status = RequestStatus(current_status)
        self.target_status = RequestStatus(target_status)
        self.reason = reason
        template_key = (
            "case_not_pending" if self.target_status == RequestStatus.ACCEPTED else "case_not_active"
        )
        super().__init__(
            template_key,
            case_code,
            detail=(
                f"Invalid transition from {self.current_status.value} to "
                f"{self.target_status.value}: {reason}"
            ),
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_actors}
# ---------------------------------------------------------------------------

S = RequestStatus
A = RequestActor

TRANSITION_MAP: dict[RequestStatus, dict[RequestStatus, set[RequestActor]]] = {
    S.PENDING: {
        S.ACCEPTED: {A.VOLUNTEER},
        S.COMPLETED: {A.VOLUNTEER, A.SYSTEM},
        S.CANCELLED: {A.MOTHER, A.VOLUNTEER, A.SYSTEM},
        S.ESCALATED: {A.SYSTEM},
    },
    S.ACCEPTED: {
        S.IN_PROGRESS: {A.VOLUNTEER, A.SYSTEM},
        S.COMPLETED: {A.VOLUNTEER, A.SYSTEM},
        S.CANCELLED: {A.MOTHER, A.VOLUNTEER, A.SYSTEM},
    },
    S.IN_PROGRESS: {
        S.COMPLETED: {A.VOLUNTEER, A.SYSTEM},
        S.CANCELLED: {A.MOTHER, A.VOLUNTEER, A.SYSTEM},
    },
    S.COMPLETED: {},
    S.CANCELLED: {},
    S.ESCALATED: {},
}

TERMINAL_STATES: set[RequestStatus] = {S.COMPLETED, S.CANCELLED, S.ESCALATED}

# Every active status may be completed or cancelled
CLOSABLE_STATES: frozenset[RequestStatus] = ACTIVE_REQUEST_STATUSES


def validate_transition(
    current_status: RequestStatus,
    target_status: RequestStatus,
    actor: RequestActor = RequestActor.SYSTEM,
    case_code: str = "",
) -> bool:
    """Return True if the transition is valid. Raise InvalidTransitionError if not."""
    current_status = RequestStatus(current_status)
    target_status = RequestStatus(target_status)

    allowed = TRANSITION_MAP.get(current_status, {})
    if target_status not in allowed:
        raise InvalidTransitionError(
            current_status,
            target_status,
            f"{target_status.value} is not reachable from {current_status.value}",
            case_code,
        )
    if actor not in allowed[target_status]:
        raise InvalidTransitionError(
            current_status,
            target_status,
            f"{actor.value} may not move a case to {target_status.value}",
            case_code,
        )
    return True
