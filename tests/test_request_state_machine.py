"""Unit tests for the help-request state machine."""

import pytest

from safebirth.domain.enums import RequestActor, RequestStatus
from safebirth.services.errors import DispatchError
from safebirth.services.request_state_machine import (
    CLOSABLE_STATES,
    TERMINAL_STATES,
    TRANSITION_MAP,
    InvalidTransitionError,
    validate_transition,
)

S = RequestStatus
A = RequestActor


# ---------------------------------------------------------------------------
# Test every valid transition in the transition map
# ---------------------------------------------------------------------------


class TestValidTransitions:
    """Every transition defined in TRANSITION_MAP should succeed for allowed actors."""

    @pytest.mark.parametrize(
        "from_status,to_status,actor",
        [
            (from_s, to_s, actor)
            for from_s, targets in TRANSITION_MAP.items()
            for to_s, actors in targets.items()
            for actor in actors
        ],
    )
    def test_all_valid_transitions(self, from_status, to_status, actor):
        assert validate_transition(from_status, to_status, actor) is True

    def test_accepts_string_values(self):
        assert validate_transition("PENDING", "ACCEPTED", A.VOLUNTEER) is True


class TestInvalidTransitions:

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    @pytest.mark.parametrize("target", list(S))
    def test_terminal_states_have_no_exits(self, terminal, target):
        with pytest.raises(InvalidTransitionError):
            validate_transition(terminal, target, A.SYSTEM)

    @pytest.mark.parametrize("from_status", [S.ACCEPTED, S.IN_PROGRESS])
    def test_accept_only_from_pending(self, from_status):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(from_status, S.ACCEPTED, A.VOLUNTEER, "HR-0001")
        assert exc_info.value.template_key == "case_not_pending"
        assert exc_info.value.args_for_template == ("HR-0001",)

    def test_closing_a_closed_case_names_it(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(S.COMPLETED, S.CANCELLED, A.MOTHER, "HR-0007")
        assert exc_info.value.template_key == "case_not_active"
        assert exc_info.value.current_status == S.COMPLETED
        assert exc_info.value.target_status == S.CANCELLED

    def test_mother_cannot_accept(self):
        with pytest.raises(InvalidTransitionError, match="MOTHER may not"):
            validate_transition(S.PENDING, S.ACCEPTED, A.MOTHER)

    def test_mother_cannot_complete(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(S.ACCEPTED, S.COMPLETED, A.MOTHER)

    def test_escalation_is_system_only(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(S.PENDING, S.ESCALATED, A.VOLUNTEER)

    def test_is_a_dispatch_error(self):
        assert issubclass(InvalidTransitionError, DispatchError)


class TestStateSets:

    def test_every_active_state_can_close(self):
        for status in CLOSABLE_STATES:
            assert S.COMPLETED in TRANSITION_MAP[status]
            assert S.CANCELLED in TRANSITION_MAP[status]

    def test_terminal_states(self):
        assert TERMINAL_STATES == {S.COMPLETED, S.CANCELLED, S.ESCALATED}
        for status in TERMINAL_STATES:
            assert TRANSITION_MAP[status] == {}

    def test_every_status_is_mapped(self):
        assert set(TRANSITION_MAP) == set(S)
