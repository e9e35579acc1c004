"""Help request (case) service: creation, case codes and lifecycle transitions."""

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import format_case_code
from safebirth.domain.enums import (
    ACTIVE_REQUEST_STATUSES,
    RequestActor,
    RequestCategory,
    RequestStatus,
)
from safebirth.domain.models import CaseSequence, HelpRequest, Mother, Volunteer, utcnow
from safebirth.services.phone import mask_phone
from safebirth.services.request_state_machine import validate_transition

logger = logging.getLogger(__name__)

CASE_SEQUENCE_NAME = "help_request"

_CASE_SUFFIX = re.compile(r"(\d+)$")


class HelpRequestService:
    """Creates help requests and drives them through their status lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Case codes
    # ------------------------------------------------------------------

    async def _max_existing_suffix(self) -> int:
        result = await self.db.execute(select(HelpRequest.case_code))
        highest = 0
        for code in result.scalars():
            m = _CASE_SUFFIX.search(code or "")
            if m:
                highest = max(highest, int(m.group(1)))
        return highest

    async def reserve_case_number(self) -> int:
        """Atomically reserve the next case number.

        The counter row is locked for the rest of the transaction, so two
        concurrent creators can never observe the same value. On first use
        the counter is seeded from the highest existing case suffix.
        """
        result = await self.db.execute(
            select(CaseSequence)
            .where(CaseSequence.name == CASE_SEQUENCE_NAME)
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()
        if sequence is None:
            sequence = CaseSequence(name=CASE_SEQUENCE_NAME, value=await self._max_existing_suffix())
            self.db.add(sequence)

        sequence.value = (sequence.value or 0) + 1
        await self.db.flush()
        return sequence.value

    async def generate_case_code(self) -> str:
        return format_case_code(await self.reserve_case_number())

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    async def create_request(
        self,
        mother: Mother,
        category: RequestCategory,
        notes: str | None = None,
    ) -> HelpRequest:
        """Open a PENDING case for ``mother``.

        Zone, risk and due date are copied from the mother now and are not
        refreshed if her profile changes later.
        """
        case_code = await self.generate_case_code()
        request = HelpRequest(
            case_code=case_code,
            mother=mother,
            mother_id=mother.id,
            category=category,
            status=RequestStatus.PENDING,
            zone=mother.zone,
            risk_level=mother.risk_level,
            due_date=mother.due_date,
            notes=notes,
            created_at=utcnow(),
            alerts_sent=0,
            alerted_volunteer_ids=[],
        )
        self.db.add(request)
        await self.db.flush()

        logger.info(
            "Created %s request %s for %s (zone=%s, mother=%s)",
            RequestCategory(category).value,
            case_code,
            mother.formatted_id,
            mother.zone,
            mask_phone(mother.phone),
        )
        return request

    async def get_by_case_code(self, case_code: str) -> HelpRequest | None:
        result = await self.db.execute(
            select(HelpRequest).where(HelpRequest.case_code == case_code)
        )
        return result.scalar_one_or_none()

    async def find_active_for_mother(self, mother: Mother) -> HelpRequest | None:
        """Most recent active case raised by ``mother``."""
        result = await self.db.execute(
            select(HelpRequest)
            .where(
                HelpRequest.mother_id == mother.id,
                HelpRequest.status.in_(list(ACTIVE_REQUEST_STATUSES)),
            )
            .order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_active_for_volunteer(self, volunteer: Volunteer) -> list[HelpRequest]:
        result = await self.db.execute(
            select(HelpRequest)
            .where(
                HelpRequest.accepted_by_id == volunteer.id,
                HelpRequest.status.in_(list(ACTIVE_REQUEST_STATUSES)),
            )
            .order_by(HelpRequest.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def accept(self, request: HelpRequest, volunteer: Volunteer) -> HelpRequest:
        """PENDING -> ACCEPTED by ``volunteer``.

        Raises:
            InvalidTransitionError: the case is not PENDING.
        """
        validate_transition(
            request.status, RequestStatus.ACCEPTED, RequestActor.VOLUNTEER, request.case_code,
        )
        request.status = RequestStatus.ACCEPTED
        request.accepted_by = volunteer
        request.accepted_by_id = volunteer.id
        request.accepted_at = utcnow()
        await self.db.flush()
        logger.info("Request %s accepted by %s", request.case_code, volunteer.formatted_id)
        return request

    async def start_progress(self, request: HelpRequest) -> HelpRequest:
        """ACCEPTED -> IN_PROGRESS."""
        validate_transition(
            request.status, RequestStatus.IN_PROGRESS, RequestActor.VOLUNTEER, request.case_code,
        )
        request.status = RequestStatus.IN_PROGRESS
        request.in_progress_at = utcnow()
        await self.db.flush()
        logger.info("Request %s in progress", request.case_code)
        return request

    async def complete(
        self, request: HelpRequest, actor: RequestActor = RequestActor.VOLUNTEER,
    ) -> HelpRequest:
        """Any active status -> COMPLETED."""
        validate_transition(request.status, RequestStatus.COMPLETED, actor, request.case_code)
        request.status = RequestStatus.COMPLETED
        request.closed_at = utcnow()
        await self.db.flush()
        logger.info("Request %s completed", request.case_code)
        return request

    async def cancel(
        self, request: HelpRequest, actor: RequestActor = RequestActor.SYSTEM,
    ) -> HelpRequest:
        """Any active status -> CANCELLED."""
        validate_transition(request.status, RequestStatus.CANCELLED, actor, request.case_code)
        request.status = RequestStatus.CANCELLED
        request.closed_at = utcnow()
        await self.db.flush()
        logger.info("Request %s cancelled by %s", request.case_code, actor.value)
        return request

    async def increment_alerts_sent(self, request: HelpRequest, volunteer: Volunteer) -> None:
        request.alerts_sent = (request.alerts_sent or 0) + 1
        request.alerted_volunteer_ids = [*(request.alerted_volunteer_ids or []), volunteer.id]
        await self.db.flush()
