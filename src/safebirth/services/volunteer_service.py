"""Volunteer registration, availability and case-assignment service."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import parse_skill_type
from safebirth.domain.enums import AvailabilityStatus, Language, RequestCategory, SkillType
from safebirth.domain.models import Volunteer, utcnow
from safebirth.services.errors import ValidationError
from safebirth.services.phone import is_valid_phone, mask_phone

logger = logging.getLogger(__name__)


class VolunteerService:
    """Creates, updates and finds volunteers keyed by phone number."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_phone(self, phone: str) -> Volunteer | None:
        result = await self.db.execute(select(Volunteer).where(Volunteer.phone == phone))
        return result.scalar_one_or_none()

    async def register(
        self,
        phone: str,
        camp: str | None,
        zones: list[str],
        language: Language = Language.ENGLISH,
        *,
        name: str | None = None,
        skill: SkillType | None = None,
        profession: str | None = None,
        capabilities: list[RequestCategory] | None = None,
    ) -> Volunteer:
        """Register a volunteer, or update the existing record for this phone.

        Two registration models exist:

        - Command grammar: ``skill`` + ``zones``; capability flags are cleared
          so the record matches by zone and skill rank.
        - Dialogue: ``capabilities`` (request categories the volunteer can
          handle); zones are optional and the free-text profession has
          already been mapped to ``skill`` for ranking.

        The volunteer is AVAILABLE after registration.

        Raises:
            ValidationError: camp missing, zones missing for the zone model,
                or the phone number is invalid.
        """
        if not camp:
            raise ValidationError("camp_required_volunteer")
        if not zones and not capabilities:
            raise ValidationError("zone_required_volunteer")
        if not is_valid_phone(phone):
            raise ValidationError("invalid_phone")

        volunteer = await self.get_by_phone(phone)
        is_new = volunteer is None
        if is_new:
            volunteer = Volunteer(phone=phone, completed_cases=0)
            self.db.add(volunteer)

        volunteer.camp = camp
        volunteer.zones = list(zones)
        volunteer.preferred_language = language
        if skill is not None:
            volunteer.skill = skill
        elif is_new or volunteer.skill is None:
            volunteer.skill = parse_skill_type(None)
        volunteer.capabilities = [RequestCategory(c).value for c in (capabilities or [])]
        if name:
            volunteer.name = name
        if profession:
            volunteer.profession = profession
        if not volunteer.current_case_code:
            volunteer.availability = AvailabilityStatus.AVAILABLE
        volunteer.last_active_at = utcnow()
        await self.db.flush()

        logger.info(
            "%s volunteer %s: phone=%s camp=%s skill=%s zones=%s capabilities=%s",
            "Registered" if is_new else "Updated",
            volunteer.formatted_id,
            mask_phone(phone),
            camp,
            SkillType(volunteer.skill).value,
            volunteer.zones,
            volunteer.capabilities,
        )
        return volunteer

    async def set_availability(self, volunteer: Volunteer, status: AvailabilityStatus) -> Volunteer:
        volunteer.availability = status
        volunteer.last_active_at = utcnow()
        await self.db.flush()
        logger.info("Volunteer %s is now %s", volunteer.formatted_id, status.value)
        return volunteer

    def assign_case(self, volunteer: Volunteer, case_code: str) -> None:
        """Mark the volunteer BUSY on ``case_code`` (flushed with the request transition)."""
        volunteer.availability = AvailabilityStatus.BUSY
        volunteer.current_case_code = case_code
        volunteer.last_active_at = utcnow()

    def release_case(self, volunteer: Volunteer, completed: bool) -> None:
        """Clear the current case and make the volunteer AVAILABLE again."""
        volunteer.current_case_code = None
        volunteer.availability = AvailabilityStatus.AVAILABLE
        volunteer.last_active_at = utcnow()
        if completed:
            volunteer.completed_cases = (volunteer.completed_cases or 0) + 1
