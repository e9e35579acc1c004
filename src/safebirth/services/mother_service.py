"""Mother registration and lookup service."""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import parse_risk_level
from safebirth.domain.enums import Language, RiskLevel
from safebirth.domain.models import Mother, utcnow
from safebirth.services.errors import ValidationError
from safebirth.services.phone import is_valid_phone, mask_phone

logger = logging.getLogger(__name__)


class MotherService:
    """Creates, updates and finds mothers keyed by phone number."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_phone(self, phone: str) -> Mother | None:
        result = await self.db.execute(select(Mother).where(Mother.phone == phone))
        return result.scalar_one_or_none()

    async def register(
        self,
        phone: str,
        camp: str | None,
        zone: str | None,
        language: Language = Language.ENGLISH,
        *,
        name: str | None = None,
        age: int | None = None,
        due_date: date | None = None,
        risk_level: RiskLevel | None = None,
        prev_complications: bool | None = None,
    ) -> Mother:
        """Register a mother, or update the existing record for this phone.

        Camp and zone are required. An explicit ``risk_level`` wins; otherwise
        a known ``prev_complications`` flag sets the tier (True -> HIGH).

        Raises:
            ValidationError: camp/zone missing or the phone number is invalid.
        """
        if not camp:
            raise ValidationError("camp_required_mother")
        if not zone:
            raise ValidationError("zone_required_mother")
        if not is_valid_phone(phone):
            raise ValidationError("invalid_phone")

        mother = await self.get_by_phone(phone)
        is_new = mother is None
        if is_new:
            mother = Mother(phone=phone)
            self.db.add(mother)

        mother.camp = camp
        mother.zone = zone
        mother.preferred_language = language
        if name:
            mother.name = name
        if age is not None:
            mother.age = age
        if due_date is not None:
            mother.due_date = due_date
        if prev_complications is not None:
            mother.prev_complications = prev_complications

        if risk_level is not None:
            mother.risk_level = risk_level
        elif prev_complications:
            mother.risk_level = RiskLevel.HIGH
        elif is_new:
            mother.risk_level = parse_risk_level(None)

        mother.last_contact_at = utcnow()
        await self.db.flush()

        logger.info(
            "%s mother %s: phone=%s camp=%s zone=%s risk=%s",
            "Registered" if is_new else "Updated",
            mother.formatted_id,
            mask_phone(phone),
            camp,
            zone,
            RiskLevel(mother.risk_level).value,
        )
        return mother

    async def record_contact(self, mother: Mother) -> None:
        mother.last_contact_at = utcnow()
        await self.db.flush()
