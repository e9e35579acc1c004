"""Matching & notification engine.

Given a freshly created help request, finds the AVAILABLE volunteers who
may handle it, orders them by skill priority and sends each a bilingual
SMS alert.

Eligibility comes from exactly one of two registration models, resolved
once per volunteer into a tagged variant:

- ``ZoneSkill``: ranked skill + covered zones; eligible when the request's
  zone is one of the volunteer's zones.
- ``CapabilityFlags``: per-category flags; eligible when the flag for the
  request category is set. OTHER and the EMERGENCY/SUPPORT catch-alls
  accept any volunteer with at least one flag.

Ranking: skill priority ascending (midwife=1 ... community volunteer=5),
then earliest registration, then lowest id.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.reply_templates import (
    due_label,
    render,
    request_type_label,
    risk_label,
)
from safebirth.domain.enums import (
    AvailabilityStatus,
    Language,
    RequestCategory,
    RequestStatus,
    SkillType,
)
from safebirth.domain.models import HelpRequest, Volunteer, VolunteerResponse, utcnow
from safebirth.services.help_request_service import HelpRequestService
from safebirth.services.phone import mask_phone

logger = logging.getLogger(__name__)

_CATCH_ALL_CATEGORIES = {
    RequestCategory.OTHER,
    RequestCategory.EMERGENCY,
    RequestCategory.SUPPORT,
}


# ---------------------------------------------------------------------------
# Eligibility model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ZoneSkill:
    skill: SkillType
    zones: frozenset[str]

    def allows(self, request: HelpRequest) -> bool:
        return request.zone is not None and request.zone in self.zones


@dataclass(frozen=True)
class CapabilityFlags:
    flags: frozenset[RequestCategory]

    def allows(self, request: HelpRequest) -> bool:
        category = RequestCategory(request.category)
        if category in _CATCH_ALL_CATEGORIES:
            return bool(self.flags)
        return category in self.flags


EligibilityModel = ZoneSkill | CapabilityFlags


def resolve_eligibility(volunteer: Volunteer) -> EligibilityModel | None:
    """Resolve which registration model governs ``volunteer``, or None if neither."""
    flags = frozenset(RequestCategory(c) for c in (volunteer.capabilities or []))
    if flags:
        return CapabilityFlags(flags=flags)
    if volunteer.skill is not None and volunteer.zones:
        return ZoneSkill(skill=SkillType(volunteer.skill), zones=frozenset(volunteer.zones))
    return None


def skill_priority(volunteer: Volunteer) -> int:
    skill = SkillType(volunteer.skill) if volunteer.skill else SkillType.COMMUNITY_VOLUNTEER
    return skill.priority


def _rank_key(volunteer: Volunteer) -> tuple[int, datetime, int]:
    return (
        skill_priority(volunteer),
        volunteer.registered_at or datetime.max,
        volunteer.id or 0,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MatchingService:
    """Finds, ranks and alerts volunteers for a help request."""

    def __init__(self, db: AsyncSession, sms_service):
        self.db = db
        self.sms_service = sms_service

    async def find_eligible(self, request: HelpRequest) -> list[Volunteer]:
        """AVAILABLE volunteers whose eligibility model allows ``request``, best first."""
        result = await self.db.execute(
            select(Volunteer).where(Volunteer.availability == AvailabilityStatus.AVAILABLE)
        )
        eligible = []
        for volunteer in result.scalars():
            model = resolve_eligibility(volunteer)
            if model is not None and model.allows(request):
                eligible.append(volunteer)

        eligible.sort(key=_rank_key)
        logger.info(
            "Found %d eligible volunteer(s) for %s (zone=%s, category=%s)",
            len(eligible),
            request.case_code,
            request.zone,
            RequestCategory(request.category).value,
        )
        return eligible

    def format_alert(self, volunteer: Volunteer, request: HelpRequest) -> str:
        """Alert SMS in the volunteer's own language."""
        language = Language(volunteer.preferred_language or Language.ENGLISH)
        mother_phone = mask_phone(request.mother.phone if request.mother else None)
        return render(
            "volunteer_alert",
            language,
            request_type_label(request.is_emergency, language),
            request.zone or "-",
            risk_label(request.risk_level, language),
            due_label(request.due_date, language),
            mother_phone,
            request.case_code,
        )

    async def match_and_notify(self, request: HelpRequest) -> list[Volunteer]:
        """Alert every eligible volunteer in priority order.

        The alert counter counts attempts, not deliveries: a failed send is
        logged and still counted. No eligible volunteers is not an error,
        the case just stays PENDING.
        """
        volunteers = await self.find_eligible(request)
        if not volunteers:
            logger.warning("No volunteers available for %s in zone %s", request.case_code, request.zone)
            return []

        requests = HelpRequestService(self.db)
        notified = []
        for volunteer in volunteers:
            try:
                result = await self.sms_service.send_sms(
                    volunteer.phone, self.format_alert(volunteer, request),
                )
                if isinstance(result, dict) and result.get("ok") is False:
                    logger.warning(
                        "Alert for %s to %s not delivered: %s",
                        request.case_code,
                        mask_phone(volunteer.phone),
                        result.get("error"),
                    )
            except Exception as exc:
                logger.error(
                    "Failed to alert %s (%s) for %s: %s",
                    volunteer.formatted_id,
                    mask_phone(volunteer.phone),
                    request.case_code,
                    exc,
                )
            await requests.increment_alerts_sent(request, volunteer)
            notified.append(volunteer)

        logger.info("Alerted %d volunteer(s) for %s", len(notified), request.case_code)
        return notified

    # ------------------------------------------------------------------
    # ETA responses
    # ------------------------------------------------------------------

    async def record_eta(self, volunteer: Volunteer, eta_minutes: int) -> VolunteerResponse | None:
        """Attach an ETA reply to the newest PENDING case that alerted this volunteer.

        Returns None when no such case exists. Responses are stored for a
        later selection step; nothing here assigns the case.
        """
        result = await self.db.execute(
            select(HelpRequest)
            .where(HelpRequest.status == RequestStatus.PENDING)
            .order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc())
        )
        target = next(
            (r for r in result.scalars() if volunteer.id in (r.alerted_volunteer_ids or [])),
            None,
        )
        if target is None:
            return None

        response = VolunteerResponse(
            case_code=target.case_code,
            volunteer_id=volunteer.id,
            eta_minutes=eta_minutes,
            responded_at=utcnow(),
            selected=False,
        )
        self.db.add(response)
        await self.db.flush()
        logger.info(
            "Volunteer %s offered ETA %d min for %s",
            volunteer.formatted_id,
            eta_minutes,
            target.case_code,
        )
        return response

    async def responses_for(self, case_code: str) -> list[VolunteerResponse]:
        """ETA offers for ``case_code``, fastest first."""
        result = await self.db.execute(
            select(VolunteerResponse)
            .where(VolunteerResponse.case_code == case_code)
            .order_by(VolunteerResponse.eta_minutes, VolunteerResponse.responded_at)
        )
        return list(result.scalars().all())
