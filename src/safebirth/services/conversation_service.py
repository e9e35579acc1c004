"""Conversation state store and LLM fallback engine for free-text SMS.

Handles every message the command grammar does not recognise. A dialogue
is one ConversationState row per phone (at most one ACTIVE at a time) that
accumulates the transcript and the fields the model has extracted. When
the model reports the data is complete, the phase's finalize action
registers the sender or raises a help request.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import parse_skill_type, parse_zones
from safebirth.agents.sms.contracts import AssistantReply
from safebirth.agents.sms.conversation_agent import parse_bool
from safebirth.agents.sms.reply_templates import render
from safebirth.app.config import get_settings
from safebirth.domain.enums import (
    AssistantAction,
    ConversationPhase,
    ConversationStatus,
    Language,
    RequestCategory,
)
from safebirth.domain.models import ConversationState, Mother, Volunteer, utcnow
from safebirth.services.errors import DispatchError, NotFoundError
from safebirth.services.help_request_service import HelpRequestService
from safebirth.services.matching_service import MatchingService
from safebirth.services.mother_service import MotherService
from safebirth.services.phone import mask_phone
from safebirth.services.volunteer_service import VolunteerService

logger = logging.getLogger(__name__)

_ROLE_PHASES = {
    "mother": ConversationPhase.MOTHER_REGISTRATION,
    "volunteer": ConversationPhase.VOLUNTEER_REGISTRATION,
}

# Action to run when the model completes a phase without naming one
_DEFAULT_ACTIONS = {
    ConversationPhase.MOTHER_REGISTRATION: AssistantAction.REGISTER_MOTHER,
    ConversationPhase.VOLUNTEER_REGISTRATION: AssistantAction.REGISTER_VOLUNTEER,
    ConversationPhase.HELP_REQUEST: AssistantAction.CREATE_HELP_REQUEST,
}

REQUEST_TYPES: dict[str, RequestCategory] = {
    "labor": RequestCategory.LABOR,
    "labour": RequestCategory.LABOR,
    "bleeding": RequestCategory.BLEEDING,
    "pain_fever": RequestCategory.PAIN_FEVER,
    "pain": RequestCategory.PAIN_FEVER,
    "fever": RequestCategory.PAIN_FEVER,
    "baby_movement": RequestCategory.BABY_MOVEMENT,
    "advice": RequestCategory.ADVICE,
}

CAPABILITY_FIELDS: dict[str, RequestCategory] = {
    "can_assist_labor": RequestCategory.LABOR,
    "can_assist_bleeding": RequestCategory.BLEEDING,
    "can_assist_pain_fever": RequestCategory.PAIN_FEVER,
    "can_assist_baby_movement": RequestCategory.BABY_MOVEMENT,
    "can_give_advice": RequestCategory.ADVICE,
}


@dataclass
class ConversationOutcome:
    """Result of one fallback turn."""
    reply: str
    phase: ConversationPhase | None = None
    completed: bool = False
    action: AssistantAction | None = None
    case_code: str | None = None
    success: bool = True


# ---------------------------------------------------------------------------
# Extracted-data helpers
# ---------------------------------------------------------------------------

def classify_request(data: dict) -> RequestCategory:
    """Map the model's ``request_type`` onto a category.

    Unknown types become EMERGENCY when the model flagged urgency, else OTHER.
    """
    raw = str(data.get("request_type") or "").strip().lower().replace(" ", "_").replace("-", "_")
    if raw in REQUEST_TYPES:
        return REQUEST_TYPES[raw]
    return RequestCategory.EMERGENCY if parse_bool(data.get("is_emergency")) else RequestCategory.OTHER


def _parse_int(value) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_iso_date(value) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.warning("Ignoring unparseable due date %r", value)
        return None


def _zone_list(value) -> list[str]:
    if isinstance(value, (list, tuple)):
        return parse_zones(",".join(str(z) for z in value))
    return parse_zones(str(value) if value is not None else None)


def _mother_profile(mother: Mother | None) -> dict:
    if mother is None:
        return {}
    profile = {
        "age": mother.age,
        "due_date": mother.due_date.isoformat() if mother.due_date else None,
        "prev_complications": mother.prev_complications,
        "camp": mother.camp,
        "zone": mother.zone,
    }
    return {key: value for key, value in profile.items() if value is not None}


class ConversationService:
    """Persists dialogues and runs the fallback engine turn by turn."""

    def __init__(self, db: AsyncSession, sms_service, agent=None):
        self.db = db
        self.sms_service = sms_service
        self._agent = agent

    def _get_agent(self):
        if self._agent is None:
            from safebirth.agents.sms.conversation_agent import ConversationAgent

            self._agent = ConversationAgent()
        return self._agent

    # ------------------------------------------------------------------
    # State store
    # ------------------------------------------------------------------

    async def expire_stale(self, now: datetime | None = None) -> int:
        """Mark ACTIVE dialogues idle for longer than the timeout as EXPIRED.

        Returns the number of rows expired. Safe to run before every message.
        """
        cutoff = (now or utcnow()) - timedelta(minutes=get_settings().conversation_timeout_minutes)
        result = await self.db.execute(
            select(ConversationState).where(
                ConversationState.status == ConversationStatus.ACTIVE,
                ConversationState.updated_at < cutoff,
            )
        )
        stale = list(result.scalars().all())
        if not stale:
            return 0

        for state in stale:
            state.status = ConversationStatus.EXPIRED
        await self.db.flush()
        logger.info("Expired %d idle conversation(s)", len(stale))
        return len(stale)

    async def get_active(self, phone: str) -> ConversationState | None:
        result = await self.db.execute(
            select(ConversationState).where(
                ConversationState.phone == phone,
                ConversationState.status == ConversationStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def start(
        self,
        phone: str,
        language: Language,
        phase: ConversationPhase = ConversationPhase.ROLE_DETECTION,
    ) -> ConversationState:
        now = utcnow()
        state = ConversationState(
            phone=phone,
            phase=phase,
            collected_data={},
            history=[],
            turn=0,
            language=language,
            status=ConversationStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.db.add(state)
        await self.db.flush()
        logger.info("Started %s conversation for %s", phase.value, mask_phone(phone))
        return state

    async def record_turn(
        self,
        state: ConversationState,
        user_text: str,
        reply: str,
        extracted: dict | None = None,
    ) -> ConversationState:
        """Append one user/assistant exchange and merge newly extracted fields.

        Later values overwrite earlier ones; ``None`` values never erase a
        field that is already known.
        """
        state.history = [
            *(state.history or []),
            {"role": "user", "content": user_text},
            {"role": "assistant", "content": reply},
        ]
        if extracted:
            state.collected_data = {
                **(state.collected_data or {}),
                **{key: value for key, value in extracted.items() if value is not None},
            }
        state.turn = (state.turn or 0) + 1
        state.updated_at = utcnow()
        await self.db.flush()
        return state

    async def complete(self, state: ConversationState) -> ConversationState:
        state.status = ConversationStatus.COMPLETED
        state.updated_at = utcnow()
        await self.db.flush()
        logger.info("Completed conversation %s for %s", state.id, mask_phone(state.phone))
        return state

    # ------------------------------------------------------------------
    # Fallback engine
    # ------------------------------------------------------------------

    async def handle(
        self,
        phone: str,
        text: str,
        language: Language,
        mother: Mother | None = None,
        volunteer: Volunteer | None = None,
    ) -> ConversationOutcome:
        """Run one free-text turn for ``phone``.

        An open dialogue is continued. Otherwise a registered mother starts
        a help-request dialogue, a registered volunteer gets a fixed hint,
        and anyone else starts with role detection.
        """
        state = await self.get_active(phone)
        if state is None:
            if mother is not None:
                state = await self.start(phone, language, ConversationPhase.HELP_REQUEST)
            elif volunteer is not None:
                return ConversationOutcome(reply=render("registered_volunteer_hint", language))
            else:
                state = await self.start(phone, language, ConversationPhase.ROLE_DETECTION)

        state.language = language
        phase = ConversationPhase(state.phase)
        profile = _mother_profile(mother) if phase == ConversationPhase.HELP_REQUEST else None

        answer: AssistantReply = await self._get_agent().respond(
            phase,
            text,
            language,
            dict(state.collected_data or {}),
            list(state.history or []),
            profile,
        )
        if answer.degraded:
            logger.warning("Conversation for %s got a degraded reply", mask_phone(phone))

        extracted = answer.extracted_data or {}
        if phase == ConversationPhase.ROLE_DETECTION:
            role = str(extracted.get("role") or "").strip().lower()
            if role in _ROLE_PHASES:
                state.phase = _ROLE_PHASES[role]
                logger.info("Conversation for %s switched to %s", mask_phone(phone), state.phase.value)

        if not answer.is_complete:
            await self.record_turn(state, text, answer.reply, extracted)
            return ConversationOutcome(reply=answer.reply, phase=ConversationPhase(state.phase))

        action = answer.action or _DEFAULT_ACTIONS.get(ConversationPhase(state.phase))
        if action is None:
            # Nothing to finalize yet, so the dialogue stays open
            logger.warning(
                "Conversation for %s marked complete in %s without an action",
                mask_phone(phone), ConversationPhase(state.phase).value,
            )
            await self.record_turn(state, text, answer.reply, extracted)
            return ConversationOutcome(reply=answer.reply, phase=ConversationPhase(state.phase))

        data = {
            **(state.collected_data or {}),
            **{key: value for key, value in extracted.items() if value is not None},
        }
        try:
            suffix, case_code = await self._finalize(action, phone, data, language, mother)
        except DispatchError as exc:
            # Dialogue stays open so the sender can supply the missing field
            logger.warning("Finalize %s failed for %s: %s", action, mask_phone(phone), exc)
            reply = render(exc.template_key, language, *exc.args_for_template)
            await self.record_turn(state, text, reply, extracted)
            return ConversationOutcome(
                reply=reply, phase=ConversationPhase(state.phase), action=action, success=False,
            )

        reply = answer.reply + suffix
        await self.record_turn(state, text, reply, extracted)
        await self.complete(state)
        return ConversationOutcome(
            reply=reply,
            phase=ConversationPhase(state.phase),
            completed=True,
            action=action,
            case_code=case_code,
        )

    async def _finalize(
        self,
        action: AssistantAction | None,
        phone: str,
        data: dict,
        language: Language,
        mother: Mother | None,
    ) -> tuple[str, str | None]:
        """Run the completion action. Returns (reply suffix, case code)."""
        if action == AssistantAction.REGISTER_MOTHER:
            await MotherService(self.db).register(
                phone,
                _str_or_none(data.get("camp")),
                _str_or_none(data.get("zone")),
                language,
                name=_str_or_none(data.get("name")),
                age=_parse_int(data.get("age")),
                due_date=_parse_iso_date(data.get("due_date")),
                prev_complications=(
                    parse_bool(data["prev_complications"])
                    if data.get("prev_complications") is not None else None
                ),
            )
            return "", None

        if action == AssistantAction.REGISTER_VOLUNTEER:
            profession = _str_or_none(data.get("profession"))
            capabilities = [
                category for field, category in CAPABILITY_FIELDS.items()
                if parse_bool(data.get(field))
            ]
            await VolunteerService(self.db).register(
                phone,
                _str_or_none(data.get("camp")),
                _zone_list(data.get("zones") or data.get("zone")),
                language,
                name=_str_or_none(data.get("name")),
                skill=parse_skill_type(profession) if profession else None,
                profession=profession,
                capabilities=capabilities,
            )
            return "", None

        if action == AssistantAction.CREATE_HELP_REQUEST:
            if mother is None:
                raise NotFoundError("not_registered_mother")
            request = await HelpRequestService(self.db).create_request(
                mother, classify_request(data), notes=_str_or_none(data.get("notes")),
            )
            notified = await MatchingService(self.db, self.sms_service).match_and_notify(request)
            return render("case_summary", language, request.case_code, len(notified)), request.case_code

        return "", None


def _str_or_none(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
