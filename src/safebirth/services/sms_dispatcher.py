"""SMS Dispatcher: single entry point for every inbound message.

Pipeline:

1. Normalize the phone, serialize on it, sweep expired dialogues
2. Normalizer (language + canonical text)
3. Command Matcher (deterministic)
4. Bare number from an idle volunteer -> ETA response
5. Recognised command -> Command Router
6. Anything else -> Conversation engine
7. Commit (one transaction per message)
"""

import asyncio
import logging
import re
import weakref
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import match_command
from safebirth.agents.sms.normalizer import normalize
from safebirth.agents.sms.reply_templates import render
from safebirth.domain.enums import CommandKind, Language
from safebirth.services.command_router import CommandRouter
from safebirth.services.conversation_service import ConversationService
from safebirth.services.matching_service import MatchingService
from safebirth.services.mother_service import MotherService
from safebirth.services.phone import mask_phone, normalize_phone
from safebirth.services.volunteer_service import VolunteerService

logger = logging.getLogger(__name__)

_ETA_PATTERN = re.compile(r"^[0-9]+$")

# One lock per sender so overlapping messages from a phone run one at a time.
# Entries disappear once no coroutine holds or waits on the lock.
_phone_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(phone: str) -> asyncio.Lock:
    lock = _phone_locks.get(phone)
    if lock is None:
        lock = asyncio.Lock()
        _phone_locks[phone] = lock
    return lock


@dataclass
class DispatchResult:
    """What the webhook needs to answer one inbound SMS."""
    reply: str
    command_kind: CommandKind = CommandKind.UNKNOWN
    language: Language = Language.ENGLISH
    parameters: dict = field(default_factory=dict)
    success: bool = True
    conversation_phase: str | None = None
    error: str | None = None


class SMSDispatcher:
    """Runs one inbound SMS through the whole pipeline."""

    def __init__(self, db: AsyncSession, sms_service, conversation_agent=None):
        self.db = db
        self.sms_service = sms_service
        self.conversation_agent = conversation_agent

    async def process_message(self, phone: str, body: str) -> DispatchResult:
        """Handle ``body`` from ``phone`` and return the reply to send back."""
        phone = normalize_phone(phone)
        async with _lock_for(phone):
            try:
                result = await self._process(phone, body)
                await self.db.commit()
                return result
            except Exception:
                logger.exception("Failed to process SMS from %s", mask_phone(phone))
                await self.db.rollback()
                language = normalize(body).language
                return DispatchResult(
                    reply=render("generic_error", language),
                    language=language,
                    success=False,
                    error="internal_error",
                )

    async def _process(self, phone: str, body: str) -> DispatchResult:
        conversations = ConversationService(self.db, self.sms_service, agent=self.conversation_agent)
        await conversations.expire_stale()

        message = normalize(body)
        command = match_command(message.text)
        logger.info(
            "Inbound SMS from %s: language=%s command=%s",
            mask_phone(phone), message.language.value, command.kind.value,
        )

        mothers = MotherService(self.db)
        volunteers = VolunteerService(self.db)
        volunteer = await volunteers.get_by_phone(phone)

        if volunteer is not None and not volunteer.current_case_code and _ETA_PATTERN.match(message.text):
            result = await self._record_eta(volunteer, int(message.text), message.language)
        elif command.recognized:
            route = await CommandRouter(self.db, self.sms_service).route(phone, command, message.language)
            result = DispatchResult(
                reply=route.reply,
                command_kind=command.kind,
                language=message.language,
                parameters=dict(command.fields),
                success=route.success,
            )
        else:
            mother = await mothers.get_by_phone(phone)
            outcome = await conversations.handle(
                phone, message.original, message.language, mother=mother, volunteer=volunteer,
            )
            result = DispatchResult(
                reply=outcome.reply,
                command_kind=CommandKind.UNKNOWN,
                language=message.language,
                parameters={"case_id": outcome.case_code} if outcome.case_code else {},
                success=outcome.success,
                conversation_phase=outcome.phase.value if outcome.phase else None,
            )

        mother = await mothers.get_by_phone(phone)
        if mother is not None:
            await mothers.record_contact(mother)
        return result

    async def _record_eta(self, volunteer, minutes: int, language: Language) -> DispatchResult:
        reply_language = Language(volunteer.preferred_language or language)
        response = await MatchingService(self.db, self.sms_service).record_eta(volunteer, minutes)
        if response is None:
            return DispatchResult(
                reply=render("eta_no_case", reply_language),
                language=language,
                parameters={"eta_minutes": str(minutes)},
                success=False,
            )
        return DispatchResult(
            reply=render("eta_recorded", reply_language),
            language=language,
            parameters={"eta_minutes": str(minutes), "case_id": response.case_code},
        )
