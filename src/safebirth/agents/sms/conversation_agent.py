"""Conversation Agent: LLM fallback for messages the command grammar cannot parse.

Selects the phase-specific prompt, sends the recent transcript as chat
history and parses the model's JSON-shaped reply. Never raises: an
unconfigured or failing model degrades to a fixed apology reply with
``is_complete=False`` so the dialogue stays open for the next turn.
"""

import json
import logging

from safebirth.agents.base import NOT_CONFIGURED, BaseAgent
from safebirth.agents.prompts.conversation import (
    BASE_PROMPT,
    GENERAL_PROMPT,
    MOTHER_HELP_REQUEST_PROMPT,
    MOTHER_REGISTRATION_PROMPT,
    ROLE_DETECTION_PROMPT,
    VOLUNTEER_REGISTRATION_PROMPT,
)
from safebirth.app.config import get_settings
from safebirth.domain.enums import AssistantAction, ConversationPhase, Language

from .contracts import AssistantReply
from .reply_templates import render

logger = logging.getLogger(__name__)

RAW_REPLY_LIMIT = 300

_PHASE_PROMPTS = {
    ConversationPhase.ROLE_DETECTION: ROLE_DETECTION_PROMPT,
    ConversationPhase.MOTHER_REGISTRATION: MOTHER_REGISTRATION_PROMPT,
    ConversationPhase.VOLUNTEER_REGISTRATION: VOLUNTEER_REGISTRATION_PROMPT,
    ConversationPhase.HELP_REQUEST: MOTHER_HELP_REQUEST_PROMPT,
    ConversationPhase.GENERAL: GENERAL_PROMPT,
}

_TRUE_STRINGS = {"true", "yes", "y", "1", "نعم"}


def parse_bool(value) -> bool:
    """Lenient boolean: accepts true/yes/1/نعم (any case) as well as real bools."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_STRINGS


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def first_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _reply_from_dict(data: dict) -> AssistantReply:
    extracted = data.get("extracted_data")
    if not isinstance(extracted, dict):
        extracted = {}

    action = None
    raw_action = data.get("action")
    if raw_action:
        try:
            action = AssistantAction(str(raw_action).strip().upper())
        except ValueError:
            logger.warning("Ignoring unknown assistant action %r", raw_action)

    return AssistantReply(
        reply=str(data.get("reply") or "").strip(),
        extracted_data=extracted,
        is_complete=parse_bool(data.get("is_complete")),
        action=action,
    )


def parse_assistant_reply(raw: str | None) -> AssistantReply:
    """Parse the model output into an AssistantReply.

    1. Strict ``json.loads`` of the whole text.
    2. Otherwise the first balanced ``{...}`` substring.
    3. Otherwise the raw text itself becomes the reply, ``is_complete=False``.
    """
    text = (raw or "").strip()

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return _reply_from_dict(data)
    except (json.JSONDecodeError, TypeError):
        pass

    candidate = first_balanced_object(text)
    if candidate is not None:
        try:
            data = json.loads(candidate)
            if isinstance(data, dict):
                return _reply_from_dict(data)
        except json.JSONDecodeError:
            pass

    logger.warning("Assistant reply was not JSON, using raw text (%d chars)", len(text))
    return AssistantReply(reply=text[:RAW_REPLY_LIMIT], is_complete=False, degraded=True)


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

def _format_history(history: list[dict]) -> str:
    if not history:
        return "(none)"
    lines = []
    for entry in history:
        speaker = "Assistant" if entry.get("role") == "assistant" else "User"
        lines.append(f"{speaker}: {entry.get('content', '')}")
    return "\n".join(lines)


class ConversationAgent(BaseAgent):
    """Delegates free-text understanding to Gemini, one phase prompt per dialogue phase."""

    def __init__(self):
        super().__init__(agent_name="conversation_agent")

    def build_system_prompt(
        self,
        phase: ConversationPhase,
        message: str,
        language: Language,
        collected_data: dict | None = None,
        history: list[dict] | None = None,
        profile: dict | None = None,
    ) -> str:
        """Base instructions + the phase template with profile and transcript filled in."""
        profile = profile or {}
        language_name = "Arabic" if language == Language.ARABIC else "English"
        context = _PHASE_PROMPTS[ConversationPhase(phase)].format(
            language=language_name,
            message=message,
            collected_data=json.dumps(collected_data or {}, ensure_ascii=False),
            message_history=_format_history(history or []),
            age=profile.get("age") or "unknown",
            due_date=profile.get("due_date") or "unknown",
            prev_complications=profile.get("prev_complications", "unknown"),
            camp=profile.get("camp") or "unknown",
            zone=profile.get("zone") or "unknown",
        )
        return BASE_PROMPT.format(language=language_name) + "\n\n" + context

    async def respond(
        self,
        phase: ConversationPhase,
        message: str,
        language: Language,
        collected_data: dict | None = None,
        history: list[dict] | None = None,
        profile: dict | None = None,
    ) -> AssistantReply:
        """Run one dialogue turn through the model.

        Args:
            phase: Current dialogue phase; picks the prompt template.
            message: The sender's new message (original text, not canonical).
            language: Detected or stored sender language.
            collected_data: Fields gathered in earlier turns.
            history: Transcript as ``[{"role": "user"|"assistant", "content": ...}]``.
            profile: Known mother profile fields for the help-request phase.

        Returns:
            An AssistantReply. On any failure ``degraded`` is True and
            ``is_complete`` is False.
        """
        history = (history or [])[-get_settings().conversation_history_limit:]
        system_prompt = self.build_system_prompt(
            phase, message, language, collected_data, history, profile,
        )
        messages = [
            {
                "role": "model" if entry.get("role") == "assistant" else "user",
                "parts": [entry.get("content", "")],
            }
            for entry in history
        ]
        messages.append({"role": "user", "parts": [message]})

        result = await self.chat(messages, system_instruction=system_prompt, json_mode=True)

        if not result.ok:
            key = "assistant_unavailable" if result.error == NOT_CONFIGURED else "assistant_error"
            return AssistantReply(reply=render(key, language), is_complete=False, degraded=True)

        reply = parse_assistant_reply(result.data)
        if not reply.reply:
            reply.reply = render("assistant_error", language)
        return reply
