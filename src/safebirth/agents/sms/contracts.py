"""Typed dataclasses for SMS understanding I/O contracts."""

from dataclasses import dataclass, field

from safebirth.domain.enums import AssistantAction, CommandKind, Language


@dataclass
class NormalizedMessage:
    """Output of the Normalizer."""
    language: Language = Language.ENGLISH
    text: str = ""  # canonical form, used for all pattern matching
    original: str = ""


@dataclass
class ParsedCommand:
    """Output of the deterministic Command Matcher."""
    kind: CommandKind = CommandKind.UNKNOWN
    fields: dict[str, str] = field(default_factory=dict)  # camp, zone, due, risk, name, skill, zones, case_id
    raw_text: str = ""

    @property
    def recognized(self) -> bool:
        return self.kind != CommandKind.UNKNOWN


@dataclass
class AssistantReply:
    """Parsed reply from the conversational language model.

    Mirrors the JSON contract ``{reply, extracted_data, is_complete, action}``.
    """
    reply: str = ""
    extracted_data: dict = field(default_factory=dict)
    is_complete: bool = False
    action: AssistantAction | None = None
    degraded: bool = False  # True when the reply is a fallback, not model output
