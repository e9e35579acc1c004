"""Command Matcher: DETERMINISTIC only, no LLM calls.

Ordered regex rules over the canonical (normalized) text. The first rule
that matches decides the command; registration commands additionally pull
named fields out with field-scoped sub-patterns.
"""

import logging
import re
from datetime import date

from safebirth.domain.enums import CommandKind, RiskLevel, SkillType

from .contracts import ParsedCommand

logger = logging.getLogger(__name__)

CASE_PREFIX = "HR-"

# ---------------------------------------------------------------------------
# Command rules (order matters: first match wins)
# ---------------------------------------------------------------------------

_CASE_REF = r"(?:\s+(?:HR-?)?(\d+))?"

COMMAND_RULES: list[tuple[CommandKind, re.Pattern]] = [
    (CommandKind.REGISTER_MOTHER, re.compile(r"^REG(?:ISTER)?\s+MOTHER\b", re.IGNORECASE)),
    (CommandKind.REGISTER_VOLUNTEER, re.compile(r"^REG(?:ISTER)?\s+VOLUNTEER\b", re.IGNORECASE)),
    (CommandKind.EMERGENCY, re.compile(r"^(?:EMERGENCY|SOS|URGENT)$", re.IGNORECASE)),
    (CommandKind.SUPPORT, re.compile(r"^SUPPORT$", re.IGNORECASE)),
    (CommandKind.ACCEPT, re.compile(r"^ACCEPT" + _CASE_REF + r"$", re.IGNORECASE)),
    (CommandKind.COMPLETE, re.compile(r"^(?:COMPLETE|DONE)" + _CASE_REF + r"$", re.IGNORECASE)),
    (CommandKind.CANCEL, re.compile(r"^CANCEL" + _CASE_REF + r"$", re.IGNORECASE)),
    (CommandKind.AVAILABLE, re.compile(r"^AVAILABLE$", re.IGNORECASE)),
    (CommandKind.BUSY, re.compile(r"^BUSY$", re.IGNORECASE)),
    (CommandKind.OFFLINE, re.compile(r"^(?:OFFLINE|UNAVAILABLE)$", re.IGNORECASE)),
    (CommandKind.STATUS, re.compile(r"^STATUS$", re.IGNORECASE)),
    (CommandKind.HELP, re.compile(r"^HELP$", re.IGNORECASE)),
]

_CASE_COMMANDS = {CommandKind.ACCEPT, CommandKind.COMPLETE, CommandKind.CANCEL}

# ---------------------------------------------------------------------------
# Field sub-patterns
# ---------------------------------------------------------------------------

# A field value stops before the next field keyword or at end of string
_FIELD_STOP = r"(?=\s+(?:CAMP|ZONE|DUE|RISK|NAME|SKILL)\b|\s*$)"
_WORDS = r"([\w'-]+(?:\s+[\w'-]+)*?)"

CAMP_PATTERN = re.compile(r"\bCAMP\s+" + _WORDS + _FIELD_STOP, re.IGNORECASE)
ZONE_PATTERN = re.compile(
    r"\bZONE\s+([\w-]+(?:\s*,\s*[\w-]+|\s+[\w-]+)*?)" + _FIELD_STOP, re.IGNORECASE
)
NAME_PATTERN = re.compile(r"\bNAME\s+" + _WORDS + _FIELD_STOP, re.IGNORECASE)
DUE_PATTERN = re.compile(
    r"\bDUE\s+(\d{1,2})[/-](\d{1,2})(?:[/-](\d{4}|\d{2}))?(?![/-]?\d)", re.IGNORECASE
)
RISK_PATTERN = re.compile(r"\bRISK\s+(\w+)", re.IGNORECASE)
SKILL_PATTERN = re.compile(r"\bSKILL\s+(\w+)", re.IGNORECASE)

_ZONE_SPLIT = re.compile(r"[,،\s]+")

SKILL_ALIASES: dict[str, SkillType] = {
    "MIDWIFE": SkillType.MIDWIFE,
    "NURSE": SkillType.NURSE,
    "TRAINED": SkillType.TRAINED_ATTENDANT,
    "TRAINED_ATTENDANT": SkillType.TRAINED_ATTENDANT,
    "TBA": SkillType.TRAINED_ATTENDANT,
    "CHW": SkillType.COMMUNITY_HEALTH_WORKER,
    "COMMUNITY_HEALTH": SkillType.COMMUNITY_HEALTH_WORKER,
    "COMMUNITY_HEALTH_WORKER": SkillType.COMMUNITY_HEALTH_WORKER,
    "HEALTH_WORKER": SkillType.COMMUNITY_HEALTH_WORKER,
    "COMMUNITY": SkillType.COMMUNITY_VOLUNTEER,
    "COMMUNITY_VOLUNTEER": SkillType.COMMUNITY_VOLUNTEER,
    "VOLUNTEER": SkillType.COMMUNITY_VOLUNTEER,
}


# ---------------------------------------------------------------------------
# Case codes
# ---------------------------------------------------------------------------

def format_case_code(number: int) -> str:
    """``7`` -> ``HR-0007``."""
    return f"{CASE_PREFIX}{number:04d}"


def normalize_case_code(value: str | None) -> str | None:
    """Accept ``42``, ``HR42`` or ``hr-0042`` and return ``HR-0042``."""
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if not digits:
        return None
    return format_case_code(int(digits))


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_risk_level(value: str | None) -> RiskLevel:
    """Map free text onto RiskLevel, defaulting to LOW."""
    if value:
        try:
            return RiskLevel(value.strip().upper())
        except ValueError:
            pass
    logger.warning("Unrecognised risk level %r, falling back to LOW", value)
    return RiskLevel.LOW


def parse_skill_type(value: str | None) -> SkillType:
    """Map free text onto SkillType, defaulting to the lowest-priority skill."""
    if value:
        key = re.sub(r"[\s-]+", "_", value.strip().upper())
        if key in SKILL_ALIASES:
            return SKILL_ALIASES[key]
    logger.warning("Unrecognised skill %r, falling back to COMMUNITY_VOLUNTEER", value)
    return SkillType.COMMUNITY_VOLUNTEER


def parse_zones(value: str | None) -> list[str]:
    """Split ``"3, 4 5"`` into ``["3", "4", "5"]`` keeping order, dropping duplicates."""
    if not value:
        return []
    zones: list[str] = []
    for zone in _ZONE_SPLIT.split(value.strip()):
        if zone and zone not in zones:
            zones.append(zone)
    return zones


def parse_due_date(value: str | None, today: date | None = None) -> date | None:
    """Parse a ``d-m-yyyy`` (or ``d/m/yy``) due date.

    A date already in the past is assumed to mean next year.
    """
    if not value:
        return None
    today = today or date.today()
    parts = re.split(r"[/-]", value.strip())
    try:
        day, month = int(parts[0]), int(parts[1])
        if len(parts) > 2 and len(parts[2]) not in (2, 4):
            raise ValueError(f"year must have 2 or 4 digits: {parts[2]}")
        year = int(parts[2]) if len(parts) > 2 else today.year
        if year < 100:
            year += 2000
        due = date(year, month, day)
    except (ValueError, IndexError):
        logger.warning("Invalid due date %r", value)
        return None

    if due < today:
        try:
            due = due.replace(year=due.year + 1)
        except ValueError:  # 29 Feb
            due = date(due.year + 1, 3, 1)
    return due


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def _extract_due(text: str) -> str | None:
    m = DUE_PATTERN.search(text)
    if not m:
        return None
    day, month, year = m.group(1), m.group(2), m.group(3)
    if not year:
        year = str(date.today().year)
    elif len(year) == 2:
        year = "20" + year
    return f"{int(day)}-{int(month)}-{year}"


def _extract_registration_fields(kind: CommandKind, text: str) -> dict[str, str]:
    fields: dict[str, str] = {}

    if m := CAMP_PATTERN.search(text):
        fields["camp"] = m.group(1).strip()

    if m := ZONE_PATTERN.search(text):
        zone = m.group(1).strip()
        if kind == CommandKind.REGISTER_VOLUNTEER:
            fields["zones"] = ",".join(parse_zones(zone))
            fields["zone"] = fields["zones"]
        else:
            fields["zone"] = zone

    if m := NAME_PATTERN.search(text):
        fields["name"] = m.group(1).strip()

    if kind == CommandKind.REGISTER_MOTHER:
        if due := _extract_due(text):
            fields["due"] = due
        if m := RISK_PATTERN.search(text):
            fields["risk"] = m.group(1).upper()
    else:
        if m := SKILL_PATTERN.search(text):
            fields["skill"] = m.group(1).upper()

    return fields


def match_command(text: str) -> ParsedCommand:
    """Match canonical ``text`` against the ordered command rules.

    Returns a ParsedCommand with ``kind=UNKNOWN`` when nothing matches.
    """
    text = (text or "").strip()
    if not text:
        return ParsedCommand(raw_text=text)

    for kind, pattern in COMMAND_RULES:
        m = pattern.search(text)
        if not m:
            continue

        fields: dict[str, str] = {}
        if kind in (CommandKind.REGISTER_MOTHER, CommandKind.REGISTER_VOLUNTEER):
            fields = _extract_registration_fields(kind, text)
        elif kind in _CASE_COMMANDS and m.group(1):
            fields["case_id"] = normalize_case_code(m.group(1))

        logger.debug("Matched %s with fields %s", kind.value, sorted(fields))
        return ParsedCommand(kind=kind, fields=fields, raw_text=text)

    return ParsedCommand(raw_text=text)
