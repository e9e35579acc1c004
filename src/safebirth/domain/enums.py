"""Domain enumerations for the SafeBirth SMS core.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class Language(str, Enum):
    """Reply locale. English is the default; Arabic is detected from script."""

    ENGLISH = "ENGLISH"
    ARABIC = "ARABIC"


class RiskLevel(str, Enum):
    """Pregnancy risk tier of a mother."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SkillType(str, Enum):
    """Ranked volunteer skill. Lower priority number is matched first."""

    MIDWIFE = "MIDWIFE"
    NURSE = "NURSE"
    TRAINED_ATTENDANT = "TRAINED_ATTENDANT"
    COMMUNITY_HEALTH_WORKER = "COMMUNITY_HEALTH_WORKER"
    COMMUNITY_VOLUNTEER = "COMMUNITY_VOLUNTEER"

    @property
    def priority(self) -> int:
        return _SKILL_PRIORITY[self]


_SKILL_PRIORITY = {
    SkillType.MIDWIFE: 1,
    SkillType.NURSE: 2,
    SkillType.TRAINED_ATTENDANT: 3,
    SkillType.COMMUNITY_HEALTH_WORKER: 4,
    SkillType.COMMUNITY_VOLUNTEER: 5,
}


class AvailabilityStatus(str, Enum):
    """Whether a volunteer receives new alerts."""

    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


class RequestCategory(str, Enum):
    """What a help request is about.

    EMERGENCY and SUPPORT are the catch-alls raised by the terse SMS
    commands; the rest come from dialogue classification.
    """

    LABOR = "LABOR"
    BLEEDING = "BLEEDING"
    PAIN_FEVER = "PAIN_FEVER"
    BABY_MOVEMENT = "BABY_MOVEMENT"
    ADVICE = "ADVICE"
    OTHER = "OTHER"
    EMERGENCY = "EMERGENCY"
    SUPPORT = "SUPPORT"

    @property
    def is_emergency(self) -> bool:
        return self in (
            RequestCategory.EMERGENCY,
            RequestCategory.LABOR,
            RequestCategory.BLEEDING,
            RequestCategory.PAIN_FEVER,
            RequestCategory.BABY_MOVEMENT,
        )


class RequestStatus(str, Enum):
    """Lifecycle of a help request (case)."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ESCALATED = "ESCALATED"  # reserved for aging logic, never entered today


ACTIVE_REQUEST_STATUSES = frozenset({
    RequestStatus.PENDING,
    RequestStatus.ACCEPTED,
    RequestStatus.IN_PROGRESS,
})


class RequestActor(str, Enum):
    """Who is driving a help-request transition."""

    MOTHER = "MOTHER"
    VOLUNTEER = "VOLUNTEER"
    SYSTEM = "SYSTEM"


class ConversationPhase(str, Enum):
    """Which prompt template drives the current dialogue."""

    ROLE_DETECTION = "ROLE_DETECTION"
    MOTHER_REGISTRATION = "MOTHER_REGISTRATION"
    VOLUNTEER_REGISTRATION = "VOLUNTEER_REGISTRATION"
    HELP_REQUEST = "HELP_REQUEST"
    GENERAL = "GENERAL"


class ConversationStatus(str, Enum):
    """Lifecycle of a persisted dialogue."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class CommandKind(str, Enum):
    """Commands recognised by the deterministic SMS grammar."""

    REGISTER_MOTHER = "REGISTER_MOTHER"
    REGISTER_VOLUNTEER = "REGISTER_VOLUNTEER"
    EMERGENCY = "EMERGENCY"
    SUPPORT = "SUPPORT"
    ACCEPT = "ACCEPT"
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"
    STATUS = "STATUS"
    HELP = "HELP"
    UNKNOWN = "UNKNOWN"


class AssistantAction(str, Enum):
    """Finalize action the language model may request when a dialogue completes."""

    REGISTER_MOTHER = "REGISTER_MOTHER"
    REGISTER_VOLUNTEER = "REGISTER_VOLUNTEER"
    CREATE_HELP_REQUEST = "CREATE_HELP_REQUEST"
