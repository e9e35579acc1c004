"""SQLAlchemy ORM models for the SafeBirth SMS core.

Conventions:
- Integer surrogate keys for mothers, volunteers and requests (rendered as
  M-0001 / V-0001 / HR-0001 in SMS replies)
- String(36) UUIDs for conversation state rows
- DateTime for timestamps, naive UTC (no TIMESTAMPTZ)
- JSON columns for zone lists, capability flags and dialogue transcripts
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from safebirth.domain.enums import (
    ACTIVE_REQUEST_STATUSES,
    AvailabilityStatus,
    ConversationPhase,
    ConversationStatus,
    Language,
    RequestCategory,
    RequestStatus,
    RiskLevel,
    SkillType,
)
from safebirth.infra.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum(enum_cls, length: int = 30):
    return SAEnum(enum_cls, native_enum=False, length=length)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

class Mother(Base):
    __tablename__ = "mothers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=True)
    age = Column(Integer, nullable=True)
    camp = Column(String(50), nullable=True)
    zone = Column(String(20), nullable=True, index=True)
    due_date = Column(Date, nullable=True)
    prev_complications = Column(Boolean, default=False)
    risk_level = Column(_enum(RiskLevel), default=RiskLevel.LOW)
    preferred_language = Column(_enum(Language), default=Language.ENGLISH)
    registered_at = Column(DateTime, default=utcnow)
    last_contact_at = Column(DateTime, nullable=True)

    @property
    def formatted_id(self) -> str:
        return f"M-{self.id:04d}"


class Volunteer(Base):
    __tablename__ = "volunteers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=True)
    camp = Column(String(50), nullable=True)
    skill = Column(_enum(SkillType), nullable=True)
    profession = Column(String(50), nullable=True)  # free text from dialogue registration
    zones = Column(JSON, default=list)
    capabilities = Column(JSON, default=list)  # RequestCategory values
    availability = Column(_enum(AvailabilityStatus), default=AvailabilityStatus.AVAILABLE, index=True)
    current_case_code = Column(String(20), nullable=True)
    completed_cases = Column(Integer, default=0)
    preferred_language = Column(_enum(Language), default=Language.ENGLISH)
    registered_at = Column(DateTime, default=utcnow)
    last_active_at = Column(DateTime, nullable=True)

    @property
    def formatted_id(self) -> str:
        return f"V-{self.id:04d}"

    @property
    def is_available(self) -> bool:
        return self.availability == AvailabilityStatus.AVAILABLE


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------

class HelpRequest(Base):
    __tablename__ = "help_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_code = Column(String(20), nullable=False, unique=True, index=True)
    mother_id = Column(Integer, ForeignKey("mothers.id"), nullable=False)
    accepted_by_id = Column(Integer, ForeignKey("volunteers.id"), nullable=True)
    category = Column(_enum(RequestCategory), nullable=False)
    status = Column(_enum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)
    # Snapshot of the mother's profile at creation time; never refreshed
    zone = Column(String(20), nullable=True, index=True)
    risk_level = Column(_enum(RiskLevel), nullable=True)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    accepted_at = Column(DateTime, nullable=True)
    in_progress_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    alerts_sent = Column(Integer, default=0)
    alerted_volunteer_ids = Column(JSON, default=list)

    mother = relationship("Mother", lazy="selectin")
    accepted_by = relationship("Volunteer", lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REQUEST_STATUSES

    @property
    def is_emergency(self) -> bool:
        return RequestCategory(self.category).is_emergency


class CaseSequence(Base):
    """Named counter reserved atomically for case codes."""

    __tablename__ = "case_sequences"

    name = Column(String(30), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class VolunteerResponse(Base):
    """A volunteer's ETA offer for a case, kept for ETA-based selection."""

    __tablename__ = "volunteer_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_code = Column(String(20), nullable=False, index=True)
    volunteer_id = Column(Integer, ForeignKey("volunteers.id"), nullable=False)
    eta_minutes = Column(Integer, nullable=False)
    responded_at = Column(DateTime, default=utcnow)
    selected = Column(Boolean, default=False)


# ---------------------------------------------------------------------------
# Dialogue state
# ---------------------------------------------------------------------------

class ConversationState(Base):
    __tablename__ = "conversation_states"
    __table_args__ = (
        # At most one ACTIVE dialogue per phone
        Index(
            "uq_conversation_active_phone",
            "phone",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(20), nullable=False, index=True)
    phase = Column(_enum(ConversationPhase), default=ConversationPhase.ROLE_DETECTION)
    collected_data = Column(JSON, default=dict)
    history = Column(JSON, default=list)
    turn = Column(Integer, default=0)
    language = Column(_enum(Language), default=Language.ENGLISH)
    status = Column(_enum(ConversationStatus), default=ConversationStatus.ACTIVE, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
