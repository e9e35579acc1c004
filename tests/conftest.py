"""Shared test infrastructure for the SafeBirth SMS test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- sms_service_mock: mock SMSService capturing outbound messages
- make_mother: factory for registered Mother rows
- make_volunteer: factory for Volunteer rows (zone/skill or capability model)
- make_request: factory for HelpRequest rows with a reserved case code
"""

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from safebirth.infra.database import Base

import safebirth.domain.models  # noqa: F401

from safebirth.domain.enums import (
    AvailabilityStatus,
    Language,
    RequestCategory,
    RiskLevel,
    SkillType,
)
from safebirth.domain.models import HelpRequest, Mother, Volunteer, utcnow


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# SMS service mock
# ---------------------------------------------------------------------------

@pytest.fixture
def sms_service_mock():
    """Mock SMSService that captures outbound messages.

    Returns a MagicMock whose send_sms appends (to_number, message)
    tuples to a .sent list.
    """
    mock = MagicMock()
    mock.sent = []

    async def _capture_send(to_number: str, message: str):
        mock.sent.append((to_number, message))
        return {"ok": True}

    mock.send_sms = AsyncMock(side_effect=_capture_send)
    return mock


# ---------------------------------------------------------------------------
# Mother factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_mother(db_session):
    """Factory that creates a registered Mother.

    Usage:
        mother = await make_mother(phone="+963900000001", zone="3")
    """
    async def _factory(
        phone: str = "+963900000001",
        camp: str = "A",
        zone: str = "3",
        risk_level: RiskLevel = RiskLevel.LOW,
        due_date: date | None = None,
        language: Language = Language.ENGLISH,
        name: str | None = None,
    ) -> Mother:
        mother = Mother(
            phone=phone,
            name=name,
            camp=camp,
            zone=zone,
            risk_level=risk_level,
            due_date=due_date,
            preferred_language=language,
            registered_at=utcnow(),
        )
        db_session.add(mother)
        await db_session.flush()
        return mother

    return _factory


# ---------------------------------------------------------------------------
# Volunteer factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_volunteer(db_session):
    """Factory that creates a Volunteer.

    Usage:
        midwife = await make_volunteer(phone="+963911000001", skill=SkillType.MIDWIFE)
        flagged = await make_volunteer(zones=[], capabilities=[RequestCategory.LABOR])
    """
    async def _factory(
        phone: str = "+963911000001",
        name: str | None = "Test Volunteer",
        camp: str = "A",
        zones: list[str] | None = None,
        skill: SkillType | None = SkillType.COMMUNITY_VOLUNTEER,
        capabilities: list[RequestCategory] | None = None,
        availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE,
        language: Language = Language.ENGLISH,
        registered_at: datetime | None = None,
        current_case_code: str | None = None,
    ) -> Volunteer:
        volunteer = Volunteer(
            phone=phone,
            name=name,
            camp=camp,
            zones=["3"] if zones is None else list(zones),
            skill=skill,
            capabilities=[RequestCategory(c).value for c in (capabilities or [])],
            availability=availability,
            current_case_code=current_case_code,
            completed_cases=0,
            preferred_language=language,
            registered_at=registered_at or utcnow(),
        )
        db_session.add(volunteer)
        await db_session.flush()
        return volunteer

    return _factory


# ---------------------------------------------------------------------------
# Help request factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_request(db_session):
    """Factory that opens a PENDING HelpRequest for a mother.

    Usage:
        request = await make_request(mother, category=RequestCategory.LABOR)
    """
    from safebirth.services.help_request_service import HelpRequestService

    async def _factory(
        mother: Mother,
        category: RequestCategory = RequestCategory.EMERGENCY,
        notes: str | None = None,
    ) -> HelpRequest:
        return await HelpRequestService(db_session).create_request(mother, category, notes=notes)

    return _factory
