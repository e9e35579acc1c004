"""SMS Dispatcher tests: routing between ETA, commands and conversation."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from safebirth.agents.sms.contracts import AssistantReply
from safebirth.agents.sms.reply_templates import render
from safebirth.domain.enums import CommandKind, ConversationStatus, Language, RequestStatus
from safebirth.domain.models import utcnow
from safebirth.services.conversation_service import ConversationService
from safebirth.services.help_request_service import HelpRequestService
from safebirth.services.matching_service import MatchingService
from safebirth.services.sms_dispatcher import DispatchResult, SMSDispatcher, _phone_locks

EN = Language.ENGLISH
AR = Language.ARABIC

MOTHER_PHONE = "+963900000001"
VOLUNTEER_PHONE = "+963911000001"


def scripted_agent(*replies: AssistantReply) -> MagicMock:
    agent = MagicMock()
    agent.respond = AsyncMock(side_effect=list(replies))
    return agent


class TestCommandPath:

    async def test_command_is_routed_and_committed(self, db_session, sms_service_mock, make_mother):
        await make_mother()
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(MOTHER_PHONE, "EMERGENCY")

        assert not db_session.in_transaction()
        assert result.command_kind == CommandKind.EMERGENCY
        assert result.language == EN
        assert result.success is True
        assert result.reply == render("emergency_no_volunteers", EN, "HR-0001")

    async def test_registration_parameters_are_reported(self, db_session, sms_service_mock):
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(MOTHER_PHONE, "تسجيل ام مخيم أ منطقة ٣")

        assert result.command_kind == CommandKind.REGISTER_MOTHER
        assert result.language == AR
        assert result.parameters == {"camp": "أ", "zone": "3"}

    async def test_phone_is_normalized(self, db_session, sms_service_mock, make_mother):
        await make_mother(phone="+963900000001")
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(" +963 900-000-001 ", "STATUS")

        assert "ID: M-0001" in result.reply

    async def test_contact_time_is_recorded(self, db_session, sms_service_mock, make_mother):
        mother = await make_mother()
        assert mother.last_contact_at is None
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        await dispatcher.process_message(MOTHER_PHONE, "STATUS")

        assert mother.last_contact_at is not None

    async def test_unexpected_failure_returns_generic_error(self, db_session, sms_service_mock):
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        with patch(
            "safebirth.services.sms_dispatcher.CommandRouter.route",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            result = await dispatcher.process_message(MOTHER_PHONE, "طوارئ")

        assert result.success is False
        assert result.error == "internal_error"
        assert result.reply == render("generic_error", AR)


class TestEtaPath:

    async def test_eta_attaches_to_alerted_case(
        self, db_session, sms_service_mock, make_mother, make_volunteer, make_request,
    ):
        mother = await make_mother()
        volunteer = await make_volunteer()
        request = await make_request(mother)
        await MatchingService(db_session, sms_service_mock).match_and_notify(request)
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(VOLUNTEER_PHONE, "15")

        assert result.success is True
        assert result.reply == render("eta_recorded", EN)
        assert result.parameters == {"eta_minutes": "15", "case_id": "HR-0001"}

        responses = await MatchingService(db_session, sms_service_mock).responses_for("HR-0001")
        assert [(r.volunteer_id, r.eta_minutes) for r in responses] == [(volunteer.id, 15)]
        # an ETA reply never assigns the case
        assert request.status == RequestStatus.PENDING

    async def test_arabic_digits_are_accepted(
        self, db_session, sms_service_mock, make_mother, make_volunteer, make_request,
    ):
        mother = await make_mother()
        await make_volunteer(language=AR)
        request = await make_request(mother)
        await MatchingService(db_session, sms_service_mock).match_and_notify(request)
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(VOLUNTEER_PHONE, "٢٠")

        assert result.reply == render("eta_recorded", AR)
        assert result.parameters["eta_minutes"] == "20"

    async def test_eta_without_alerted_case(self, db_session, sms_service_mock, make_volunteer):
        await make_volunteer()
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(VOLUNTEER_PHONE, "10")

        assert result.success is False
        assert result.reply == render("eta_no_case", EN)

    async def test_busy_volunteer_number_is_not_an_eta(
        self, db_session, sms_service_mock, make_volunteer,
    ):
        volunteer = await make_volunteer(current_case_code="HR-0001")
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        result = await dispatcher.process_message(VOLUNTEER_PHONE, "10")

        # falls through to the conversation engine, which answers volunteers with a hint
        assert result.command_kind == CommandKind.UNKNOWN
        assert result.reply == render("registered_volunteer_hint", EN)
        assert volunteer.current_case_code == "HR-0001"


class TestConversationPath:

    async def test_free_text_goes_to_conversation(self, db_session, sms_service_mock):
        agent = scripted_agent(AssistantReply(reply="Hello! Are you a mother or a volunteer?"))
        dispatcher = SMSDispatcher(db_session, sms_service_mock, conversation_agent=agent)

        result = await dispatcher.process_message(MOTHER_PHONE, "hello there")

        assert result.command_kind == CommandKind.UNKNOWN
        assert result.reply == "Hello! Are you a mother or a volunteer?"
        assert result.conversation_phase == "ROLE_DETECTION"
        # the original text is what the model sees
        assert agent.respond.call_args.args[1] == "hello there"

    async def test_dialogue_help_request_reports_case(
        self, db_session, sms_service_mock, make_mother,
    ):
        await make_mother()
        agent = scripted_agent(
            AssistantReply(
                reply="Help is on the way.",
                extracted_data={"request_type": "labor"},
                is_complete=True,
            ),
        )
        dispatcher = SMSDispatcher(db_session, sms_service_mock, conversation_agent=agent)

        result = await dispatcher.process_message(MOTHER_PHONE, "my waters broke")

        assert result.parameters == {"case_id": "HR-0001"}
        assert result.conversation_phase == "HELP_REQUEST"
        request = await HelpRequestService(db_session).get_by_case_code("HR-0001")
        assert request.status == RequestStatus.PENDING


# ---------------------------------------------------------------------------
# Expiry sweep and per-phone serialization
# ---------------------------------------------------------------------------


def _fake_db() -> MagicMock:
    db = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


class TestSweepAndSerialization:

    async def test_message_from_any_phone_expires_stale_dialogues(self, db_session, sms_service_mock):
        stale = await ConversationService(db_session, sms_service_mock).start(MOTHER_PHONE, EN)
        stale.updated_at = utcnow() - timedelta(hours=2)
        await db_session.flush()
        dispatcher = SMSDispatcher(db_session, sms_service_mock)

        await dispatcher.process_message(VOLUNTEER_PHONE, "STATUS")

        assert stale.status == ConversationStatus.EXPIRED

    async def test_same_phone_messages_run_one_at_a_time(self, sms_service_mock):
        events = []

        async def fake_process(self, phone, body):
            events.append(("start", body))
            await asyncio.sleep(0.01)
            events.append(("end", body))
            return DispatchResult(reply=body)

        dispatcher = SMSDispatcher(_fake_db(), sms_service_mock)
        with patch.object(SMSDispatcher, "_process", fake_process):
            await asyncio.gather(
                dispatcher.process_message(MOTHER_PHONE, "one"),
                dispatcher.process_message(MOTHER_PHONE, "two"),
            )

        assert events == [("start", "one"), ("end", "one"), ("start", "two"), ("end", "two")]

    async def test_different_phones_run_concurrently(self, sms_service_mock):
        events = []

        async def fake_process(self, phone, body):
            events.append(("start", body))
            await asyncio.sleep(0.01)
            events.append(("end", body))
            return DispatchResult(reply=body)

        dispatcher = SMSDispatcher(_fake_db(), sms_service_mock)
        with patch.object(SMSDispatcher, "_process", fake_process):
            await asyncio.gather(
                dispatcher.process_message(MOTHER_PHONE, "one"),
                dispatcher.process_message(VOLUNTEER_PHONE, "two"),
            )

        assert events[:2] == [("start", "one"), ("start", "two")]

    async def test_lock_is_dropped_after_the_message(self, sms_service_mock):
        dispatcher = SMSDispatcher(_fake_db(), sms_service_mock)
        phones = [f"+96395555{n:04d}" for n in range(20)]

        with patch.object(
            SMSDispatcher, "_process", AsyncMock(return_value=DispatchResult(reply="ok")),
        ):
            for phone in phones:
                await dispatcher.process_message(phone, "hi")

        assert not any(phone in _phone_locks for phone in phones)
