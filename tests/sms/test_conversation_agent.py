"""Conversation Agent tests: reply parsing and degraded-model behaviour.

No network: the Gemini chat call is replaced with an AsyncMock.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from safebirth.agents.base import NOT_CONFIGURED, AgentResult
from safebirth.agents.sms.conversation_agent import (
    ConversationAgent,
    first_balanced_object,
    parse_assistant_reply,
    parse_bool,
)
from safebirth.agents.sms.reply_templates import render
from safebirth.domain.enums import AssistantAction, ConversationPhase, Language


class TestParseBool:

    @pytest.mark.parametrize("value", [True, "true", "TRUE", "yes", "Y", "1", 1, "نعم"])
    def test_truthy(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", [False, "false", "no", "0", 0, None, "", "maybe", "لا"])
    def test_falsy(self, value):
        assert parse_bool(value) is False


class TestFirstBalancedObject:

    def test_object_inside_prose(self):
        text = 'Sure! {"reply": "hi", "is_complete": false} hope that helps'
        assert first_balanced_object(text) == '{"reply": "hi", "is_complete": false}'

    def test_nested_objects(self):
        text = 'x {"a": {"b": 1}} y {"c": 2}'
        assert first_balanced_object(text) == '{"a": {"b": 1}}'

    def test_braces_inside_strings_are_ignored(self):
        text = 'prefix {"reply": "use {curly} braces", "x": "\\"}"} suffix'
        assert json.loads(first_balanced_object(text))["reply"] == "use {curly} braces"

    def test_unbalanced(self):
        assert first_balanced_object('{"reply": "hi"') is None
        assert first_balanced_object("no json here") is None


class TestParseAssistantReply:

    def test_strict_json(self):
        raw = json.dumps({
            "reply": "Thank you, you are registered.",
            "extracted_data": {"camp": "A", "zone": "3"},
            "is_complete": True,
            "action": "REGISTER_MOTHER",
        })
        reply = parse_assistant_reply(raw)
        assert reply.reply == "Thank you, you are registered."
        assert reply.extracted_data == {"camp": "A", "zone": "3"}
        assert reply.is_complete is True
        assert reply.action == AssistantAction.REGISTER_MOTHER
        assert reply.degraded is False

    def test_json_wrapped_in_markdown_fence(self):
        raw = '```json\n{"reply": "What is your camp?", "is_complete": false}\n```'
        reply = parse_assistant_reply(raw)
        assert reply.reply == "What is your camp?"
        assert reply.is_complete is False

    def test_string_booleans_and_lowercase_action(self):
        raw = '{"reply": "ok", "is_complete": "true", "action": "create_help_request"}'
        reply = parse_assistant_reply(raw)
        assert reply.is_complete is True
        assert reply.action == AssistantAction.CREATE_HELP_REQUEST

    def test_unknown_action_is_dropped(self):
        reply = parse_assistant_reply('{"reply": "ok", "action": "LAUNCH_ROCKET"}')
        assert reply.action is None

    def test_null_extracted_data_becomes_empty(self):
        reply = parse_assistant_reply('{"reply": "ok", "extracted_data": null}')
        assert reply.extracted_data == {}

    def test_plain_text_becomes_reply(self):
        reply = parse_assistant_reply("Hello! Are you a mother or a volunteer?")
        assert reply.reply == "Hello! Are you a mother or a volunteer?"
        assert reply.is_complete is False
        assert reply.degraded is True

    def test_plain_text_is_truncated(self):
        reply = parse_assistant_reply("x" * 1000)
        assert len(reply.reply) == 300


class TestConversationAgentRespond:

    async def test_unconfigured_returns_unavailable_reply(self):
        agent = ConversationAgent()
        with patch("safebirth.infra.gemini_client.is_configured", return_value=False):
            reply = await agent.respond(ConversationPhase.ROLE_DETECTION, "hello", Language.ENGLISH)

        assert reply.reply == render("assistant_unavailable", Language.ENGLISH)
        assert reply.is_complete is False
        assert reply.degraded is True

    async def test_failure_returns_apology_in_sender_language(self):
        agent = ConversationAgent()
        agent.chat = AsyncMock(return_value=AgentResult.failure("TimeoutError"))

        reply = await agent.respond(ConversationPhase.ROLE_DETECTION, "مرحبا", Language.ARABIC)

        assert reply.reply == render("assistant_error", Language.ARABIC)
        assert reply.is_complete is False

    async def test_not_configured_error_maps_to_unavailable(self):
        agent = ConversationAgent()
        agent.chat = AsyncMock(return_value=AgentResult.failure(NOT_CONFIGURED))

        reply = await agent.respond(ConversationPhase.ROLE_DETECTION, "hello", Language.ENGLISH)

        assert reply.reply == render("assistant_unavailable", Language.ENGLISH)

    async def test_success_parses_json_and_sends_history(self):
        agent = ConversationAgent()
        agent.chat = AsyncMock(return_value=AgentResult.success(
            '{"reply": "Which camp?", "extracted_data": {"name": "Sara"}, "is_complete": false}'
        ))
        history = [
            {"role": "user", "content": "I am pregnant"},
            {"role": "assistant", "content": "What is your name?"},
        ]

        reply = await agent.respond(
            ConversationPhase.MOTHER_REGISTRATION, "Sara", Language.ENGLISH, {}, history,
        )

        assert reply.reply == "Which camp?"
        assert reply.extracted_data == {"name": "Sara"}

        messages = agent.chat.call_args.args[0]
        assert [m["role"] for m in messages] == ["user", "model", "user"]
        assert messages[-1]["parts"] == ["Sara"]
        assert agent.chat.call_args.kwargs["json_mode"] is True
        assert "Register a pregnant mother" in agent.chat.call_args.kwargs["system_instruction"]

    async def test_history_is_limited(self):
        agent = ConversationAgent()
        agent.chat = AsyncMock(return_value=AgentResult.success('{"reply": "ok"}'))
        history = [{"role": "user", "content": f"m{i}"} for i in range(25)]

        await agent.respond(ConversationPhase.GENERAL, "latest", Language.ENGLISH, {}, history)

        messages = agent.chat.call_args.args[0]
        # 10 most recent transcript entries + the new message
        assert len(messages) == 11
        assert messages[0]["parts"] == ["m15"]

    async def test_empty_reply_gets_fallback_text(self):
        agent = ConversationAgent()
        agent.chat = AsyncMock(return_value=AgentResult.success('{"reply": "", "is_complete": false}'))

        reply = await agent.respond(ConversationPhase.GENERAL, "hi", Language.ENGLISH)

        assert reply.reply == render("assistant_error", Language.ENGLISH)


class TestSystemPrompt:

    def test_base_plus_phase_template(self):
        prompt = ConversationAgent().build_system_prompt(
            ConversationPhase.HELP_REQUEST,
            "I am bleeding",
            Language.ARABIC,
            profile={"age": 24, "camp": "A", "zone": "3"},
        )
        assert prompt.startswith("You are SafeBirth")
        assert "Arabic" in prompt
        assert "age: 24" in prompt
        assert "camp: A, zone: 3" in prompt
        assert "due date: unknown" in prompt
        assert 'New message: "I am bleeding"' in prompt
