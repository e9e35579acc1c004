"""Base agent class for the SafeBirth language-model collaborators.

Every agent inherits from BaseAgent, which provides:

- Gemini model access via the infra.gemini_client wrapper
- A standard AgentResult return type (Result pattern)
- Latency measurement and token tracking
- A hard timeout so a stalled model call never blocks an SMS turn
- Multi-turn chat support
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from safebirth.app.config import get_settings

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "not_configured"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Follows the Result pattern: every agent call returns an AgentResult
    instead of raising exceptions. Callers check ``result.ok`` to
    determine success or failure.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, parsed JSON, etc.).
        error: Human-readable error description when ``ok`` is False.
        tokens_used: Total tokens consumed (prompt + completion).
        latency_ms: Wall-clock time for the operation in milliseconds.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(
        cls,
        data: Any,
        tokens_used: int = 0,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a successful result."""
        return cls(
            ok=True,
            data=data,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(cls, error: str, latency_ms: int = 0) -> "AgentResult":
        """Create a failure result."""
        return cls(ok=False, error=error, latency_ms=latency_ms)


def _token_count(response) -> int:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return 0
    prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
    completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
    return prompt_tokens + completion_tokens


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for language-model agents.

    Example::

        class RoleAgent(BaseAgent):
            def __init__(self):
                super().__init__(agent_name="role_agent")

            async def classify(self, message: str) -> AgentResult:
                return await self.chat(
                    [{"role": "user", "parts": [message]}],
                    system_instruction="Is this sender a mother or a volunteer?",
                    json_mode=True,
                )
    """

    def __init__(
        self,
        agent_name: str,
        model_name: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ):
        """Initialise the agent.

        Args:
            agent_name: A short, unique name for this agent (used in logs).
            model_name: The Gemini model identifier (settings default when None).
            temperature: Generation temperature (settings default when None).
            timeout_seconds: Hard limit per call (settings default when None).
        """
        settings = get_settings()
        self.agent_name = agent_name
        self.model_name = model_name or settings.gemini_model
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    @property
    def configured(self) -> bool:
        from safebirth.infra.gemini_client import is_configured

        return is_configured()

    # ------------------------------------------------------------------
    # Multi-turn chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict],
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
    ) -> AgentResult:
        """Conduct a multi-turn conversation with Gemini.

        Args:
            messages: A list of message dicts, each with ``role``
                (``"user"`` or ``"model"``) and ``parts`` (list of
                strings).  The **last** message is sent as the new user
                turn; all preceding messages form the chat history.
            system_instruction: Optional system instruction.
            json_mode: If True the model is instructed to return valid JSON.

        Returns:
            An ``AgentResult`` with the model's latest reply in ``data``.
        """
        if not messages:
            return AgentResult.failure("No messages provided for chat.")
        if not self.configured:
            logger.warning("[%s] Gemini API key not configured", self.agent_name)
            return AgentResult.failure(NOT_CONFIGURED)

        start_time = time.time()
        try:
            from safebirth.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                json_mode=json_mode,
                system_instruction=system_instruction,
            )

            history = [
                {"role": msg.get("role", "user"), "parts": msg.get("parts", [])}
                for msg in messages[:-1]
            ]
            chat_session = model.start_chat(history=history)
            user_text = "\n".join(str(p) for p in messages[-1].get("parts", []))

            response = await asyncio.wait_for(
                chat_session.send_message_async(user_text),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)
            tokens_used = _token_count(response)

            logger.info(
                "[%s] Chat succeeded: tokens=%d, latency=%dms, turns=%d",
                self.agent_name,
                tokens_used,
                latency_ms,
                len(messages),
            )
            return AgentResult.success(
                data=response.text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Chat failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(str(exc) or type(exc).__name__, latency_ms=latency_ms)
