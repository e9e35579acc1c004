"""Pydantic v2 schemas for the SMS webhook API."""

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class SimulateRequest(BaseModel):
    """Simulator message: ``{"from": ..., "body": ...}``."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(default=None, alias="from")
    body: str | None = None


class WebhookRequest(BaseModel):
    """Message forwarded by the relay app: ``{"from", "body", "to"}``."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(default=None, alias="from")
    body: str | None = None
    to: str | None = None


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class SimulateResponse(BaseModel):
    """Full pipeline result, for the simulator UI."""

    model_config = ConfigDict(populate_by_name=True)

    command_type: str = Field(alias="commandType")
    detected_language: str = Field(alias="detectedLanguage")
    response_message: str = Field(alias="responseMessage")
    success: bool
    parsed_parameters: dict[str, str] = Field(default_factory=dict, alias="parsedParameters")
    conversation_phase: str | None = Field(default=None, alias="conversationPhase")


class WebhookResponse(BaseModel):
    """Reply for the relay app to send back to ``to``."""

    to: str
    message: str
    success: bool
    error: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "sms"
