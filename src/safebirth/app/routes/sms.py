"""SMS webhook routes: inbound messages from the gateway, relay app and simulator.

All three entry points run the same SMSDispatcher pipeline and differ only
in payload and reply shape:

- ``/incoming``: form-encoded (Twilio style), answers with TwiML
- ``/webhook``: JSON from the phone relay app, which sends the reply itself
- ``/simulate``: JSON, answers with the full parse for the simulator UI
"""

import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Form, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.domain.schemas import (
    HealthResponse,
    SimulateRequest,
    SimulateResponse,
    WebhookRequest,
    WebhookResponse,
)
from safebirth.infra.database import get_db
from safebirth.services.phone import mask_phone
from safebirth.services.sms_dispatcher import SMSDispatcher
from safebirth.services.sms_service import SMSService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sms", tags=["sms"])


def get_sms_service() -> SMSService:
    return SMSService()


def _require(sender: str | None, body: str | None) -> tuple[str, str]:
    if not sender or not sender.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing sender phone number")
    if body is None or not body.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing message body")
    return sender.strip(), body


@router.post("/incoming")
async def incoming_sms(
    From: str | None = Form(default=None),
    To: str | None = Form(default=None),
    Body: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
    sms_service: SMSService = Depends(get_sms_service),
):
    """Form-encoded gateway webhook. Replies inline as TwiML."""
    sender, body = _require(From, Body)
    logger.info("Incoming SMS from %s", mask_phone(sender))

    result = await SMSDispatcher(db, sms_service).process_message(sender, body)
    twiml = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Response><Message>{escape(result.reply)}</Message></Response>"
    )
    return Response(content=twiml, media_type="application/xml")


@router.post("/webhook", response_model=WebhookResponse)
async def relay_webhook(
    payload: WebhookRequest,
    db: AsyncSession = Depends(get_db),
    sms_service: SMSService = Depends(get_sms_service),
):
    """JSON webhook from the phone relay app. The app delivers the reply."""
    sender, body = _require(payload.sender, payload.body)
    logger.info("Relay SMS from %s", mask_phone(sender))

    result = await SMSDispatcher(db, sms_service).process_message(sender, body)
    return WebhookResponse(
        to=sender,
        message=result.reply,
        success=result.success,
        error=result.error,
    )


@router.post("/simulate", response_model=SimulateResponse)
async def simulate_sms(
    payload: SimulateRequest,
    db: AsyncSession = Depends(get_db),
    sms_service: SMSService = Depends(get_sms_service),
):
    """Run a message through the pipeline and return the full parse."""
    sender, body = _require(payload.sender, payload.body)

    result = await SMSDispatcher(db, sms_service).process_message(sender, body)
    return SimulateResponse(
        command_type=result.command_kind.value,
        detected_language=result.language.value,
        response_message=result.reply,
        success=result.success,
        parsed_parameters={k: str(v) for k, v in result.parameters.items() if v is not None},
        conversation_phase=result.conversation_phase,
    )


@router.get("/health", response_model=HealthResponse)
async def sms_health():
    return HealthResponse()
