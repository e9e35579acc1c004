"""Outbound SMS via the relay gateway's HTTP API.

The gateway accepts ``POST {sms_gateway_url}`` with a JSON body
``{"to": ..., "body": ...}`` and a bearer token, and hands the message to
the phone relay for delivery. Delivery is fire-and-forget from the
dispatch core's point of view: failures come back as status dicts and are
never raised.
"""

import asyncio
import logging

import httpx

from safebirth.app.config import get_settings
from safebirth.services.phone import mask_phone

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
_RETRY_STATUSES = {429, 500, 502, 503, 504}


class SMSService:
    """Send SMS messages through the relay gateway."""

    def __init__(self):
        self.settings = get_settings()

    @property
    def _configured(self) -> bool:
        return bool(self.settings.sms_gateway_url and self.settings.sms_gateway_token)

    async def send_sms(self, to_number: str, message: str) -> dict:
        """Send one outbound SMS. Returns the gateway's JSON or an error dict."""
        if not self._configured:
            logger.warning("SMS gateway not configured, message not sent to %s", mask_phone(to_number))
            return {"ok": False, "error": "sms_gateway_not_configured", "message": message}

        payload = {"to": to_number, "body": message}
        headers = {
            "Authorization": f"Bearer {self.settings.sms_gateway_token}",
            "Accept": "application/json",
        }
        logger.info("SMS send: to=%s msg_len=%d", mask_phone(to_number), len(message))

        for attempt in range(MAX_ATTEMPTS):
            try:
                async with httpx.AsyncClient(timeout=self.settings.sms_gateway_timeout_seconds) as client:
                    resp = await client.post(self.settings.sms_gateway_url, json=payload, headers=headers)

                if 200 <= resp.status_code < 300:
                    try:
                        data = resp.json()
                    except ValueError:
                        data = {"raw": resp.text}
                    if isinstance(data, dict):
                        data.setdefault("ok", True)
                    logger.info("SMS sent to %s (status=%d)", mask_phone(to_number), resp.status_code)
                    return data

                if resp.status_code in _RETRY_STATUSES and attempt < MAX_ATTEMPTS - 1:
                    wait = attempt + 1
                    logger.warning(
                        "SMS gateway %d, retrying in %ds (attempt %d/%d)",
                        resp.status_code, wait, attempt + 1, MAX_ATTEMPTS,
                    )
                    await asyncio.sleep(wait)
                    continue

                logger.error("SMS gateway failed (%d): %s", resp.status_code, resp.text[:300])
                return {
                    "ok": False,
                    "error": f"http_{resp.status_code}",
                    "status": resp.status_code,
                    "message": message,
                }

            except httpx.TimeoutException:
                logger.error("SMS gateway timed out for %s", mask_phone(to_number))
                return {"ok": False, "error": "timeout", "message": message}
            except httpx.HTTPError as e:
                logger.error("SMS gateway transport error: %s", e)
                return {"ok": False, "error": str(e), "message": message}

        return {"ok": False, "error": "max_retries", "message": message}
