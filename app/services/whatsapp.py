"""Twilio WhatsApp adapter.

Messages go out through the Twilio Messages API with ``whatsapp:`` prefixed
numbers. Phone numbers are normalized to ``+<digits>``; bare 10-digit numbers
get the default country code.
"""

import asyncio
import logging
import re

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from app.services.providers import (
    ProviderConfigurationError,
    ProviderError,
    ProviderTransientError,
    RecipientValidationError,
    SendResult,
    error_for_status,
)

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def normalize_phone(phone: str | None, default_country_code: str = "91") -> str:
    """Return ``+<digits>`` or an empty string when no digits remain."""
    if not phone:
        return ""
    raw = str(phone)
    if raw.startswith(WHATSAPP_PREFIX):
        raw = raw[len(WHATSAPP_PREFIX):]
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return ""
    if len(digits) == 10 and default_country_code:
        digits = f"{default_country_code}{digits}"
    return f"+{digits}"


def whatsapp_address(number: str) -> str:
    return number if number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{number}"


class WhatsAppAdapter:
    channel = "whatsapp"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 15.0,
        default_country_code: str = "91",
        client: Client | None = None,
    ):
        self.from_number = from_number
        self.timeout = timeout
        self.default_country_code = default_country_code
        self.client = client
        if self.client is None and account_sid and auth_token:
            self.client = Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))

        if not self.configured:
            logger.warning("Twilio WhatsApp credentials not configured; WhatsApp jobs will fail")

    @classmethod
    def from_settings(cls, settings) -> "WhatsAppAdapter":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_WHATSAPP_FROM,
            timeout=settings.function_timeout_seconds,
            default_country_code=settings.DEFAULT_COUNTRY_CODE,
        )

    @property
    def configured(self) -> bool:
        return self.client is not None and bool(self.from_number)

    async def send(
        self,
        action: str,
        recipient: str | None,
        body: str,
        subject: str | None = None,
        template_id: str | None = None,
        template_params: dict | None = None,
    ) -> SendResult:
        """Send a WhatsApp message. Subject and template are ignored."""
        try:
            if not self.configured:
                raise ProviderConfigurationError("Twilio not configured")
            to = normalize_phone(recipient, self.default_country_code)
            if not to:
                raise RecipientValidationError("missing_phone")
            if not body:
                raise RecipientValidationError("missing_message_body")

            try:
                message = await asyncio.to_thread(
                    self.client.messages.create,
                    from_=whatsapp_address(self.from_number),
                    to=whatsapp_address(to),
                    body=body,
                )
            except TwilioRestException as e:
                error_cls = error_for_status(e.status or 500)
                raise error_cls(
                    f"Twilio error {e.status} ({e.code}): {e.msg}",
                    raw_response={"status": e.status, "code": e.code, "message": e.msg},
                ) from e
            except Exception as e:
                raise ProviderTransientError(f"Twilio request failed: {e}") from e

            logger.info("WhatsApp sent to %s, SID: %s", to, message.sid)
            return SendResult(
                ok=True,
                provider_id=message.sid,
                raw_response={"sid": message.sid, "status": message.status, "to": to},
            )
        except ProviderError as e:
            logger.error("Twilio error sending WhatsApp to %s: %s", recipient, e)
            return SendResult.from_error(e)
