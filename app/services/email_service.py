"""Email adapters: EmailJS REST API (default) and SendGrid."""

import asyncio
import logging
from typing import Optional

import httpx
from python_http_client.exceptions import HTTPError as SendGridHTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.services.providers import (
    ProviderConfigurationError,
    ProviderError,
    ProviderTransientError,
    RecipientValidationError,
    SendResult,
    error_for_status,
)

logger = logging.getLogger(__name__)


def _split_recipients(recipient: str | None) -> list[str]:
    if not recipient:
        return []
    return [r.strip() for r in recipient.split(",") if r.strip()]


class EmailJSAdapter:
    """Sends email through the EmailJS server-side REST endpoint."""

    channel = "email"

    def __init__(
        self,
        service_id: str,
        template_id: str,
        public_key: str,
        private_key: str = "",
        api_url: str = "https://api.emailjs.com/api/v1.0/email/send",
        timeout: float = 15.0,
        from_name: str = "Automation System",
    ):
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.private_key = private_key
        self.api_url = api_url
        self.timeout = timeout
        self.from_name = from_name

        if not self.configured:
            logger.warning("EmailJS not configured. Email jobs will fail until credentials are set.")

    @classmethod
    def from_settings(cls, settings) -> "EmailJSAdapter":
        return cls(
            service_id=settings.EMAILJS_SERVICE_ID,
            template_id=settings.EMAILJS_TEMPLATE_ID,
            public_key=settings.EMAILJS_PUBLIC_KEY,
            private_key=settings.EMAILJS_PRIVATE_KEY,
            api_url=settings.EMAILJS_API_URL,
            timeout=settings.function_timeout_seconds,
            from_name=settings.SENDGRID_FROM_NAME,
        )

    @property
    def configured(self) -> bool:
        return all([self.service_id, self.template_id, self.public_key])

    def build_request(
        self,
        recipient: str,
        body: str,
        subject: Optional[str],
        template_id: Optional[str],
        template_params: Optional[dict],
    ) -> dict:
        params = {"message": body, "from_name": self.from_name}
        params.update(template_params or {})
        params["to_email"] = recipient
        if subject is not None:
            params["subject"] = subject

        request = {
            "service_id": self.service_id,
            "template_id": template_id or self.template_id,
            "user_id": self.public_key,
            "template_params": params,
        }
        if self.private_key:
            request["accessToken"] = self.private_key
        return request

    async def send(
        self,
        action: str,
        recipient: str | None,
        body: str,
        subject: str | None = None,
        template_id: str | None = None,
        template_params: dict | None = None,
    ) -> SendResult:
        try:
            if not self.configured:
                raise ProviderConfigurationError("EmailJS not configured")
            recipients = _split_recipients(recipient)
            if not recipients:
                raise RecipientValidationError("missing_email")

            request = self.build_request(",".join(recipients), body, subject, template_id, template_params)
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, json=request)
            except httpx.HTTPError as e:
                raise ProviderTransientError(f"EmailJS request failed: {e}") from e

            if response.status_code >= 400:
                error_cls = error_for_status(response.status_code)
                raise error_cls(
                    f"EmailJS error {response.status_code} {response.text}",
                    raw_response={"status": response.status_code, "body": response.text},
                )

            logger.info("Email sent via EmailJS to %s", recipient)
            return SendResult(ok=True, raw_response={"status": response.status_code, "body": response.text})

        except ProviderError as e:
            logger.error("EmailJS send to %s failed (%s): %s", recipient, e.kind.value, e)
            return SendResult.from_error(e)


class SendGridEmailAdapter:
    """Sends email through the SendGrid SDK (v3 mail/send)."""

    channel = "email"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str,
        timeout: float = 15.0,
        client: SendGridAPIClient | None = None,
    ):
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.client = client
        if self.client is None and api_key:
            self.client = SendGridAPIClient(api_key)
            self.client.client.timeout = timeout

        if not self.configured:
            logger.warning("SENDGRID_API_KEY not configured. Emails will not be sent.")

    @classmethod
    def from_settings(cls, settings) -> "SendGridEmailAdapter":
        return cls(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.SENDGRID_FROM_EMAIL,
            from_name=settings.SENDGRID_FROM_NAME,
            timeout=settings.function_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return self.client is not None

    def build_message(
        self,
        recipients: list[str],
        body: str,
        subject: Optional[str],
        template_id: Optional[str],
        template_params: Optional[dict],
    ) -> Mail:
        if template_id:
            message = Mail(from_email=(self.from_email, self.from_name), to_emails=recipients)
            message.template_id = template_id
            if template_params:
                message.dynamic_template_data = template_params
            return message

        return Mail(
            from_email=(self.from_email, self.from_name),
            to_emails=recipients,
            subject=subject or "Message",
            html_content=body or " ",
        )

    async def send(
        self,
        action: str,
        recipient: str | None,
        body: str,
        subject: str | None = None,
        template_id: str | None = None,
        template_params: dict | None = None,
    ) -> SendResult:
        try:
            if not self.configured:
                raise ProviderConfigurationError("SendGrid not configured")
            recipients = _split_recipients(recipient)
            if not recipients:
                raise RecipientValidationError("missing_email")

            message = self.build_message(recipients, body, subject, template_id, template_params)
            try:
                response = await asyncio.to_thread(self.client.send, message)
            except SendGridHTTPError as e:
                error_cls = error_for_status(e.status_code or 500)
                body_text = e.body.decode("utf-8", "replace") if isinstance(e.body, bytes) else e.body
                raise error_cls(
                    f"SendGrid error {e.status_code}",
                    raw_response={"status": e.status_code, "body": body_text},
                ) from e
            except Exception as e:
                raise ProviderTransientError(f"SendGrid request failed: {e}") from e

            message_id = response.headers.get("X-Message-Id") if response.headers else None
            logger.info(f"Email sent successfully to {recipient}: {subject}")
            return SendResult(
                ok=True,
                provider_id=message_id,
                raw_response={"status": response.status_code},
            )

        except ProviderError as e:
            logger.error(f"Error sending email to {recipient}: {e}")
            return SendResult.from_error(e)
