"""Outbound channel adapters: shared contract, error taxonomy and action resolution.

Every adapter exposes

    async send(action, recipient, body, subject=None, template_id=None, template_params=None) -> SendResult

and never raises provider errors to the caller. Failures come back as
``SendResult(ok=False)`` tagged with an ``ErrorKind`` so the dispatcher can
decide between retrying and failing the job outright.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

EMAIL_ACTIONS = frozenset({"send_email", "email"})
WHATSAPP_ACTIONS = frozenset({"send_whatsapp", "whatsapp"})


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    UNSUPPORTED = "unsupported"


class ProviderError(Exception):
    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str, raw_response: Any = None):
        super().__init__(message)
        self.raw_response = raw_response


class ProviderConfigurationError(ProviderError):
    """Credentials missing; retrying cannot help until config changes."""
    kind = ErrorKind.CONFIGURATION


class RecipientValidationError(ProviderError):
    """Recipient missing or rejected by the provider."""
    kind = ErrorKind.VALIDATION


class ProviderTransientError(ProviderError):
    """HTTP 5xx, rate limiting, network failure or timeout."""
    kind = ErrorKind.TRANSIENT


def error_for_status(status_code: int) -> type[ProviderError]:
    """Pick the error class for a failed provider HTTP response.

    401/403 mean our credentials are wrong, 408/429/5xx are worth retrying,
    any other 4xx is a rejected request that will fail the same way again.
    """
    if status_code in (401, 403):
        return ProviderConfigurationError
    if status_code in (408, 429) or status_code >= 500:
        return ProviderTransientError
    if 400 <= status_code < 500:
        return RecipientValidationError
    return ProviderTransientError


@dataclass
class SendResult:
    ok: bool
    provider_id: Optional[str] = None
    raw_response: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def retryable(self) -> bool:
        return not self.ok and self.error_kind == ErrorKind.TRANSIENT

    @classmethod
    def from_error(cls, exc: ProviderError) -> "SendResult":
        raw = exc.raw_response if exc.raw_response is not None else {"error": str(exc)}
        return cls(ok=False, raw_response=raw, error=str(exc), error_kind=exc.kind)


class ProviderAdapter(Protocol):
    channel: str

    async def send(
        self,
        action: str,
        recipient: str | None,
        body: str,
        subject: str | None = None,
        template_id: str | None = None,
        template_params: dict | None = None,
    ) -> SendResult:
        ...


class ActionKind(str, enum.Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ResolvedAction:
    kind: ActionKind
    name: str

    @property
    def channel(self) -> str:
        """Channel label written to the communication log."""
        if self.kind == ActionKind.UNSUPPORTED:
            return self.name or "unknown"
        return self.kind.value


def resolve_action(payload: dict | None, event_type: str | None = None) -> ResolvedAction:
    """Map ``payload.action`` (falling back to the event type) onto a channel."""
    name = str((payload or {}).get("action") or event_type or "")
    if name in EMAIL_ACTIONS:
        return ResolvedAction(ActionKind.EMAIL, name)
    if name in WHATSAPP_ACTIONS:
        return ResolvedAction(ActionKind.WHATSAPP, name)
    return ResolvedAction(ActionKind.UNSUPPORTED, name)


class ProviderRegistry:
    """Holds one adapter per supported channel."""

    def __init__(self, email: ProviderAdapter, whatsapp: ProviderAdapter):
        self.email = email
        self.whatsapp = whatsapp

    def for_kind(self, kind: ActionKind) -> ProviderAdapter:
        if kind == ActionKind.EMAIL:
            return self.email
        if kind == ActionKind.WHATSAPP:
            return self.whatsapp
        raise ValueError(f"no provider for {kind.value} actions")

    @classmethod
    def from_settings(cls, settings) -> "ProviderRegistry":
        from app.services.email_service import EmailJSAdapter, SendGridEmailAdapter
        from app.services.whatsapp import WhatsAppAdapter

        if settings.EMAIL_PROVIDER.lower() == "sendgrid":
            email = SendGridEmailAdapter.from_settings(settings)
        else:
            email = EmailJSAdapter.from_settings(settings)
        logger.info("Provider registry built: email=%s", email.__class__.__name__)
        return cls(email=email, whatsapp=WhatsAppAdapter.from_settings(settings))
