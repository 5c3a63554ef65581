"""Pydantic schemas for the automation queue."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator


class EmailJobPayload(BaseModel):
    """Queue payload for an email send."""
    model_config = ConfigDict(extra="allow")

    action: Literal["send_email", "email"]
    to: str | list[str]
    subject: str | None = None
    body: str | None = None
    message: str | None = None
    template_id: str | None = None
    template_params: dict[str, Any] = Field(default_factory=dict)
    client_id: str | None = None
    profile_id: str | None = None
    sent_by: str | None = None

    @field_validator("to")
    @classmethod
    def recipient_required(cls, value):
        if isinstance(value, list):
            value = [v.strip() for v in value if v and v.strip()]
        else:
            value = value.strip()
        if not value:
            raise ValueError("email recipient is required")
        return value

    @property
    def recipient(self) -> str:
        return ",".join(self.to) if isinstance(self.to, list) else self.to

    @property
    def text(self) -> str:
        return self.body or self.message or self.template_params.get("message") or ""


class WhatsAppJobPayload(BaseModel):
    """Queue payload for a WhatsApp send."""
    model_config = ConfigDict(extra="allow")

    action: Literal["send_whatsapp", "whatsapp"]
    to: str
    body: str | None = None
    message: str | None = None
    template_params: dict[str, Any] = Field(default_factory=dict)
    client_id: str | None = None
    profile_id: str | None = None
    sent_by: str | None = None

    @field_validator("to")
    @classmethod
    def phone_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("phone recipient is required")
        return value.strip()

    @model_validator(mode="after")
    def text_required(self):
        if not self.text:
            raise ValueError("whatsapp message body is required")
        return self

    @property
    def recipient(self) -> str:
        return self.to

    @property
    def text(self) -> str:
        return self.body or self.message or self.template_params.get("message") or ""


JobPayload = Annotated[Union[EmailJobPayload, WhatsAppJobPayload], Field(discriminator="action")]
job_payload_adapter = TypeAdapter(JobPayload)

# Union tags pydantic puts in error locations
PAYLOAD_TAGS = ("send_email", "email", "send_whatsapp", "whatsapp")


class AutomationJobOut(BaseModel):
    id: UUID
    event_source: str
    event_table: str | None
    event_type: str | None
    payload: dict[str, Any]
    status: str
    attempts: int
    next_run_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AutomationJobList(BaseModel):
    jobs: list[AutomationJobOut]
    total: int


class TriggerRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1)


class TriggerResponse(BaseModel):
    processed: int
    failed: int = 0
    rescheduled: int = 0
    skipped: int = 0


class RetryJobRequest(BaseModel):
    job_id: UUID
    force: bool = False
    automation_secret: str | None = None


class RetryJobResponse(BaseModel):
    ok: bool = True
    job: AutomationJobOut


class EnqueueRequest(BaseModel):
    id: UUID | None = None
    event_table: str = Field(min_length=1)
    event_type: str | None = None
    event_payload: dict[str, Any] = Field(default_factory=dict)


class EnqueueResponse(BaseModel):
    success: bool = True
    inserted: AutomationJobOut


class Recipient(BaseModel):
    """A manual-send recipient. Extra profile fields are carried through."""
    model_config = ConfigDict(extra="allow")

    email: str | None = None
    phone: str | None = None
    full_name: str | None = None
    client_id: str | None = None
    profile_id: str | None = None
    template_params: dict[str, Any] = Field(default_factory=dict)


class ManualSendRequest(BaseModel):
    mode: Literal["enqueue", "direct"] = "enqueue"
    channel: Literal["email", "whatsapp"] = "email"
    template_id: str = Field(min_length=1)
    recipients: list[Recipient] = Field(min_length=1)
    template_params: dict[str, Any] = Field(default_factory=dict)


class ManualSendResponse(BaseModel):
    success: bool = True
    results: list[dict[str, Any]]


def describe_payload_error(exc: ValidationError) -> str:
    """Flatten a payload ValidationError into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in PAYLOAD_TAGS)
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "invalid payload: " + "; ".join(parts)
