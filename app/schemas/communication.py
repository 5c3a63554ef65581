"""Pydantic schemas for direct communications and the communication log."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.automation import Recipient


class SingleSendRequest(BaseModel):
    channel: Literal["email", "whatsapp"]
    recipient: str = Field(min_length=1)
    message: str = Field(min_length=1)
    subject: str | None = None


class SingleSendResponse(BaseModel):
    success: bool
    status: str
    response: Any = None


class BulkSendRequest(BaseModel):
    recipients: list[Recipient] = Field(default_factory=list)
    subject: str = ""
    message: str = ""
    template_id: str | None = None
    initiated_by: str | None = None
    follow_up_id: str | None = None


class BulkSendResponse(BaseModel):
    ok: bool = True
    results: list[dict[str, Any]]


class CommunicationLogOut(BaseModel):
    id: UUID
    job_id: UUID | None
    client_id: str | None
    profile_id: str | None
    channel: str
    recipient: str | None
    subject: str | None
    message: str | None
    status: str
    provider_response: Any = None
    provider_message_id: str | None
    sent_by: str | None
    follow_up_id: str | None
    sent_at: datetime

    class Config:
        from_attributes = True


class CommunicationLogList(BaseModel):
    logs: list[CommunicationLogOut]
    total: int
