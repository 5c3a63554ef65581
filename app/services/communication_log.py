"""Communication log writer.

Appends one immutable row per send attempt. This module owns the error
truncation rule used everywhere an error string is persisted.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.communication_log import CommunicationLog
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


def truncate_error(error: Any, limit: int = MAX_ERROR_LENGTH) -> str:
    """Stringify an error and cut it to at most ``limit`` characters."""
    text = error if isinstance(error, str) else str(error)
    return text[:limit]


def _jsonable(value: Any) -> Any:
    """Keep provider payloads storable in a JSON column."""
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return {"raw": str(value)}


async def record_attempt(
    db: AsyncSession,
    *,
    channel: str,
    status: str,
    recipient: Optional[str] = None,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    provider_response: Any = None,
    provider_message_id: Optional[str] = None,
    error: Any = None,
    job_id: Optional[UUID] = None,
    client_id: Optional[str] = None,
    profile_id: Optional[str] = None,
    sent_by: Optional[str] = None,
    follow_up_id: Optional[str] = None,
) -> CommunicationLog:
    """Insert the log row for one attempt and commit it.

    Args:
        channel: "email", "whatsapp", or the unsupported action name
        status: "sent" or "failed"
        provider_response: Raw provider payload; replaced by ``{"error": ...}``
            when the attempt failed without one
        error: Failure reason, truncated before it is stored
    """
    if provider_response is None and error is not None:
        provider_response = {"error": truncate_error(error)}

    entry = CommunicationLog(
        job_id=job_id,
        channel=channel,
        status=status,
        recipient=recipient,
        subject=subject,
        message=message,
        provider_response=_jsonable(provider_response),
        provider_message_id=provider_message_id,
        client_id=client_id,
        profile_id=profile_id,
        sent_by=sent_by,
        follow_up_id=follow_up_id,
        sent_at=utcnow(),
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    logger.info(
        "Communication logged: channel=%s status=%s recipient=%s job=%s",
        channel,
        status,
        recipient,
        job_id,
    )
    return entry


async def list_logs(
    db: AsyncSession,
    channel: Optional[str] = None,
    status: Optional[str] = None,
    job_id: Optional[UUID] = None,
    limit: int = 100,
) -> list[CommunicationLog]:
    query = select(CommunicationLog)
    if channel:
        query = query.where(CommunicationLog.channel == channel)
    if status:
        query = query.where(CommunicationLog.status == status)
    if job_id:
        query = query.where(CommunicationLog.job_id == job_id)
    query = query.order_by(CommunicationLog.sent_at.desc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
