"""Direct (unqueued) sends and the communication log."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_provider_registry, require_admin
from app.models.profile import Profile
from app.schemas.communication import (
    BulkSendRequest,
    BulkSendResponse,
    CommunicationLogList,
    CommunicationLogOut,
    SingleSendRequest,
    SingleSendResponse,
)
from app.services.communication_log import list_logs
from app.services.manual_send import send_bulk, send_single
from app.services.providers import ProviderRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/send", response_model=SingleSendResponse)
async def send_one(
    body: SingleSendRequest,
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    result = await send_single(
        db,
        registry,
        body.channel,
        body.recipient,
        body.message,
        subject=body.subject,
        sent_by=str(current_profile.id),
    )
    return SingleSendResponse(
        success=result.ok,
        status="sent" if result.ok else "failed",
        response=result.raw_response,
    )


async def _bulk(channel: str, body: BulkSendRequest, current_profile: Profile, db, registry) -> BulkSendResponse:
    results = await send_bulk(
        db,
        registry,
        channel,
        body.recipients,
        body.message,
        subject=body.subject or None,
        template_id=body.template_id,
        initiated_by=body.initiated_by or str(current_profile.id),
        follow_up_id=body.follow_up_id,
    )
    logger.info("Bulk %s send: %d recipients, %d ok", channel, len(results), sum(1 for r in results if r["ok"]))
    return BulkSendResponse(ok=True, results=results)


@router.post("/email", response_model=BulkSendResponse)
async def send_email_bulk(
    body: BulkSendRequest,
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    """Email every recipient that has an address; others are logged as failed."""
    return await _bulk("email", body, current_profile, db, registry)


@router.post("/whatsapp", response_model=BulkSendResponse)
async def send_whatsapp_bulk(
    body: BulkSendRequest,
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    return await _bulk("whatsapp", body, current_profile, db, registry)


@router.get("/logs", response_model=CommunicationLogList)
async def get_logs(
    channel: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    job_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    logs = await list_logs(db, channel=channel, status=status, job_id=job_id, limit=limit)
    return CommunicationLogList(
        logs=[CommunicationLogOut.model_validate(entry) for entry in logs],
        total=len(logs),
    )
