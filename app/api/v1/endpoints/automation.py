"""Automation queue endpoints.

trigger/retry/enqueue are called by cron and database hooks and authenticate
with the ``x-automation-secret`` header. jobs/manual-send are for operators and
need an admin bearer token.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import (
    check_automation_secret,
    get_provider_registry,
    require_admin,
    verify_automation_secret,
)
from app.models.profile import Profile
from app.schemas.automation import (
    AutomationJobList,
    AutomationJobOut,
    EnqueueRequest,
    EnqueueResponse,
    ManualSendRequest,
    ManualSendResponse,
    RetryJobRequest,
    RetryJobResponse,
    TriggerRequest,
    TriggerResponse,
    describe_payload_error,
    job_payload_adapter,
)
from app.services.dispatcher import Dispatcher, StoreUnavailableError
from app.services.job_store import JobBusyError, JobStore
from app.services.manual_send import manual_send
from app.services.providers import ActionKind, ProviderRegistry, resolve_action

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/trigger", response_model=TriggerResponse, dependencies=[Depends(verify_automation_secret)])
async def trigger_cycle(
    body: Optional[TriggerRequest] = None,
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    """Run one dispatch cycle now and report what happened."""
    limit = (body.limit if body and body.limit else None) or settings.AUTOMATION_BATCH_LIMIT
    limit = min(limit, settings.AUTOMATION_MAX_BATCH_LIMIT)

    dispatcher = Dispatcher.from_settings(db, registry, settings)
    try:
        result = await dispatcher.run_cycle(limit)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Job store unavailable: {e}")

    return TriggerResponse(**result.to_dict())


@router.post("/retry", response_model=RetryJobResponse)
async def retry_job(
    body: RetryJobRequest,
    x_automation_secret: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Reset a job to pending with a fresh attempt count.

    The secret may come in the header or, for older callers, in the body.
    """
    check_automation_secret(x_automation_secret or body.automation_secret)

    store = JobStore(db)
    try:
        job = await store.reset(body.job_id, force=body.force)
    except JobBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return RetryJobResponse(ok=True, job=AutomationJobOut.model_validate(job))


@router.post("/enqueue", response_model=EnqueueResponse, dependencies=[Depends(verify_automation_secret)])
async def enqueue_job(
    body: EnqueueRequest,
    db: AsyncSession = Depends(get_db),
):
    """Insert a pending job after checking its payload against the channel schemas."""
    action = resolve_action(body.event_payload, body.event_type)
    if action.kind == ActionKind.UNSUPPORTED:
        raise HTTPException(status_code=422, detail=f"unsupported action {action.name or '(none)'}")

    payload = {**body.event_payload, "action": action.name}
    try:
        job_payload_adapter.validate_python(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=describe_payload_error(e))

    try:
        job = await JobStore(db).enqueue(
            payload,
            event_table=body.event_table,
            event_type=body.event_type or action.name,
            job_id=body.id,
        )
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail=f"Job {body.id} already exists")
    return EnqueueResponse(success=True, inserted=AutomationJobOut.model_validate(job))


@router.get("/jobs", response_model=AutomationJobList)
async def list_jobs(
    status: Optional[str] = Query(None, description="Filter by job status"),
    limit: int = Query(50, ge=1, le=500),
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    jobs, total = await JobStore(db).list_jobs(status=status, limit=limit)
    return AutomationJobList(
        jobs=[AutomationJobOut.model_validate(j) for j in jobs],
        total=total,
    )


@router.post("/manual-send", response_model=ManualSendResponse)
async def manual_send_endpoint(
    body: ManualSendRequest,
    current_profile: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    """Queue or directly send a template to a list of recipients."""
    results = await manual_send(db, registry, body, current_profile)
    return ManualSendResponse(success=True, results=results)
