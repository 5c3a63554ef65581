"""Automation job store.

Durable queue state in the ``automation_queue`` table. The only concurrency
primitive is ``claim``: a conditional UPDATE that moves a job from ``pending``
to ``processing`` and succeeds for exactly one caller.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation_job import AutomationJob, JobStatus
from app.services.retry_policy import RetryDecision
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class JobBusyError(Exception):
    """Raised when resetting a job another worker is processing."""


class JobStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        payload: Dict[str, Any],
        event_table: Optional[str] = None,
        event_type: Optional[str] = None,
        event_source: str = "api",
        job_id: Optional[UUID] = None,
        next_run_at: Optional[datetime] = None,
    ) -> AutomationJob:
        """Insert a new pending job, due immediately unless ``next_run_at`` is given."""
        now = utcnow()
        job = AutomationJob(
            event_source=event_source,
            event_table=event_table,
            event_type=event_type,
            payload=payload,
            status=JobStatus.PENDING.value,
            attempts=0,
            next_run_at=next_run_at or now,
            created_at=now,
            updated_at=now,
        )
        if job_id:
            job.id = job_id

        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)

        logger.info(
            "Enqueued automation job: id=%s source=%s action=%s",
            job.id,
            event_source,
            payload.get("action") or event_type,
        )
        return job

    async def get(self, job_id: UUID) -> Optional[AutomationJob]:
        return await self.db.get(AutomationJob, job_id, populate_existing=True)

    async def list_jobs(self, status: Optional[str] = None, limit: int = 50) -> tuple[list[AutomationJob], int]:
        """Newest jobs first, optionally filtered by status. Returns (jobs, total)."""
        query = select(AutomationJob)
        count_query = select(func.count(AutomationJob.id))
        if status:
            query = query.where(AutomationJob.status == status)
            count_query = count_query.where(AutomationJob.status == status)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(query.order_by(AutomationJob.created_at.desc()).limit(limit))
        return list(result.scalars().all()), total

    async def fetch_due(self, limit: int, now: Optional[datetime] = None) -> list[AutomationJob]:
        """Pending jobs whose ``next_run_at`` has passed, oldest-due first."""
        now = now or utcnow()
        query = (
            select(AutomationJob)
            .where(
                AutomationJob.status == JobStatus.PENDING.value,
                AutomationJob.next_run_at <= now,
            )
            .order_by(AutomationJob.next_run_at.asc(), AutomationJob.created_at.asc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        jobs = list(result.scalars().all())
        logger.info("Found %d due automation jobs (limit=%d)", len(jobs), limit)
        return jobs

    async def claim(self, job_id: UUID) -> Optional[AutomationJob]:
        """Move a job from pending to processing.

        Returns the claimed job, or None when the conditional update matched no
        row because another worker got there first.
        """
        result = await self.db.execute(
            update(AutomationJob)
            .where(
                AutomationJob.id == job_id,
                AutomationJob.status == JobStatus.PENDING.value,
            )
            .values(status=JobStatus.PROCESSING.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount != 1:
            logger.info("Job %s already claimed or no longer pending; skipping", job_id)
            return None

        return await self.get(job_id)

    async def _finish(self, job_id: UUID, values: Dict[str, Any]) -> bool:
        """Write an outcome for a job this worker holds in ``processing``."""
        values["updated_at"] = utcnow()
        result = await self.db.execute(
            update(AutomationJob)
            .where(
                AutomationJob.id == job_id,
                AutomationJob.status == JobStatus.PROCESSING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount != 1:
            logger.warning("Job %s left processing before its outcome was written", job_id)
            return False
        return True

    async def mark_sent(self, job_id: UUID) -> bool:
        updated = await self._finish(
            job_id,
            {"status": JobStatus.SENT.value, "last_error": None, "next_run_at": None},
        )
        if updated:
            logger.info("Automation job sent: id=%s", job_id)
        return updated

    async def mark_failed_or_rescheduled(self, job_id: UUID, decision: RetryDecision) -> bool:
        updated = await self._finish(
            job_id,
            {
                "status": decision.status,
                "attempts": decision.attempts,
                "next_run_at": decision.next_run_at,
                "last_error": decision.last_error,
            },
        )
        if not updated:
            return False

        if decision.terminal:
            logger.error(
                "Automation job failed permanently: id=%s attempts=%d error=%s",
                job_id,
                decision.attempts,
                decision.last_error[:100],
            )
        else:
            logger.warning(
                "Automation job attempt %d failed, retry at %s: id=%s error=%s",
                decision.attempts,
                decision.next_run_at.isoformat(),
                job_id,
                decision.last_error[:100],
            )
        return True

    async def reset(self, job_id: UUID, force: bool = False) -> Optional[AutomationJob]:
        """Put a job back in the queue with a clean attempt count.

        Safe to repeat. A job currently in ``processing`` is only reset with
        ``force=True`` (e.g. after a worker died holding it). The status guard
        is part of the UPDATE so a claim landing mid-reset is never undone.
        """
        now = utcnow()
        query = update(AutomationJob).where(AutomationJob.id == job_id)
        if not force:
            query = query.where(AutomationJob.status != JobStatus.PROCESSING.value)

        result = await self.db.execute(
            query.values(
                status=JobStatus.PENDING.value,
                attempts=0,
                next_run_at=now,
                last_error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        job = await self.get(job_id)
        if result.rowcount != 1:
            if job is None:
                return None
            raise JobBusyError(f"job {job_id} is being processed")

        logger.info("Automation job reset to pending: id=%s (force=%s)", job_id, force)
        return job
