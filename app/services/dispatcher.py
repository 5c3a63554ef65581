"""Automation dispatcher.

One ``run_cycle`` call = fetch due jobs, claim each one, send it through the
matching provider adapter, and record the outcome on the job plus exactly one
communication log row per claimed job. Jobs are handled one after another;
a failure on one job never stops the rest of the batch.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, asdict
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation_job import AutomationJob
from app.schemas.automation import describe_payload_error, job_payload_adapter
from app.services.communication_log import record_attempt, truncate_error
from app.services.job_store import JobStore
from app.services.providers import (
    ActionKind,
    ErrorKind,
    ProviderRegistry,
    ResolvedAction,
    SendResult,
    resolve_action,
)
from app.services.retry_policy import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
    RetryDecision,
    next_retry_state,
    terminal_failure,
)
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """The due-job query failed, so the cycle could not start."""


@dataclass(frozen=True)
class ClaimedJob:
    """Plain copy of a claimed row; stays usable after a session rollback."""
    id: UUID
    attempts: int
    event_type: str | None
    payload: Any

    @classmethod
    def from_model(cls, job: AutomationJob) -> "ClaimedJob":
        return cls(
            id=job.id,
            attempts=job.attempts or 0,
            event_type=job.event_type,
            payload=dict(job.payload) if isinstance(job.payload, dict) else job.payload,
        )


@dataclass
class CycleResult:
    processed: int = 0
    failed: int = 0
    rescheduled: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _recipient_text(value: Any) -> str | None:
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value) if value else None


def _message_text(payload: dict) -> str:
    text = payload.get("body") or payload.get("message")
    if text:
        return str(text)
    return json.dumps(payload.get("template_params") or payload, default=str)


class Dispatcher:
    def __init__(
        self,
        db: AsyncSession,
        registry: ProviderRegistry,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        timeout_seconds: float = 15.0,
    ):
        self.db = db
        self.store = JobStore(db)
        self.registry = registry
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, db: AsyncSession, registry: ProviderRegistry, settings) -> "Dispatcher":
        return cls(
            db,
            registry,
            max_attempts=settings.AUTOMATOR_MAX_ATTEMPTS,
            base_delay_ms=settings.AUTOMATOR_BASE_DELAY_MS,
            timeout_seconds=settings.function_timeout_seconds,
        )

    async def run_cycle(self, limit: int) -> CycleResult:
        try:
            jobs = await self.store.fetch_due(limit)
        except SQLAlchemyError as e:
            logger.error("Could not fetch due automation jobs: %s", e)
            await self._rollback()
            raise StoreUnavailableError(str(e)) from e

        result = CycleResult()
        if not jobs:
            return result

        for job_id in [job.id for job in jobs]:
            try:
                claimed = await self.store.claim(job_id)
            except SQLAlchemyError as e:
                # Never claimed, so it stays pending for the next cycle.
                logger.warning("Claim failed for job %s, skipping this cycle: %s", job_id, e)
                await self._rollback()
                result.skipped += 1
                continue

            if claimed is None:
                result.skipped += 1
                continue

            snapshot = ClaimedJob.from_model(claimed)
            try:
                outcome = await self._process(snapshot)
            except Exception as e:
                logger.exception("Unexpected error processing automation job %s", job_id)
                await self._rollback()
                outcome = await self._recover(snapshot, e)

            if outcome == "sent":
                result.processed += 1
            elif outcome == "rescheduled":
                result.rescheduled += 1
            else:
                result.failed += 1

        logger.info(
            "Automation cycle complete: %d sent, %d rescheduled, %d failed, %d skipped",
            result.processed,
            result.rescheduled,
            result.failed,
            result.skipped,
        )
        return result

    async def _process(self, job: ClaimedJob) -> str:
        if not isinstance(job.payload, dict):
            return await self._fail(
                job,
                resolve_action(None, job.event_type),
                terminal_failure(job.attempts, "invalid payload: payload must be an object"),
                message=json.dumps(job.payload, default=str),
            )

        payload: dict[str, Any] = job.payload
        action = resolve_action(payload, job.event_type)

        if action.kind == ActionKind.UNSUPPORTED:
            return await self._fail(
                job,
                action,
                terminal_failure(job.attempts, f"unsupported action {action.name}"),
                recipient=_recipient_text(payload.get("to")),
                subject=payload.get("subject"),
                message=_message_text(payload),
            )

        try:
            parsed = job_payload_adapter.validate_python({**payload, "action": action.name})
        except ValidationError as e:
            return await self._fail(
                job,
                action,
                terminal_failure(job.attempts, describe_payload_error(e)),
                recipient=_recipient_text(payload.get("to")),
                subject=payload.get("subject"),
                message=_message_text(payload),
            )

        adapter = self.registry.for_kind(action.kind)
        send_result = await self._send(adapter, action, parsed)

        log_fields = {
            "recipient": parsed.recipient,
            "subject": getattr(parsed, "subject", None),
            "message": parsed.text or _message_text(payload),
            "client_id": parsed.client_id,
            "profile_id": parsed.profile_id,
            "sent_by": parsed.sent_by,
        }

        if send_result.ok:
            if not await self.store.mark_sent(job.id):
                logger.warning(
                    "Job %s left processing before its delivery was recorded; logging the send anyway",
                    job.id,
                )
            await record_attempt(
                self.db,
                channel=action.channel,
                status="sent",
                provider_response=send_result.raw_response or {"ok": True},
                provider_message_id=send_result.provider_id,
                job_id=job.id,
                **log_fields,
            )
            return "sent"

        if send_result.retryable:
            decision = next_retry_state(
                job.attempts,
                send_result.error,
                utcnow(),
                max_attempts=self.max_attempts,
                base_delay_ms=self.base_delay_ms,
            )
        else:
            decision = terminal_failure(job.attempts, send_result.error)

        return await self._fail(
            job,
            action,
            decision,
            provider_response=send_result.raw_response,
            **log_fields,
        )

    async def _send(self, adapter, action: ResolvedAction, parsed) -> SendResult:
        try:
            return await asyncio.wait_for(
                adapter.send(
                    action.name,
                    parsed.recipient,
                    parsed.text,
                    subject=getattr(parsed, "subject", None),
                    template_id=getattr(parsed, "template_id", None),
                    template_params=parsed.template_params,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f"provider timeout after {self.timeout_seconds}s"
            logger.warning("%s send timed out for recipient %s", action.channel, parsed.recipient)
            return SendResult(ok=False, raw_response={"error": error}, error=error, error_kind=ErrorKind.TRANSIENT)

    async def _fail(
        self,
        job: ClaimedJob,
        action: ResolvedAction,
        decision: RetryDecision,
        provider_response: Any = None,
        **log_fields,
    ) -> str:
        await self.store.mark_failed_or_rescheduled(job.id, decision)
        await record_attempt(
            self.db,
            channel=action.channel,
            status="failed",
            provider_response=provider_response,
            error=decision.last_error,
            job_id=job.id,
            **log_fields,
        )
        return "failed" if decision.terminal else "rescheduled"

    async def _recover(self, job: ClaimedJob, exc: Exception) -> str:
        """Treat an unexpected error after the claim as a retryable failure."""
        payload = job.payload if isinstance(job.payload, dict) else {}
        action = resolve_action(payload, job.event_type)
        decision = next_retry_state(
            job.attempts,
            exc,
            utcnow(),
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
        )
        try:
            return await self._fail(
                job,
                action,
                decision,
                recipient=_recipient_text(payload.get("to")),
                subject=payload.get("subject"),
                message=_message_text(payload),
            )
        except SQLAlchemyError as e:
            logger.error(
                "Could not record failure for job %s (left in processing): %s",
                job.id,
                truncate_error(e, 200),
            )
            await self._rollback()
            return "failed"

    async def _rollback(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error("Session rollback failed: %s", e)
