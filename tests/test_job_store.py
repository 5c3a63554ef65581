"""Tests for the automation job store."""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from app.models.automation_job import AutomationJob
from app.services.job_store import JobBusyError, JobStore
from app.services.retry_policy import next_retry_state
from app.utils.clock import utcnow


def email_payload(to="ops@example.com"):
    return {"action": "send_email", "to": to, "subject": "Hi", "body": "Hello"}


@pytest.mark.asyncio
async def test_enqueue_creates_pending_job_due_now(db):
    job = await JobStore(db).enqueue(email_payload(), event_table="orders", event_type="insert")

    assert job.status == "pending"
    assert job.attempts == 0
    assert job.event_source == "api"
    assert job.next_run_at <= utcnow()
    assert job.last_error is None


@pytest.mark.asyncio
async def test_fetch_due_orders_by_next_run_and_skips_future(db):
    store = JobStore(db)
    now = utcnow()
    later = await store.enqueue(email_payload("b@example.com"), next_run_at=now - timedelta(minutes=1))
    earlier = await store.enqueue(email_payload("a@example.com"), next_run_at=now - timedelta(minutes=5))
    await store.enqueue(email_payload("c@example.com"), next_run_at=now + timedelta(minutes=5))

    due = await store.fetch_due(10)

    assert [j.id for j in due] == [earlier.id, later.id]


@pytest.mark.asyncio
async def test_fetch_due_respects_limit(db):
    store = JobStore(db)
    for i in range(3):
        await store.enqueue(email_payload(f"u{i}@example.com"))

    assert len(await store.fetch_due(2)) == 2


@pytest.mark.asyncio
async def test_fetch_due_ignores_non_pending(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())
    await store.claim(job.id)

    assert await store.fetch_due(10) == []


@pytest.mark.asyncio
async def test_claim_moves_job_to_processing(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())

    claimed = await store.claim(job.id)

    assert claimed is not None
    assert claimed.status == "processing"


@pytest.mark.asyncio
async def test_two_workers_claim_same_job_exactly_once(db, session_factory):
    """Both workers see the job as due; only one claim may win."""
    job = await JobStore(db).enqueue(email_payload())

    async with session_factory() as worker_a, session_factory() as worker_b:
        store_a, store_b = JobStore(worker_a), JobStore(worker_b)
        due_a = await store_a.fetch_due(10)
        due_b = await store_b.fetch_due(10)
        assert [j.id for j in due_a] == [j.id for j in due_b] == [job.id]

        results = [await store_a.claim(job.id), await store_b.claim(job.id)]

    assert sum(1 for r in results if r is not None) == 1


@pytest.mark.asyncio
async def test_claim_unknown_job_returns_none(db):
    assert await JobStore(db).claim(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_mark_sent_clears_schedule(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())
    await store.claim(job.id)

    assert await store.mark_sent(job.id) is True

    job = await store.get(job.id)
    assert job.status == "sent"
    assert job.next_run_at is None


@pytest.mark.asyncio
async def test_outcome_not_written_unless_processing(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())

    assert await store.mark_sent(job.id) is False
    assert (await store.get(job.id)).status == "pending"


@pytest.mark.asyncio
async def test_mark_failed_or_rescheduled_writes_decision(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())
    await store.claim(job.id)
    now = utcnow()

    await store.mark_failed_or_rescheduled(job.id, next_retry_state(0, "timeout", now))

    job = await store.get(job.id)
    assert job.status == "pending"
    assert job.attempts == 1
    assert job.last_error == "timeout"
    assert job.next_run_at == now + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_reset_restores_failed_job(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())
    await db.execute(
        update(AutomationJob)
        .where(AutomationJob.id == job.id)
        .values(status="failed", attempts=5, next_run_at=None, last_error="boom")
    )
    await db.commit()

    reset = await store.reset(job.id)

    assert reset.status == "pending"
    assert reset.attempts == 0
    assert reset.last_error is None
    assert reset.next_run_at <= utcnow()


@pytest.mark.asyncio
async def test_reset_is_idempotent(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())

    first = await store.reset(job.id)
    second = await store.reset(job.id)

    assert first.status == second.status == "pending"
    assert first.attempts == second.attempts == 0


@pytest.mark.asyncio
async def test_reset_refuses_processing_job_unless_forced(db):
    store = JobStore(db)
    job = await store.enqueue(email_payload())
    await store.claim(job.id)

    with pytest.raises(JobBusyError):
        await store.reset(job.id)

    forced = await store.reset(job.id, force=True)
    assert forced.status == "pending"


@pytest.mark.asyncio
async def test_reset_does_not_undo_claim_landing_mid_reset(db, session_factory):
    """A worker claims the job just before the reset's UPDATE runs."""
    job = await JobStore(db).enqueue(email_payload())

    async with session_factory() as operator, session_factory() as worker:
        worker_claims = []
        real_execute = operator.execute

        async def claim_then_execute(statement, *args, **kwargs):
            if not worker_claims:
                worker_claims.append(await JobStore(worker).claim(job.id))
            return await real_execute(statement, *args, **kwargs)

        with patch.object(operator, "execute", claim_then_execute):
            with pytest.raises(JobBusyError):
                await JobStore(operator).reset(job.id)

        assert worker_claims[0] is not None
        assert (await JobStore(worker).get(job.id)).status == "processing"
        assert await JobStore(worker).claim(job.id) is None


@pytest.mark.asyncio
async def test_reset_missing_job_returns_none(db):
    assert await JobStore(db).reset(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_list_jobs_filters_by_status(db):
    store = JobStore(db)
    first = await store.enqueue(email_payload("a@example.com"))
    await store.enqueue(email_payload("b@example.com"))
    await store.claim(first.id)

    jobs, total = await store.list_jobs(status="pending")
    assert total == 1
    assert jobs[0].payload["to"] == "b@example.com"

    _, total_all = await store.list_jobs()
    assert total_all == 2
