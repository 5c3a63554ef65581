"""Tests for direct sends and the communication log endpoints."""

import pytest
from sqlalchemy import select

from app.models.communication_log import CommunicationLog
from app.services.communication_log import record_attempt, truncate_error
from app.services.providers import ErrorKind, SendResult


@pytest.mark.asyncio
async def test_single_send_email(client, db, admin, email_adapter):
    resp = await client.post(
        "/api/v1/communications/send",
        json={"channel": "email", "recipient": "buyer@example.com", "subject": "Quote", "message": "Attached"},
        headers=admin["headers"],
    )

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["status"] == "sent"
    assert email_adapter.calls[0]["subject"] == "Quote"

    logs = (await db.execute(select(CommunicationLog))).scalars().all()
    assert len(logs) == 1
    assert logs[0].recipient == "buyer@example.com"
    assert logs[0].sent_by == str(admin["profile"].id)


@pytest.mark.asyncio
async def test_single_send_failure_is_logged(client, db, admin, whatsapp_adapter):
    whatsapp_adapter.results = [
        SendResult(ok=False, error="Twilio error 400", error_kind=ErrorKind.VALIDATION, raw_response={"status": 400})
    ]

    resp = await client.post(
        "/api/v1/communications/send",
        json={"channel": "whatsapp", "recipient": "12345", "message": "hi"},
        headers=admin["headers"],
    )

    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["status"] == "failed"

    logs = (await db.execute(select(CommunicationLog))).scalars().all()
    assert logs[0].status == "failed"
    assert logs[0].channel == "whatsapp"


@pytest.mark.asyncio
async def test_single_send_requires_admin(client, staff):
    resp = await client.post(
        "/api/v1/communications/send",
        json={"channel": "email", "recipient": "buyer@example.com", "message": "x"},
        headers=staff["headers"],
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_bulk_email_logs_every_recipient(client, db, admin, email_adapter):
    resp = await client.post(
        "/api/v1/communications/email",
        json={
            "recipients": [{"email": "a@example.com", "client_id": "c-1"}, {"email": "b@example.com"}],
            "subject": "Price list",
            "message": "New prices attached",
            "follow_up_id": "f-9",
        },
        headers=admin["headers"],
    )

    assert resp.status_code == 200
    results = resp.json()["results"]
    assert [r["recipient"] for r in results] == ["a@example.com", "b@example.com"]
    assert all(r["ok"] for r in results)

    logs = (await db.execute(select(CommunicationLog))).scalars().all()
    assert len(logs) == 2
    assert all(entry.follow_up_id == "f-9" for entry in logs)


@pytest.mark.asyncio
async def test_bulk_whatsapp_uses_phone(client, admin, whatsapp_adapter):
    resp = await client.post(
        "/api/v1/communications/whatsapp",
        json={"recipients": [{"phone": "9876543210", "email": "x@example.com"}], "message": "Shipment left port"},
        headers=admin["headers"],
    )

    assert resp.status_code == 200
    assert whatsapp_adapter.calls[0]["recipient"] == "9876543210"


@pytest.mark.asyncio
async def test_logs_endpoint_filters(client, db, admin):
    await record_attempt(db, channel="email", status="sent", recipient="a@example.com")
    await record_attempt(db, channel="whatsapp", status="failed", recipient="+919876543210", error="boom")

    resp = await client.get("/api/v1/communications/logs?status=failed", headers=admin["headers"])

    assert resp.status_code == 200
    logs = resp.json()["logs"]
    assert len(logs) == 1
    assert logs[0]["channel"] == "whatsapp"
    assert logs[0]["provider_response"] == {"error": "boom"}


@pytest.mark.asyncio
async def test_record_attempt_truncates_error(db):
    entry = await record_attempt(db, channel="email", status="failed", error="e" * 3000)

    assert len(entry.provider_response["error"]) == 1000


def test_truncate_error_leaves_short_text():
    assert truncate_error("short") == "short"
    assert truncate_error(ValueError("bad")) == "bad"
