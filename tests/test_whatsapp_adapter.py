"""Tests for the Twilio WhatsApp adapter."""

from unittest.mock import MagicMock

import pytest
from twilio.base.exceptions import TwilioRestException

from app.services.providers import ErrorKind
from app.services.whatsapp import WhatsAppAdapter, normalize_phone


def make_adapter(client=None, from_number="+14155238886"):
    return WhatsAppAdapter(
        account_sid="",
        auth_token="",
        from_number=from_number,
        client=client,
    )


def test_normalize_phone_adds_default_country_code():
    assert normalize_phone("98765 43210") == "+919876543210"


def test_normalize_phone_strips_whatsapp_prefix_and_punctuation():
    assert normalize_phone("whatsapp:+1 (555) 123-4567") == "+15551234567"


def test_normalize_phone_empty():
    assert normalize_phone("") == ""
    assert normalize_phone("n/a") == ""


@pytest.mark.asyncio
async def test_send_skipped_when_no_credentials():
    """Without a Twilio client the send fails as a configuration error."""
    result = await make_adapter().send("send_whatsapp", "+15551234567", "hi")

    assert result.ok is False
    assert result.error_kind == ErrorKind.CONFIGURATION
    assert result.retryable is False


@pytest.mark.asyncio
async def test_send_success_returns_sid():
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SM123", status="queued")

    result = await make_adapter(client).send("send_whatsapp", "9876543210", "Your order shipped")

    assert result.ok is True
    assert result.provider_id == "SM123"
    client.messages.create.assert_called_once_with(
        from_="whatsapp:+14155238886",
        to="whatsapp:+919876543210",
        body="Your order shipped",
    )


@pytest.mark.asyncio
async def test_missing_phone_is_validation_error():
    client = MagicMock()

    result = await make_adapter(client).send("send_whatsapp", None, "hi")

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.error == "missing_phone"
    client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_twilio_4xx_is_not_retried():
    client = MagicMock()
    client.messages.create.side_effect = TwilioRestException(400, "/Messages", msg="Invalid 'To' number", code=21211)

    result = await make_adapter(client).send("send_whatsapp", "+15551234567", "hi")

    assert result.ok is False
    assert result.error_kind == ErrorKind.VALIDATION
    assert result.raw_response["code"] == 21211


@pytest.mark.asyncio
async def test_twilio_5xx_is_retried():
    client = MagicMock()
    client.messages.create.side_effect = TwilioRestException(503, "/Messages", msg="Service unavailable")

    result = await make_adapter(client).send("send_whatsapp", "+15551234567", "hi")

    assert result.retryable is True


@pytest.mark.asyncio
async def test_twilio_auth_failure_is_configuration_error():
    client = MagicMock()
    client.messages.create.side_effect = TwilioRestException(401, "/Messages", msg="Authenticate")

    result = await make_adapter(client).send("send_whatsapp", "+15551234567", "hi")

    assert result.error_kind == ErrorKind.CONFIGURATION


@pytest.mark.asyncio
async def test_network_error_is_retried():
    client = MagicMock()
    client.messages.create.side_effect = ConnectionError("reset by peer")

    result = await make_adapter(client).send("send_whatsapp", "+15551234567", "hi")

    assert result.retryable is True
    assert "reset by peer" in result.error
