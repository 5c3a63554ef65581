"""Operator-initiated sends.

``manual_send`` either queues one job per recipient or calls the provider
right away. ``send_single`` and ``send_bulk`` always send directly. Every direct
attempt leaves one communication log row, successful or not.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile
from app.schemas.automation import ManualSendRequest, Recipient, job_payload_adapter
from app.services.communication_log import record_attempt
from app.services.job_store import JobStore
from app.services.providers import ActionKind, ProviderRegistry, SendResult
from app.services.rate_limit_service import check_send_rate_limit

logger = logging.getLogger(__name__)

CHANNEL_ACTIONS = {
    "email": "send_email",
    "whatsapp": "send_whatsapp",
}


def _address(recipient: Recipient, channel: str) -> Optional[str]:
    return recipient.email if channel == "email" else recipient.phone


def merge_template_params(global_params: dict | None, recipient: Recipient) -> dict[str, Any]:
    """Per-recipient params win over the request-wide ones."""
    params: dict[str, Any] = dict(global_params or {})
    if recipient.full_name and "name" not in params:
        params["name"] = recipient.full_name
    params.update(recipient.template_params or {})
    return params


def _result(recipient: Recipient, address: Optional[str], **fields) -> dict[str, Any]:
    return {
        "recipient": address,
        "client_id": recipient.client_id,
        "profile_id": recipient.profile_id,
        **fields,
    }


async def _send_and_log(
    db: AsyncSession,
    registry: ProviderRegistry,
    channel: str,
    address: Optional[str],
    message: str,
    subject: Optional[str] = None,
    template_id: Optional[str] = None,
    template_params: Optional[dict] = None,
    client_id: Optional[str] = None,
    profile_id: Optional[str] = None,
    sent_by: Optional[str] = None,
    follow_up_id: Optional[str] = None,
) -> SendResult:
    adapter = registry.for_kind(ActionKind(channel))
    result = await adapter.send(
        CHANNEL_ACTIONS[channel],
        address,
        message,
        subject=subject,
        template_id=template_id,
        template_params=template_params,
    )
    await record_attempt(
        db,
        channel=channel,
        status="sent" if result.ok else "failed",
        recipient=address,
        subject=subject,
        message=message,
        provider_response=result.raw_response,
        provider_message_id=result.provider_id,
        error=result.error,
        client_id=client_id,
        profile_id=profile_id,
        sent_by=sent_by,
        follow_up_id=follow_up_id,
    )
    return result


async def manual_send(
    db: AsyncSession,
    registry: ProviderRegistry,
    request: ManualSendRequest,
    sender: Profile,
) -> list[dict[str, Any]]:
    """Queue or directly send ``request.template_id`` to every recipient.

    Returns one result dict per recipient, in request order. A recipient that
    cannot be queued (e.g. no address for the channel) gets ``ok: False`` and
    does not stop the others.
    """
    sent_by = str(sender.id)
    results: list[dict[str, Any]] = []

    if request.mode == "direct":
        await check_send_rate_limit(db, sender, len(request.recipients))

    store = JobStore(db)
    for recipient in request.recipients:
        address = _address(recipient, request.channel)
        params = merge_template_params(request.template_params, recipient)
        message = str(params.get("message") or "")
        subject = params.get("subject")

        if request.mode == "enqueue":
            payload = {
                "action": CHANNEL_ACTIONS[request.channel],
                "to": address,
                "subject": subject,
                "message": message or None,
                "template_id": request.template_id,
                "template_params": params,
                "client_id": recipient.client_id,
                "profile_id": recipient.profile_id,
                "sent_by": sent_by,
            }
            try:
                job_payload_adapter.validate_python(payload)
            except ValidationError as e:
                logger.warning("Manual send: skipping recipient %s: %s", address, e.errors()[0].get("msg"))
                results.append(_result(recipient, address, ok=False, error=e.errors()[0].get("msg")))
                continue

            job = await store.enqueue(
                payload,
                event_table="manual_send",
                event_type=payload["action"],
                event_source="manual_send",
            )
            results.append(_result(recipient, address, ok=True, status=job.status, job_id=str(job.id)))
            continue

        send_result = await _send_and_log(
            db,
            registry,
            request.channel,
            address,
            message,
            subject=subject,
            template_id=request.template_id,
            template_params=params,
            client_id=recipient.client_id,
            profile_id=recipient.profile_id,
            sent_by=sent_by,
        )
        results.append(
            _result(
                recipient,
                address,
                ok=send_result.ok,
                status="sent" if send_result.ok else "failed",
                provider_id=send_result.provider_id,
                error=send_result.error,
            )
        )

    logger.info(
        "Manual send by %s: mode=%s channel=%s recipients=%d ok=%d",
        sender.email,
        request.mode,
        request.channel,
        len(results),
        sum(1 for r in results if r["ok"]),
    )
    return results


async def send_single(
    db: AsyncSession,
    registry: ProviderRegistry,
    channel: str,
    recipient: str,
    message: str,
    subject: Optional[str] = None,
    sent_by: Optional[str] = None,
) -> SendResult:
    return await _send_and_log(
        db,
        registry,
        channel,
        recipient,
        message,
        subject=subject,
        sent_by=sent_by,
    )


async def send_bulk(
    db: AsyncSession,
    registry: ProviderRegistry,
    channel: str,
    recipients: list[Recipient],
    message: str,
    subject: Optional[str] = None,
    template_id: Optional[str] = None,
    initiated_by: Optional[str] = None,
    follow_up_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Send the same message to each recipient, one provider call each."""
    results = []
    for recipient in recipients:
        address = _address(recipient, channel)
        send_result = await _send_and_log(
            db,
            registry,
            channel,
            address,
            message,
            subject=subject,
            template_id=template_id,
            template_params=recipient.template_params or None,
            client_id=recipient.client_id,
            profile_id=recipient.profile_id,
            sent_by=initiated_by,
            follow_up_id=follow_up_id,
        )
        results.append(
            _result(
                recipient,
                address,
                ok=send_result.ok,
                provider_id=send_result.provider_id,
                error=send_result.error,
            )
        )
    return results
