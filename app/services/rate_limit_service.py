"""Daily cap on operator-initiated direct sends.

Counts today's communication log rows attributed to the operator. Enqueued
jobs are not counted here; they are sent later by the dispatcher.
"""

import logging

from fastapi import HTTPException
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.communication_log import CommunicationLog
from app.models.profile import Profile
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def check_send_rate_limit(db: AsyncSession, profile: Profile, requested: int = 1):
    """Raise HTTPException 429 if ``requested`` more sends would exceed today's limit."""
    daily_limit = settings.MANUAL_SEND_DAILY_LIMIT
    today_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    usage_query = await db.execute(
        select(func.count(CommunicationLog.id)).where(
            and_(
                CommunicationLog.sent_by == str(profile.id),
                CommunicationLog.sent_at >= today_start,
            )
        )
    )
    current_usage = usage_query.scalar() or 0

    if current_usage + requested > daily_limit:
        logger.warning(
            "Send limit exceeded for %s: %d used + %d requested > %d",
            profile.email,
            current_usage,
            requested,
            daily_limit,
        )
        raise HTTPException(
            status_code=429,
            detail="Daily send limit exceeded. Use enqueue mode or try again tomorrow.",
        )

    remaining = daily_limit - current_usage
    logger.debug("Send limit check for %s: %d/%d used", profile.email, current_usage, daily_limit)
    return {"limit": daily_limit, "used": current_usage, "remaining": remaining}
