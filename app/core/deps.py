"""FastAPI dependencies for authentication."""

import hmac
import logging
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.models.profile import Profile
from app.services.auth import decode_access_token, get_profile_by_id
from app.services.providers import ProviderRegistry

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def check_automation_secret(provided: Optional[str]) -> None:
    """Compare a caller-supplied secret with AUTOMATION_SECRET.

    No-op when the secret is not configured.
    """
    expected = settings.AUTOMATION_SECRET
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected automation call: secret missing or invalid")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized (automation secret missing or invalid)",
        )


async def verify_automation_secret(
    x_automation_secret: Optional[str] = Header(default=None),
) -> None:
    check_automation_secret(x_automation_secret)


async def get_current_profile(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Extract and validate the bearer token, return the caller's profile."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing_authorization_header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="token_expired_or_invalid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        profile_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid_token",
        )

    profile = await get_profile_by_id(db, profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="profile_not_found",
        )

    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="profile_disabled",
        )

    return profile


def require_role(*roles: str):
    """Dependency factory that checks the caller's profile role.

    Usage:
        @router.post("/admin-only")
        async def admin_route(profile: Profile = Depends(require_role("admin"))):
            ...
    """
    allowed = {r.lower() for r in roles}

    async def role_checker(current_profile: Profile = Depends(get_current_profile)) -> Profile:
        if str(current_profile.role or "").lower() not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="forbidden_not_admin",
            )
        return current_profile

    return role_checker


require_admin = require_role(*settings.ADMIN_ROLES)


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    """Adapters are built once per process from settings."""
    return ProviderRegistry.from_settings(settings)
