"""Seed script to create or promote an admin profile and print a bearer token.

Usage:
    python -m app.scripts.seed_admin --email=ops@example.com --name="Ops Admin"

The printed token is what the admin endpoints expect in
``Authorization: Bearer <token>``.
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from sqlalchemy import select

from app.core.database import async_session_maker
from app.models.profile import Profile
from app.services.auth import create_access_token


async def create_or_update_admin(email: str, full_name: str, role: str, days: int) -> str:
    """Create a new admin profile or promote an existing one. Returns a token."""
    async with async_session_maker() as db:
        result = await db.execute(select(Profile).where(Profile.email == email))
        profile = result.scalar_one_or_none()

        if profile:
            print(f"Profile {email} already exists. Updating role to {role}...")
            profile.role = role
            profile.is_active = True
        else:
            print(f"Creating new {role} profile: {email}...")
            profile = Profile(email=email, full_name=full_name, role=role, is_active=True)
            db.add(profile)

        await db.commit()
        await db.refresh(profile)

    return create_access_token({"sub": str(profile.id)}, expires_delta=timedelta(days=days))


def main():
    """Parse CLI arguments and run the seed script."""
    parser = argparse.ArgumentParser(description="Create or update an admin profile for the automation API")
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument("--name", default="Admin", help="Display name")
    parser.add_argument("--role", default="admin", help="Role to grant (must be one of ADMIN_ROLES)")
    parser.add_argument("--days", type=int, default=30, help="Token lifetime in days")

    args = parser.parse_args()

    if "@" not in args.email or "." not in args.email:
        print("Error: Invalid email format.", file=sys.stderr)
        sys.exit(1)

    token = asyncio.run(create_or_update_admin(args.email, args.name, args.role, args.days))
    print(f"\nAdmin setup complete for {args.email} (role={args.role})")
    print(f"Bearer token (valid {args.days} days):\n{token}")


if __name__ == "__main__":
    main()
