#!/usr/bin/env python3
"""Create an administrator account, or promote an existing user.

Public registration refuses the ADMIN role, so the first administrator is
created with this script.

Usage:
    # Using environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... ADMIN_NAME=Admin python scripts/bootstrap_admin.py

    # Or with command line args:
    python scripts/bootstrap_admin.py --email admin@example.com --password ... --name Admin

Environment Variables:
    ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME: Account details
    DATABASE_URL, ACCESS_TOKEN_SECRET, REFRESH_TOKEN_SECRET: Service configuration
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from user_service.auth.models import Role  # noqa: E402
from user_service.auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher  # noqa: E402
from user_service.auth.store import SQLAlchemyUserStore, UserStore  # noqa: E402


async def bootstrap_admin(
    store: UserStore,
    hasher: PasswordHasher,
    email: str,
    password: str,
    name: str,
    dry_run: bool = False,
) -> dict:
    """Create or promote an admin user.

    Returns:
        dict with user_id, email and status ('created', 'promoted',
        'already_admin' or 'dry_run')
    """
    existing_user = await store.find_by_email(email)

    if existing_user:
        if existing_user.role is Role.ADMIN:
            print(f"User {existing_user.email} already exists as admin (id: {existing_user.id})")
            return {"user_id": existing_user.id, "email": existing_user.email, "status": "already_admin"}

        if dry_run:
            print(f"[DRY RUN] Would promote existing user {existing_user.email} to admin")
            return {"user_id": existing_user.id, "email": existing_user.email, "status": "dry_run"}

        await store.update(existing_user.id, {"role": Role.ADMIN})
        print(f"Promoted existing user {existing_user.email} to admin (id: {existing_user.id})")
        return {"user_id": existing_user.id, "email": existing_user.email, "status": "promoted"}

    if dry_run:
        print(f"[DRY RUN] Would create admin user: {email}")
        return {"user_id": None, "email": email, "status": "dry_run"}

    password_hash = await asyncio.to_thread(hasher.hash, password)
    user = await store.create(email=email, password_hash=password_hash, name=name, role=Role.ADMIN)
    print(f"Created admin user {user.email} (id: {user.id})")
    return {"user_id": user.id, "email": user.email, "status": "created"}


async def _run(args) -> dict:
    from user_service.base_microservice import create_engine, create_session_factory, init_models
    from user_service.config import get_settings

    settings = get_settings()
    engine = create_engine(settings.database_url)
    try:
        await init_models(engine)
        store = SQLAlchemyUserStore(create_session_factory(engine))
        return await bootstrap_admin(
            store,
            PasswordHasher(rounds=settings.bcrypt_rounds),
            args.email,
            args.password,
            args.name,
            dry_run=args.dry_run,
        )
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin user")
    parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))
    parser.add_argument("--name", default=os.getenv("ADMIN_NAME", "Administrator"))
    parser.add_argument("--dry-run", action="store_true", help="Show what would happen")
    args = parser.parse_args(argv)

    if not args.email or not args.password:
        parser.error("--email and --password (or ADMIN_EMAIL and ADMIN_PASSWORD) are required")
    if len(args.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        parser.error(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    asyncio.run(_run(args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
