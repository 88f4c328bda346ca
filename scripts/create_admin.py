#!/usr/bin/env python3
"""Create an administrator account, or promote an existing user to ADMIN."""
from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from typing import Optional

from cinescan.core import config
from cinescan.core.database import init_db, session_scope, shutdown_db, start_db
from cinescan.core.errors import AppError
from cinescan.core.users import create_user, get_user_by_email
from cinescan.models.database import ROLE_ADMIN


async def create_admin(email: str, name: str, password: str) -> str:
    """Return "created" or "promoted"."""
    async with session_scope() as session:
        existing = await get_user_by_email(session, email)
        if existing is not None:
            existing.role = ROLE_ADMIN
            existing.is_active = True
            return "promoted"
        await create_user(session, email, name, password, role=ROLE_ADMIN)
        return "created"


async def _run(email: str, name: str, password: str) -> str:
    await start_db()
    try:
        if config.get_dev_create_all():
            await init_db()
        return await create_admin(email, name, password)
    finally:
        await shutdown_db()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote a CineScan administrator.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Administrator")
    parser.add_argument("--password", help="Prompted for when omitted")
    args = parser.parse_args(argv)

    password = args.password or getpass.getpass("Password: ")
    if len(password) < config.PASSWORD_MIN_LENGTH:
        print(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters", file=sys.stderr)
        return 2
    try:
        outcome = asyncio.run(_run(args.email, args.name, password))
    except AppError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    print(f"Administrator {args.email} {outcome}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
