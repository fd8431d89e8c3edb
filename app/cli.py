"""Management commands.

    python -m app.cli create-admin --name Admin --email admin@example.com --mobile 5550000
    python -m app.cli promote --email someone@example.com
"""

import argparse
import asyncio
import getpass
import sys
from typing import Optional, Sequence

from loguru import logger

from app.core.config import settings
from app.core.exceptions import BaseCustomException
from app.core.logging import setup_logging
from app.domain.auth.models import User, UserRole
from app.domain.auth.service import UserService
from app.infrastructure.database import Database


async def create_admin(database: Database, name: str, email: str, mobile: str, password: str) -> User:
    async with database.session() as session:
        return await UserService(session).create_admin(name=name, email=email, mobile=mobile, password=password)


async def promote(database: Database, email: str, role: UserRole = UserRole.ADMIN) -> User:
    async with database.session() as session:
        return await UserService(session).set_role(email, role)


async def _run(args: argparse.Namespace) -> None:
    database = Database(settings.DATABASE_URL)
    await database.init()
    try:
        if args.command == "create-admin":
            password = args.password or getpass.getpass("Password: ")
            user = await create_admin(database, args.name, args.email, args.mobile, password)
        else:
            user = await promote(database, args.email, UserRole(args.role))
        logger.info(f"{user.email} now has role {user.role}")
    finally:
        await database.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app.cli")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="create an admin account")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--mobile", required=True)
    create.add_argument("--password", help="prompted for when omitted")

    promote_cmd = sub.add_parser("promote", help="change the role of an existing account")
    promote_cmd.add_argument("--email", required=True)
    promote_cmd.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    setup_logging(settings.LOG_LEVEL)
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(_run(args))
    except BaseCustomException as e:
        logger.error(e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
