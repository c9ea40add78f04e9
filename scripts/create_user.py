"""Utility script to create a user and print an access token for it."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError

from notification_engine.config import get_settings
from notification_engine.domain.entities import ROLE_ADMIN, ROLE_USER, User
from notification_engine.infrastructure.database import (
    build_session_factory,
    create_database_engine,
    initialize_database,
)
from notification_engine.infrastructure.repositories import UserRepository
from notification_engine.infrastructure.security import create_user_token


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for user creation."""

    parser = argparse.ArgumentParser(
        description="Create a user for the notification engine and print a bearer token.",
    )
    parser.add_argument("--name", default="Administrator", help="Full name of the user")
    parser.add_argument(
        "--email",
        default="admin@example.com",
        help="Email address used for the email channel (default: admin@example.com)",
    )
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Give the user the administrator role",
    )
    return parser.parse_args(argv)


async def create_user(args: argparse.Namespace) -> tuple[User, str]:
    engine = create_database_engine(get_settings())
    try:
        await initialize_database(engine)
        async with build_session_factory(engine)() as session:
            user = await UserRepository(session).create(
                User(
                    id=None,
                    email=args.email,
                    name=args.name,
                    role=ROLE_ADMIN if args.admin else ROLE_USER,
                )
            )
    finally:
        await engine.dispose()
    return user, create_user_token(user.id or "")


def main(argv: Sequence[str] | None = None) -> None:
    """Create a user using the provided command line arguments."""

    args = parse_args(argv)
    try:
        user, token = asyncio.run(create_user(args))
    except SQLAlchemyError as exc:
        raise SystemExit(f"Could not save the user: {exc}") from exc

    print(
        "User created:\n"
        f"  ID: {user.id}\n"
        f"  Name: {user.name}\n"
        f"  Email: {user.email}\n"
        f"  Role: {user.role}\n"
        f"  Token: {token}"
    )


if __name__ == "__main__":
    main()
