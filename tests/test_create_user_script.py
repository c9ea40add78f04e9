"""Tests for the ``scripts/create_user.py`` command line utility."""

from __future__ import annotations

import asyncio
import importlib.util
from pathlib import Path

import pytest

from notification_engine.infrastructure.database import (
    build_session_factory,
    create_database_engine,
)
from notification_engine.infrastructure.repositories import UserRepository
from notification_engine.infrastructure.security import resolve_token_subject

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "create_user.py"


@pytest.fixture()
def script():
    spec = importlib.util.spec_from_file_location("create_user_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_parse_args_defaults(script) -> None:
    args = script.parse_args([])

    assert args.name == "Administrator"
    assert args.email == "admin@example.com"
    assert args.admin is False


def test_main_creates_admin_and_prints_token(script, settings, capsys) -> None:
    script.main(["--name", "Ops", "--email", "ops@example.com", "--admin"])

    output = capsys.readouterr().out
    token = next(
        line.split("Token: ", 1)[1] for line in output.splitlines() if "Token: " in line
    )
    user_id = resolve_token_subject(token)

    async def load():
        engine = create_database_engine(settings)
        try:
            async with build_session_factory(engine)() as session:
                return await UserRepository(session).get(user_id)
        finally:
            await engine.dispose()

    user = asyncio.run(load())
    assert user.name == "Ops"
    assert user.email == "ops@example.com"
    assert user.is_admin()
