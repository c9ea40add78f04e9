"""Shared fixtures: a temporary database, fake transports and a wired runtime."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from arq.connections import ArqRedis
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

# Ensure the project root (which contains the ``notification_engine`` package) is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("SENDGRID_API_KEY", None)
os.environ.pop("SENDGRID_SENDER", None)

from notification_engine.config import get_settings, reset_settings_cache
from notification_engine.domain.entities import ROLE_ADMIN, ROLE_USER, User
from notification_engine.domain.exceptions import TransportError
from notification_engine.infrastructure.database import (
    build_session_factory,
    create_database_engine,
    initialize_database,
)
from notification_engine.infrastructure.repositories import UserRepository
from notification_engine.runtime import NotificationRuntime


class FakeEmailTransport:
    """Records every email; ``results`` scripts the return value of each send."""

    def __init__(self, results: list[bool] | None = None) -> None:
        self.results = list(results or [])
        self.sent: list[dict[str, str]] = []

    async def send(self, *, to: str, subject: str, html: str, text: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        if self.results:
            return self.results.pop(0)
        return True


class FakePushTransport:
    """Records pushes; tokens listed in ``failing_tokens`` raise ``TransportError``."""

    def __init__(self, failing_tokens: set[str] | None = None) -> None:
        self.failing_tokens = set(failing_tokens or ())
        self.sent: list[dict[str, Any]] = []

    async def send_to_device(
        self,
        *,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        if device_token in self.failing_tokens:
            raise TransportError(f"device {device_token} unreachable")
        self.sent.append(
            {"token": device_token, "title": title, "body": body, "data": data or {}}
        )
        return True


class FakeWebSocket:
    """Minimal stand-in for a Starlette websocket."""

    def __init__(self, *, fail_on_send: bool = False) -> None:
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict[str, Any]] = []
        self.fail_on_send = fail_on_send

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail_on_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code

    def events(self, event_type: str) -> list[Any]:
        return [message["data"] for message in self.sent if message["type"] == event_type]


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Settings pointing at a fresh SQLite file with fast retry backoff."""

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("QUEUE_EMAIL_BACKOFF_SECONDS", "0.01")
    monkeypatch.setenv("QUEUE_PUSH_BACKOFF_SECONDS", "0.01")
    monkeypatch.setenv("QUEUE_WORKERS", "1")
    monkeypatch.setenv("QUEUE_POLL_DELAY_SECONDS", "0.01")
    reset_settings_cache()
    yield get_settings()
    reset_settings_cache()


@pytest.fixture(autouse=True)
def skip_redis_server_report(monkeypatch: pytest.MonkeyPatch) -> None:
    """Skip the Redis server INFO report arq workers log on startup."""

    async def report(redis, log_func) -> None:
        return None

    monkeypatch.setattr("arq.worker.log_redis_info", report)


@pytest.fixture()
def redis_pool() -> ArqRedis:
    """An arq pool on a private in-memory Redis server."""

    return ArqRedis(FakeRedis(server=FakeServer()).connection_pool)


@pytest_asyncio.fixture()
async def engine(settings):
    engine = create_database_engine(settings)
    await initialize_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def email_transport() -> FakeEmailTransport:
    return FakeEmailTransport()


@pytest.fixture()
def push_transport() -> FakePushTransport:
    return FakePushTransport()


@pytest_asyncio.fixture()
async def runtime(settings, engine, email_transport, push_transport, redis_pool):
    """A runtime sharing the test engine; queue workers are started by each test."""

    runtime = NotificationRuntime(
        settings,
        engine=engine,
        email_transport=email_transport,
        push_transport=push_transport,
        redis=redis_pool,
    )
    yield runtime
    await runtime.queue.stop()


async def create_user(
    session_factory,
    *,
    name: str = "Learner",
    email: str | None = "learner@example.com",
    admin: bool = False,
    **fields: Any,
) -> User:
    async with session_factory() as session:
        return await UserRepository(session).create(
            User(
                id=None,
                email=email,
                name=name,
                role=ROLE_ADMIN if admin else ROLE_USER,
                **fields,
            )
        )
