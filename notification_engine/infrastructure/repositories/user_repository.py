"""Persistence helpers for user entities."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import ROLE_ADMIN, User
from notification_engine.infrastructure.models import UserModel
from notification_engine.utils import ensure_app_naive_datetime, ensure_app_timezone


class UserRepository:
    """Read users for authentication, campaign targeting and reports."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> User | None:
        model = await self.session.get(UserModel, user_id)
        return self._to_entity(model) if model is not None else None

    async def get_email(self, user_id: str) -> str | None:
        return await self.session.scalar(
            select(UserModel.email).where(UserModel.id == user_id)
        )

    async def list_admins(self) -> Sequence[User]:
        result = await self.session.scalars(
            select(UserModel)
            .where(
                func.lower(UserModel.role) == ROLE_ADMIN,
                UserModel.is_active == true(),
            )
            .order_by(UserModel.created_at)
        )
        return [self._to_entity(model) for model in result.all()]

    async def list_inactive_since(self, cutoff: datetime) -> Sequence[User]:
        """Return active, emailed users whose last login is older than ``cutoff`` or unknown."""

        result = await self.session.scalars(
            select(UserModel)
            .where(
                UserModel.is_active == true(),
                UserModel.email.isnot(None),
                UserModel.email != "",
                or_(
                    UserModel.last_login_at.is_(None),
                    UserModel.last_login_at < ensure_app_naive_datetime(cutoff),
                ),
            )
            .order_by(UserModel.created_at)
        )
        return [self._to_entity(model) for model in result.all()]

    async def count_created_between(self, start: datetime, end: datetime) -> int:
        return int(
            await self.session.scalar(
                select(func.count(UserModel.id)).where(
                    UserModel.created_at >= ensure_app_naive_datetime(start),
                    UserModel.created_at < ensure_app_naive_datetime(end),
                )
            )
            or 0
        )

    async def count_logged_in_between(self, start: datetime, end: datetime) -> int:
        return int(
            await self.session.scalar(
                select(func.count(UserModel.id)).where(
                    UserModel.last_login_at >= ensure_app_naive_datetime(start),
                    UserModel.last_login_at < ensure_app_naive_datetime(end),
                )
            )
            or 0
        )

    async def count_active(self) -> int:
        return int(
            await self.session.scalar(
                select(func.count(UserModel.id)).where(UserModel.is_active == true())
            )
            or 0
        )

    async def create(self, user: User) -> User:
        model = UserModel(
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            last_login_at=ensure_app_naive_datetime(user.last_login_at),
        )
        if user.id is not None:
            model.id = user.id
        if user.created_at is not None:
            model.created_at = ensure_app_naive_datetime(user.created_at)
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return self._to_entity(model)

    @staticmethod
    def _to_entity(model: UserModel) -> User:
        return User(
            id=model.id,
            email=model.email,
            name=model.name,
            role=model.role,
            is_active=bool(model.is_active),
            last_login_at=ensure_app_timezone(model.last_login_at),
            created_at=ensure_app_timezone(model.created_at),
        )


__all__ = ["UserRepository"]
