"""Persistence helpers for notification templates."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select, true
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import NotificationChannel, NotificationTemplate
from notification_engine.infrastructure.models import NotificationTemplateModel
from notification_engine.utils import ensure_app_timezone


class NotificationTemplateRepository:
    """Provide read access and creation for :class:`NotificationTemplate` objects."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_templates(self, *, include_inactive: bool = True) -> Sequence[NotificationTemplate]:
        query = select(NotificationTemplateModel).order_by(NotificationTemplateModel.name)
        if not include_inactive:
            query = query.where(NotificationTemplateModel.is_active == true())
        result = await self.session.scalars(query)
        return [self._to_entity(model) for model in result.all()]

    async def get_by_name(self, name: str) -> NotificationTemplate | None:
        model = await self.session.scalar(
            select(NotificationTemplateModel).where(NotificationTemplateModel.name == name)
        )
        return self._to_entity(model) if model is not None else None

    async def get_active_by_name(self, name: str) -> NotificationTemplate | None:
        template = await self.get_by_name(name)
        if template is None or not template.is_active:
            return None
        return template

    async def create(self, template: NotificationTemplate) -> NotificationTemplate:
        model = NotificationTemplateModel(
            name=template.name,
            subject=template.subject,
            content=template.content,
            channel=NotificationChannel(template.channel).value,
            is_active=template.is_active,
            variables=list(template.variables),
            description=template.description,
        )
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return self._to_entity(model)

    @staticmethod
    def _to_entity(model: NotificationTemplateModel) -> NotificationTemplate:
        return NotificationTemplate(
            id=model.id,
            name=model.name,
            subject=model.subject,
            content=model.content,
            channel=NotificationChannel(model.channel),
            is_active=bool(model.is_active),
            variables=list(model.variables or []),
            description=model.description,
            created_at=ensure_app_timezone(model.created_at),
            updated_at=ensure_app_timezone(model.updated_at),
        )


__all__ = ["NotificationTemplateRepository"]
