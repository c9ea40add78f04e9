"""Use cases for the notification template catalogue."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import NotificationTemplate
from notification_engine.domain.exceptions import NotificationValidationError
from notification_engine.infrastructure.repositories import NotificationTemplateRepository

from .validators import TITLE_MAX_LENGTH, validate_channel

TEMPLATE_NAME_MAX_LENGTH = 100

_PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def render_template(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders with values from ``variables``.

    Placeholders without a matching variable are left untouched.
    """

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        return str(variables[key])

    return _PLACEHOLDER_PATTERN.sub(_substitute, text)


def extract_placeholders(*texts: str) -> list[str]:
    names: dict[str, None] = {}
    for text in texts:
        for match in _PLACEHOLDER_PATTERN.finditer(text):
            names.setdefault(match.group(1), None)
    return list(names)


async def create_template(
    session: AsyncSession,
    *,
    name: str,
    subject: str,
    content: str,
    channel: Any = None,
    is_active: bool = True,
    variables: Sequence[str] | None = None,
    description: str | None = None,
) -> NotificationTemplate:
    """Create a template, rejecting duplicate names."""

    normalized_name = (name or "").strip()
    if not normalized_name:
        raise NotificationValidationError("Template name is required", field="name")
    if len(normalized_name) > TEMPLATE_NAME_MAX_LENGTH:
        raise NotificationValidationError(
            f"Template name cannot exceed {TEMPLATE_NAME_MAX_LENGTH} characters",
            field="name",
        )
    if not subject or not subject.strip():
        raise NotificationValidationError("Template subject is required", field="subject")
    if len(subject) > TITLE_MAX_LENGTH:
        raise NotificationValidationError(
            f"Template subject cannot exceed {TITLE_MAX_LENGTH} characters",
            field="subject",
        )
    if not content or not content.strip():
        raise NotificationValidationError("Template content is required", field="content")

    repository = NotificationTemplateRepository(session)
    if await repository.get_by_name(normalized_name) is not None:
        raise NotificationValidationError(
            f"Template '{normalized_name}' already exists", field="name"
        )

    template = NotificationTemplate(
        id=None,
        name=normalized_name,
        subject=subject.strip(),
        content=content,
        channel=validate_channel(channel),
        is_active=is_active,
        variables=list(variables) if variables is not None else extract_placeholders(subject, content),
        description=description,
    )
    return await repository.create(template)


async def list_templates(session: AsyncSession) -> Sequence[NotificationTemplate]:
    return await NotificationTemplateRepository(session).list_templates()
