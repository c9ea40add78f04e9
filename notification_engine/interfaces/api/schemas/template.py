"""Schemas for the notification template catalogue."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TemplateCreate(BaseModel):
    name: str
    subject: str
    content: str
    channel: str = "in_app"
    is_active: bool = True
    variables: list[str] | None = None
    description: str | None = None


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    subject: str
    content: str
    channel: str
    is_active: bool
    variables: list[str] = Field(default_factory=list)
    description: str | None = None
    created_at: datetime | None = None


class TemplateSendRequest(BaseModel):
    recipient_ids: list[str] = Field(..., min_length=1)
    variables: dict[str, Any] = Field(default_factory=dict)
    priority: str | None = None


__all__ = ["TemplateCreate", "TemplateRead", "TemplateSendRequest"]
