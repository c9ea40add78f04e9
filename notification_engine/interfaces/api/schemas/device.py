"""Schemas for push device registration."""

from pydantic import BaseModel, Field


class DeviceSubscribe(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str = Field(..., description="One of web, android or ios")


class DeviceRead(BaseModel):
    token: str
    platform: str


__all__ = ["DeviceRead", "DeviceSubscribe"]
