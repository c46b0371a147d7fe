"""Schemas for push delivery and notification preferences."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PushSendRequest(BaseModel):
    """Push relay payload; required fields are checked by the endpoint."""

    recipient_user_id: int | None = None
    title: str | None = None
    body: str | None = None
    data: dict[str, Any] | None = None


class PushProfileSync(BaseModel):
    push_enabled: bool | None = None
    onesignal_player_id: str | None = Field(default=None, max_length=128)
    device_platform: str | None = Field(default=None, max_length=32)


class NotificationSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sound_enabled: bool = True
    browser_notifications_enabled: bool = True
    toast_notifications_enabled: bool = True


class NotificationSettingsUpdate(BaseModel):
    sound_enabled: bool | None = None
    browser_notifications_enabled: bool | None = None
    toast_notifications_enabled: bool | None = None
