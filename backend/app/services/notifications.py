"""Unread counters and new-message notifications."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import DirectMessage, MessageHide, User
from app.services.events import event_hub
from app.services.presence import friend_ids

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50
VOICE_PREVIEW = "🎤 Voice message"
IMAGE_PREVIEW = "📷 Image"
FALLBACK_PREVIEW = "New message"


def message_preview(message: DirectMessage) -> str:
    content = (message.content or "")[:PREVIEW_LENGTH]
    if content:
        return content
    if message.audio_path:
        return VOICE_PREVIEW
    if message.image_path:
        return IMAGE_PREVIEW
    return FALLBACK_PREVIEW


def notification_settings(user: User) -> dict[str, bool]:
    return {
        "sound_enabled": user.sound_enabled,
        "browser_notifications_enabled": user.browser_notifications_enabled,
        "toast_notifications_enabled": user.toast_notifications_enabled,
    }


def unread_counts(user_id: int, db: Session) -> dict[int, int]:
    """Count unread messages addressed to ``user_id`` per sending friend.

    Messages the user deleted for themselves are not counted, and senders with
    nothing unread are left out.
    """

    friends = friend_ids(user_id, db)
    if not friends:
        return {}
    hidden = select(MessageHide.message_id).where(MessageHide.user_id == user_id)
    stmt = (
        select(DirectMessage.sender_id, func.count(DirectMessage.id))
        .where(
            DirectMessage.recipient_id == user_id,
            DirectMessage.read_at.is_(None),
            DirectMessage.sender_id.in_(friends),
            DirectMessage.id.not_in(hidden),
        )
        .group_by(DirectMessage.sender_id)
    )
    return {sender_id: count for sender_id, count in db.execute(stmt) if count > 0}


def unread_payload(user_id: int, db: Session) -> dict[str, Any]:
    counts = unread_counts(user_id, db)
    return {
        "counts": {str(friend_id): count for friend_id, count in counts.items()},
        "total": sum(counts.values()),
    }


async def notify_new_message(message: DirectMessage, sender: User, recipient: User, db: Session) -> None:
    """Send a ``notification`` event to the recipient of a freshly stored message."""

    payload = {
        "type": "notification",
        "chat_id": message.conversation_id,
        "message_id": message.id,
        "sender": {
            "id": sender.id,
            "display_name": sender.name,
            "avatar_url": sender.avatar_url,
        },
        "title": sender.name,
        "body": message_preview(message),
        "settings": notification_settings(recipient),
        "unread": unread_payload(recipient.id, db),
    }
    await event_hub.send(recipient.id, payload)
