"""Online/offline bookkeeping and presence broadcasts to friends."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.clock import as_utc, utcnow
from app.models import FriendLink, FriendRequestStatus, User
from app.services.events import event_hub

settings = get_settings()


def friend_ids(user_id: int, db: Session) -> list[int]:
    """Return ids of users with an accepted friendship with ``user_id``."""

    stmt = select(FriendLink.requester_id, FriendLink.addressee_id).where(
        FriendLink.status == FriendRequestStatus.ACCEPTED,
        or_(
            FriendLink.requester_id == user_id,
            FriendLink.addressee_id == user_id,
        ),
    )
    friends: list[int] = []
    for requester_id, addressee_id in db.execute(stmt):
        other = addressee_id if requester_id == user_id else requester_id
        if other not in friends:
            friends.append(other)
    return friends


def is_effectively_online(user: User, now: datetime | None = None) -> bool:
    """A stored online flag only counts while the last heartbeat is recent."""

    if not user.is_online:
        return False
    last_seen = as_utc(user.last_seen)
    if last_seen is None:
        return False
    now = now or utcnow()
    return now - last_seen <= timedelta(seconds=settings.presence_stale_after_seconds)


def presence_payload(user: User, now: datetime | None = None) -> dict[str, Any]:
    last_seen = as_utc(user.last_seen)
    return {
        "user_id": user.id,
        "is_online": is_effectively_online(user, now),
        "last_seen": last_seen.isoformat() if last_seen else None,
    }


def mark_online(user: User, db: Session) -> bool:
    """Flag the user online and refresh ``last_seen``; returns whether the flag changed."""

    changed = not user.is_online
    user.is_online = True
    user.last_seen = utcnow()
    db.add(user)
    db.commit()
    return changed


def mark_offline(user: User, db: Session) -> bool:
    changed = user.is_online
    user.is_online = False
    user.last_seen = utcnow()
    db.add(user)
    db.commit()
    return changed


async def broadcast_presence(user: User, db: Session) -> None:
    """Push the user's presence to every connected friend."""

    await event_hub.broadcast(
        friend_ids(user.id, db),
        {"type": "presence", **presence_payload(user)},
    )
