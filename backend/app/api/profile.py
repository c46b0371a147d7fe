"""Profile, user search, presence and notification preference endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_user_or_404
from app.api.serializers import serialize_public_user
from app.config import get_settings
from app.core.clock import utcnow
from app.core.storage import delete_stored, resolve_path, store_user_avatar
from app.database import get_db
from app.models import User
from app.schemas import (
    NotificationSettings,
    NotificationSettingsUpdate,
    PublicUser,
    UserProfileUpdate,
    UserRead,
)
from app.services.presence import broadcast_presence, mark_offline, mark_online, presence_payload

router = APIRouter(prefix="/profile", tags=["profile"])
users_router = APIRouter(prefix="/users", tags=["users"])
presence_router = APIRouter(prefix="/presence", tags=["presence"])

settings = get_settings()


@router.get("/me", response_model=UserRead)
async def read_profile(current_user: User = Depends(get_current_user)) -> UserRead:
    """Return profile information for the authenticated user."""

    return UserRead.model_validate(current_user, from_attributes=True)


@router.patch("", response_model=UserRead)
async def update_profile(
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserRead:
    """Update mutable profile fields for the current user."""

    if payload.username is not None and payload.username != current_user.username:
        taken = db.execute(
            select(User.id).where(
                func.lower(User.username) == payload.username.lower(),
                User.id != current_user.id,
            )
        ).first()
        if taken is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")
        current_user.username = payload.username
    if payload.display_name is not None:
        current_user.display_name = payload.display_name
    if "bio" in payload.model_fields_set:
        current_user.bio = payload.bio or None

    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return UserRead.model_validate(current_user, from_attributes=True)


@router.post("/avatar", response_model=UserRead)
async def upload_avatar(
    avatar: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserRead:
    """Store a new avatar image for the user."""

    previous = current_user.avatar_path
    stored = await store_user_avatar(current_user.id, avatar)
    if previous and previous != stored.relative_path:
        delete_stored(previous)
    current_user.avatar_path = stored.relative_path
    current_user.avatar_content_type = stored.content_type
    current_user.avatar_updated_at = utcnow()
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return UserRead.model_validate(current_user, from_attributes=True)


@router.get("/avatar/{user_id}")
async def fetch_avatar(user_id: int, db: Session = Depends(get_db)) -> FileResponse:
    """Serve a stored avatar image for a user."""

    user = db.get(User, user_id)
    if user is None or not user.avatar_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Avatar not found")

    absolute_path = resolve_path(user.avatar_path)
    return FileResponse(
        absolute_path,
        media_type=user.avatar_content_type or "application/octet-stream",
    )


@router.get("/notifications", response_model=NotificationSettings)
async def read_notification_settings(
    current_user: User = Depends(get_current_user),
) -> NotificationSettings:
    return NotificationSettings.model_validate(current_user)


@router.patch("/notifications", response_model=NotificationSettings)
async def update_notification_settings(
    payload: NotificationSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationSettings:
    """Change notification preferences; omitted switches keep their value."""

    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(current_user, field, value)
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return NotificationSettings.model_validate(current_user)


@router.get("/{user_id}", response_model=PublicUser)
async def read_user_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PublicUser:
    return serialize_public_user(get_user_or_404(user_id, db))


@users_router.get("/search", response_model=list[PublicUser])
async def search_users(
    q: str = Query(default="", max_length=64),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Case-insensitive substring search over usernames and display names."""

    query = q.strip().lower()
    if not query:
        return []
    pattern = f"%{query}%"
    stmt = (
        select(User)
        .where(
            User.id != current_user.id,
            or_(
                func.lower(User.username).like(pattern),
                func.lower(User.display_name).like(pattern),
            ),
        )
        .order_by(func.lower(User.username))
        .limit(settings.user_search_limit)
    )
    return [serialize_public_user(user) for user in db.execute(stmt).scalars().all()]


@presence_router.post("/heartbeat")
async def heartbeat(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, object]:
    """Keep the user online; clients call this every heartbeat interval."""

    changed = mark_online(current_user, db)
    if changed:
        await broadcast_presence(current_user, db)
    return {
        **presence_payload(current_user),
        "heartbeat_interval_seconds": settings.presence_heartbeat_interval_seconds,
    }


@presence_router.post("/offline")
async def go_offline(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, object]:
    mark_offline(current_user, db)
    await broadcast_presence(current_user, db)
    return presence_payload(current_user)
