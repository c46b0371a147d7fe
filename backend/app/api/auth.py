"""Authentication API endpoints."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.config import get_settings
from app.core.clock import utcnow
from app.core.security import (
    RefreshTokenError,
    clear_refresh_cookie,
    create_access_token,
    create_refresh_token,
    get_password_hash,
    revoke_refresh_token,
    set_refresh_cookie,
    validate_refresh_token,
    verify_password,
)
from app.core.storage import delete_stored
from app.database import get_db
from app.models import (
    ChatTheme,
    Follow,
    MessageHide,
    MessageReaction,
    PostComment,
    PostLike,
    User,
)
from app.schemas import LoginRequest, RefreshRequest, Token, UserCreate, UserRead
from app.services.events import event_hub
from app.services.presence import broadcast_presence, friend_ids, mark_offline, mark_online

router = APIRouter()
settings = get_settings()

logger = logging.getLogger(__name__)


def _issue_tokens(user: User, response: Response, remember_me: bool) -> Token:
    access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)
    access_token = create_access_token({"sub": str(user.id)}, expires_delta=access_token_expires)
    refresh_token, refresh_ttl = create_refresh_token(str(user.id), remember_me=remember_me)
    set_refresh_cookie(response, refresh_token, refresh_ttl)
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        expires_in=int(access_token_expires.total_seconds()),
    )


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    """Register a new user in the system."""

    taken = db.execute(
        select(User).where(
            or_(
                func.lower(User.username) == user_in.username.lower(),
                User.email == user_in.email,
            )
        )
    ).scalars().first()
    if taken is not None:
        detail = "Email is already registered" if taken.email == user_in.email else "Username is already taken"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    user = User(
        username=user_in.username,
        email=user_in.email,
        display_name=user_in.display_name or user_in.username,
        hashed_password=get_password_hash(user_in.password),
        is_online=True,
        last_seen=utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


@router.post("/login", response_model=Token)
async def login_user(credentials: LoginRequest, response: Response, db: Session = Depends(get_db)) -> Token:
    """Authenticate by e-mail or username and return a JWT access token."""

    identifier = credentials.identifier
    stmt = select(User).where(
        or_(User.email == identifier.lower(), func.lower(User.username) == identifier.lower())
    )
    db_user = db.execute(stmt).scalars().first()
    if db_user is None or not verify_password(credentials.password, db_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email, username or password",
        )

    remember_me = bool(credentials.remember_me and settings.remember_me_enabled)
    token = _issue_tokens(db_user, response, remember_me)
    mark_online(db_user, db)
    await broadcast_presence(db_user, db)
    return token


@router.post("/refresh", response_model=Token)
def refresh_access_token(
    payload: RefreshRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> Token:
    """Issue a new access token when a refresh token is still valid."""

    refresh_token = payload.refresh_token or request.cookies.get(settings.refresh_token_cookie_name)
    if not refresh_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token is required")

    try:
        refresh_data = validate_refresh_token(refresh_token, revoke=True)
    except RefreshTokenError as exc:
        clear_refresh_cookie(response)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate refresh token",
        ) from exc

    try:
        user_id = int(refresh_data.subject)
    except (TypeError, ValueError) as exc:
        clear_refresh_cookie(response)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token subject") from exc

    user = db.get(User, user_id)
    if user is None:
        clear_refresh_cookie(response)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    remember_me = refresh_data.remember_me and settings.remember_me_enabled
    return _issue_tokens(user, response, remember_me)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_user(
    request: Request,
    payload: RefreshRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Mark the user offline and forget the refresh token."""

    refresh_token = (payload.refresh_token if payload else None) or request.cookies.get(
        settings.refresh_token_cookie_name
    )
    revoke_refresh_token(refresh_token)
    mark_offline(current_user, db)
    await broadcast_presence(current_user, db)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(response)
    return response


@router.delete("/account", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete the account together with everything it owns."""

    user_id = current_user.id
    friends = friend_ids(user_id, db)
    avatar_path = current_user.avatar_path
    media_paths = [post.image_path for post in current_user.posts]
    media_paths.extend(story.media_path for story in current_user.stories)

    # Rows that point at the user from content owned by someone else.
    for model, column in (
        (Follow, Follow.follower_id),
        (Follow, Follow.following_id),
        (PostLike, PostLike.user_id),
        (PostComment, PostComment.user_id),
        (MessageReaction, MessageReaction.user_id),
        (MessageHide, MessageHide.user_id),
        (ChatTheme, ChatTheme.user_id),
    ):
        db.execute(delete(model).where(column == user_id))
    db.delete(current_user)
    db.commit()

    delete_stored(avatar_path)
    for path in media_paths:
        delete_stored(path)
    logger.info("Deleted account %s", user_id)

    await event_hub.broadcast(friends, {"type": "friendship", "action": "removed", "user_id": user_id})
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(response)
    return response
