"""FastAPI dependencies for the API layer."""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.core.security import decode_access_token
from app.database import get_db
from app.models import DirectConversation, DirectMessage, FriendLink, FriendRequestStatus, User

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise an HTTP 401 error."""

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


def get_user_or_404(user_id: int, db: Session) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def get_friend_link(user_id: int, other_id: int, db: Session) -> FriendLink | None:
    """Return the link between two users regardless of who sent the request."""

    stmt = select(FriendLink).where(
        or_(
            (FriendLink.requester_id == user_id) & (FriendLink.addressee_id == other_id),
            (FriendLink.requester_id == other_id) & (FriendLink.addressee_id == user_id),
        )
    )
    return db.execute(stmt).scalars().first()


def are_friends(user_id: int, other_id: int, db: Session) -> bool:
    link = get_friend_link(user_id, other_id, db)
    return link is not None and link.status == FriendRequestStatus.ACCEPTED


def require_conversation(chat_id: int, user: User, db: Session) -> DirectConversation:
    """Load a chat the user participates in (404 when missing, 403 otherwise)."""

    stmt = (
        select(DirectConversation)
        .where(DirectConversation.id == chat_id)
        .options(selectinload(DirectConversation.user_a), selectinload(DirectConversation.user_b))
    )
    conversation = db.execute(stmt).scalar_one_or_none()
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    if not conversation.has_user(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a chat participant")
    return conversation


def ensure_friends(user: User, other_id: int, db: Session) -> None:
    if not are_friends(user.id, other_id, db):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are no longer friends")


def require_friend_conversation(chat_id: int, user: User, db: Session) -> DirectConversation:
    """Load a chat for writing; the participants must still be friends."""

    conversation = require_conversation(chat_id, user, db)
    ensure_friends(user, conversation.other_user_id(user.id), db)
    return conversation


def require_message(message_id: int, user: User, db: Session) -> DirectMessage:
    """Load a message from a chat the user participates in."""

    message = db.get(DirectMessage, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    if user.id not in (message.sender_id, message.recipient_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a chat participant")
    return message
