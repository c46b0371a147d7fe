"""Friend requests and friendship management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, get_friend_link, get_user_or_404
from app.api.serializers import serialize_public_user
from app.core.clock import utcnow
from app.database import get_db
from app.models import DirectConversation, FriendLink, FriendRequestStatus, User
from app.schemas import (
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    FriendRequestResponse,
    PublicUser,
)
from app.services.events import event_hub

router = APIRouter(prefix="/friends", tags=["friends"])


def normalize_pair(user_id: int, other_id: int) -> tuple[int, int]:
    return (user_id, other_id) if user_id < other_id else (other_id, user_id)


def ensure_conversation(user_id: int, other_id: int, db: Session) -> DirectConversation:
    """Return the chat of two users, creating it on first use."""

    user_a_id, user_b_id = normalize_pair(user_id, other_id)
    stmt = select(DirectConversation).where(
        DirectConversation.user_a_id == user_a_id,
        DirectConversation.user_b_id == user_b_id,
    )
    conversation = db.execute(stmt).scalar_one_or_none()
    if conversation is None:
        conversation = DirectConversation(user_a_id=user_a_id, user_b_id=user_b_id)
        db.add(conversation)
        db.flush()
    return conversation


def _serialize_request(link: FriendLink) -> FriendRequestRead:
    return FriendRequestRead(
        id=link.id,
        requester=serialize_public_user(link.requester),
        addressee=serialize_public_user(link.addressee),
        status=link.status,
        created_at=link.created_at,
        responded_at=link.responded_at,
    )


def _require_request(request_id: int, db: Session) -> FriendLink:
    stmt = (
        select(FriendLink)
        .where(FriendLink.id == request_id)
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    request = db.execute(stmt).scalar_one_or_none()
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    return request


@router.get("", response_model=list[PublicUser])
async def list_friends(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Return accepted friends for the current user."""

    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.ACCEPTED,
            or_(
                FriendLink.requester_id == current_user.id,
                FriendLink.addressee_id == current_user.id,
            ),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    links = db.execute(stmt).scalars().all()
    friends: dict[int, PublicUser] = {}
    for link in links:
        other = link.other_user(current_user.id)
        if other is None:
            continue
        friends.setdefault(other.id, serialize_public_user(other))
    return sorted(
        friends.values(),
        key=lambda friend: ((friend.display_name or friend.username).lower(), friend.id),
    )


@router.get("/requests", response_model=FriendRequestList)
async def list_friend_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestList:
    """Return incoming and outgoing pending requests, oldest first."""

    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.PENDING,
            or_(
                FriendLink.requester_id == current_user.id,
                FriendLink.addressee_id == current_user.id,
            ),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
        .order_by(FriendLink.updated_at.asc(), FriendLink.id.asc())
    )
    incoming: list[FriendRequestRead] = []
    outgoing: list[FriendRequestRead] = []
    for entry in db.execute(stmt).scalars().all():
        payload = _serialize_request(entry)
        if entry.addressee_id == current_user.id:
            incoming.append(payload)
        else:
            outgoing.append(payload)
    return FriendRequestList(incoming=incoming, outgoing=outgoing)


@router.post("/requests", response_model=FriendRequestRead, status_code=status.HTTP_201_CREATED)
async def create_friend_request(
    payload: FriendRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    """Send a new friend request."""

    target = get_user_or_404(payload.user_id, db)
    if target.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot befriend yourself")

    link = get_friend_link(current_user.id, target.id, db)
    if link is not None and link.status != FriendRequestStatus.DECLINED:
        if link.status == FriendRequestStatus.ACCEPTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already friends")
        if link.requester_id == current_user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request already sent")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This user has already sent you a request",
        )

    if link is None:
        link = FriendLink(requester_id=current_user.id, addressee_id=target.id)
    else:
        # A declined request is reopened on behalf of whoever asks now.
        link.requester_id = current_user.id
        link.addressee_id = target.id
        link.responded_at = None
        link.updated_at = utcnow()
    link.status = FriendRequestStatus.PENDING
    db.add(link)
    db.commit()
    db.refresh(link)
    request_payload = _serialize_request(link)
    await event_hub.send(
        target.id,
        {"type": "friend_request", "action": "received", "request": request_payload.model_dump(mode="json")},
    )
    return request_payload


@router.post("/requests/{request_id}/respond", response_model=FriendRequestRead)
async def respond_to_request(
    request_id: int,
    payload: FriendRequestResponse,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    """Accept (addressee only) or decline (either side) a friend request."""

    request = _require_request(request_id, db)
    if payload.accept:
        if request.addressee_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the addressee can accept")
        if request.status == FriendRequestStatus.ACCEPTED:
            return _serialize_request(request)
        if request.status != FriendRequestStatus.PENDING:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request is not pending")
        request.status = FriendRequestStatus.ACCEPTED
        request.responded_at = utcnow()
        db.add(request)
        conversation = ensure_conversation(request.requester_id, request.addressee_id, db)
        db.commit()
        db.refresh(request)
        result = _serialize_request(request)
        await event_hub.broadcast(
            (request.requester_id, request.addressee_id),
            {
                "type": "friendship",
                "action": "added",
                "chat_id": conversation.id,
                "request": result.model_dump(mode="json"),
            },
        )
        return result

    if current_user.id not in (request.addressee_id, request.requester_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friend request")
    if request.status != FriendRequestStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request is not pending")
    request.status = FriendRequestStatus.DECLINED
    request.responded_at = utcnow()
    db.add(request)
    db.commit()
    db.refresh(request)
    result = _serialize_request(request)
    await event_hub.send(
        request.other_user(current_user.id).id,
        {"type": "friend_request", "action": "declined", "request": result.model_dump(mode="json")},
    )
    return result


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_friend(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    link = get_friend_link(current_user.id, user_id, db)
    if link is None or link.status != FriendRequestStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend not found")
    db.delete(link)
    db.commit()
    await event_hub.broadcast(
        (current_user.id, user_id),
        {"type": "friendship", "action": "removed", "user_ids": [current_user.id, user_id]},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
