"""Voice call signaling endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from kindred.voice.signaling import CallTransitionError

from app.api.deps import get_current_user, require_friend_conversation
from app.api.serializers import serialize_call
from app.database import get_db
from app.models import CallSignal, CallStatus, SignalType, User
from app.schemas import (
    CallAnswer,
    CallEnd,
    CallRead,
    CallSignalRead,
    CallStart,
    CurrentCall,
    IceCandidate,
)
from app.services import calls as call_service
from app.services.calls import CallBusyError, call_timeouts

router = APIRouter(prefix="/calls", tags=["calls"])

logger = logging.getLogger(__name__)


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


async def _announce_missed(calls: list[CallSignal]) -> None:
    for call in calls:
        call_timeouts.cancel(call.id)
        await call_service.publish_status(call)


async def _require_call(call_id: int, user: User, db: Session) -> CallSignal:
    """Load a call anchor for a participant, applying the ring timeout on read."""

    call = db.get(CallSignal, call_id)
    if call is None or call.signal_type != SignalType.OFFER:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Call not found")
    if not call.has_user(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a call participant")
    if call_service.expire_if_unanswered(call, db):
        await _announce_missed([call])
    return call


def _serialize_signal(row: CallSignal) -> CallSignalRead:
    return CallSignalRead(created_at=row.created_at, **call_service.signal_payload(row))


@router.post("", response_model=CallRead, status_code=status.HTTP_201_CREATED)
async def start_call(
    payload: CallStart,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallRead:
    """Ring the other participant of a chat with an SDP offer."""

    conversation = require_friend_conversation(payload.chat_id, current_user, db)
    await _announce_missed(
        call_service.expire_stale_calls(
            (current_user.id, conversation.other_user_id(current_user.id)), db
        )
    )
    try:
        call = call_service.start_call(conversation, current_user.id, payload.offer, db)
    except CallBusyError as exc:
        raise _conflict(exc) from exc
    call_timeouts.schedule(call.id)
    logger.info("User %s is calling user %s (call %s)", call.caller_id, call.receiver_id, call.id)
    await call_service.publish_signal(call)
    await call_service.publish_status(call)
    return serialize_call(call, current_user.id)


@router.get("/current", response_model=CurrentCall)
async def read_current_call(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CurrentCall:
    await _announce_missed(call_service.expire_stale_calls([current_user.id], db))
    call = call_service.find_open_call([current_user.id], db)
    if call is None:
        return CurrentCall()
    read = serialize_call(call, current_user.id)
    return CurrentCall(state=read.state, call=read)


@router.get("/{call_id}", response_model=CallRead)
async def read_call(
    call_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallRead:
    call = await _require_call(call_id, current_user, db)
    return serialize_call(call, current_user.id)


@router.get("/{call_id}/signals", response_model=list[CallSignalRead])
async def read_pending_signals(
    call_id: int,
    after_id: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[CallSignalRead]:
    """Signals addressed to the caller of this endpoint, for clients that missed events."""

    call = await _require_call(call_id, current_user, db)
    rows = call_service.pending_signals(call, current_user.id, db, after_id)
    return [_serialize_signal(row) for row in rows]


@router.post("/{call_id}/accept", response_model=CallRead)
async def accept_call(
    call_id: int,
    payload: CallAnswer,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallRead:
    call = await _require_call(call_id, current_user, db)
    if call.receiver_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the receiver can accept")
    try:
        answer = call_service.accept_call(call, payload.answer, db)
    except CallTransitionError as exc:
        raise _conflict(exc) from exc
    call_timeouts.cancel(call.id)
    await call_service.publish_signal(answer)
    await call_service.publish_status(call)
    return serialize_call(call, current_user.id)


@router.post("/{call_id}/ice", response_model=CallSignalRead, status_code=status.HTTP_201_CREATED)
async def send_ice_candidate(
    call_id: int,
    payload: IceCandidate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallSignalRead:
    call = await _require_call(call_id, current_user, db)
    try:
        row = call_service.add_ice_candidate(call, current_user.id, payload.candidate, db)
    except CallTransitionError as exc:
        raise _conflict(exc) from exc
    await call_service.publish_signal(row)
    return _serialize_signal(row)


@router.post("/{call_id}/decline", response_model=CallRead)
async def decline_call(
    call_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallRead:
    call = await _require_call(call_id, current_user, db)
    if call.receiver_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the receiver can decline")
    try:
        row = call_service.finish_call(call, current_user.id, CallStatus.DECLINED, db)
    except CallTransitionError as exc:
        raise _conflict(exc) from exc
    call_timeouts.cancel(call.id)
    await call_service.publish_signal(row)
    await call_service.publish_status(call)
    return serialize_call(call, current_user.id)


@router.post("/{call_id}/end", response_model=CallRead)
async def end_call(
    call_id: int,
    payload: CallEnd | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CallRead:
    call = await _require_call(call_id, current_user, db)
    target = CallStatus((payload or CallEnd()).status)
    try:
        row = call_service.finish_call(call, current_user.id, target, db)
    except CallTransitionError as exc:
        raise _conflict(exc) from exc
    call_timeouts.cancel(call.id)
    await call_service.publish_signal(row)
    await call_service.publish_status(call)
    return serialize_call(call, current_user.id)
