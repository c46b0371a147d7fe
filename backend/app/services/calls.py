"""Call signaling state machine backed by ``CallSignal`` rows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from kindred.voice.signaling import (
    OPEN_STATUSES,
    CallState,
    CallTransitionError,
    build_signal_envelope,
    derive_call_state,
    ensure_transition,
)

from app.config import get_settings
from app.core.clock import as_utc, utcnow
from app.database import get_db_session
from app.models import CallSignal, CallStatus, DirectConversation, SignalType
from app.monitoring.metrics import call_transitions_total
from app.services.events import event_hub

settings = get_settings()

logger = logging.getLogger(__name__)


class CallBusyError(Exception):
    """Raised when a participant already has a ringing or active call."""


def _anchor_filter():
    return CallSignal.signal_type == SignalType.OFFER


def _ring_deadline(call: CallSignal) -> datetime:
    created_at = as_utc(call.created_at) or utcnow()
    return created_at + timedelta(seconds=settings.call_ring_timeout_seconds)


def _set_status(call: CallSignal, target: CallStatus, now: datetime) -> None:
    ensure_transition(call.status.value, target.value)
    call.status = target
    call.updated_at = now
    if target == CallStatus.ACTIVE:
        call.answered_at = now
    else:
        call.ended_at = now
    call_transitions_total.labels(target.value).inc()


def _add_signal(
    call: CallSignal,
    sender_id: int,
    signal_type: SignalType,
    payload: Mapping[str, Any] | None,
    now: datetime,
) -> CallSignal:
    row = CallSignal(
        conversation_id=call.conversation_id,
        call_id=call.id,
        caller_id=sender_id,
        receiver_id=call.other_user_id(sender_id),
        signal_type=signal_type,
        signal_data=build_signal_envelope(signal_type.value, payload),
        status=call.status,
        created_at=now,
        updated_at=now,
    )
    return row


def expire_if_unanswered(call: CallSignal, db: Session, now: datetime | None = None) -> bool:
    """Mark a ringing call as missed once the ring timeout has passed."""

    now = now or utcnow()
    if call.status != CallStatus.CALLING or now < _ring_deadline(call):
        return False
    _set_status(call, CallStatus.MISSED, now)
    db.add(call)
    db.commit()
    logger.info("Call %s was not answered in time and is now missed", call.id)
    return True


def ring_seconds_left(call: CallSignal, now: datetime | None = None) -> float:
    remaining = (_ring_deadline(call) - (now or utcnow())).total_seconds()
    return max(remaining, 0.0)


def expire_stale_calls(
    user_ids: Iterable[int], db: Session, now: datetime | None = None
) -> list[CallSignal]:
    """Mark ringing calls of ``user_ids`` that outlived the ring timeout as missed.

    The expired anchors are returned so the caller can announce them.
    """

    ids = list(user_ids)
    stmt = select(CallSignal).where(
        _anchor_filter(),
        CallSignal.status == CallStatus.CALLING,
        or_(CallSignal.caller_id.in_(ids), CallSignal.receiver_id.in_(ids)),
    )
    return [
        call for call in db.execute(stmt).scalars().all() if expire_if_unanswered(call, db, now)
    ]


def find_open_call(user_ids: Iterable[int], db: Session) -> CallSignal | None:
    """Return a ringing or active call involving any of ``user_ids``."""

    ids = list(user_ids)
    stmt = (
        select(CallSignal)
        .where(
            _anchor_filter(),
            CallSignal.status.in_([CallStatus(status) for status in OPEN_STATUSES]),
            or_(CallSignal.caller_id.in_(ids), CallSignal.receiver_id.in_(ids)),
        )
        .order_by(CallSignal.created_at.desc(), CallSignal.id.desc())
    )
    for call in db.execute(stmt).scalars().all():
        if not expire_if_unanswered(call, db):
            return call
    return None


def start_call(
    conversation: DirectConversation,
    caller_id: int,
    offer: Mapping[str, Any] | None,
    db: Session,
) -> CallSignal:
    receiver_id = conversation.other_user_id(caller_id)
    if find_open_call((caller_id, receiver_id), db) is not None:
        raise CallBusyError("A call is already in progress")

    now = utcnow()
    call = CallSignal(
        conversation_id=conversation.id,
        caller_id=caller_id,
        receiver_id=receiver_id,
        signal_type=SignalType.OFFER,
        signal_data=build_signal_envelope(SignalType.OFFER.value, offer),
        status=CallStatus.CALLING,
        created_at=now,
        updated_at=now,
    )
    db.add(call)
    db.commit()
    db.refresh(call)
    call_transitions_total.labels(CallStatus.CALLING.value).inc()
    return call


def accept_call(call: CallSignal, answer: Mapping[str, Any] | None, db: Session) -> CallSignal:
    now = utcnow()
    expire_if_unanswered(call, db, now)
    _set_status(call, CallStatus.ACTIVE, now)
    row = _add_signal(call, call.receiver_id, SignalType.ANSWER, answer, now)
    db.add_all([call, row])
    db.commit()
    db.refresh(row)
    return row


def add_ice_candidate(
    call: CallSignal, sender_id: int, candidate: Mapping[str, Any] | None, db: Session
) -> CallSignal:
    now = utcnow()
    expire_if_unanswered(call, db, now)
    if call.status not in (CallStatus.CALLING, CallStatus.ACTIVE):
        raise CallTransitionError(call.status.value, SignalType.ICE_CANDIDATE.value)
    row = _add_signal(call, sender_id, SignalType.ICE_CANDIDATE, candidate, now)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def finish_call(
    call: CallSignal,
    actor_id: int,
    status: CallStatus,
    db: Session,
    reason: str | None = None,
) -> CallSignal:
    """Move a call to a final status and record the matching end-call row."""

    now = utcnow()
    _set_status(call, status, now)
    row = _add_signal(
        call,
        actor_id,
        SignalType.END_CALL,
        {"reason": reason or status.value},
        now,
    )
    db.add_all([call, row])
    db.commit()
    db.refresh(row)
    return row


def expire_unanswered_calls(db: Session, now: datetime | None = None) -> list[CallSignal]:
    """Sweep every ringing call past its deadline and mark it missed."""

    now = now or utcnow()
    stmt = select(CallSignal).where(_anchor_filter(), CallSignal.status == CallStatus.CALLING)
    expired: list[CallSignal] = []
    for call in db.execute(stmt).scalars().all():
        try:
            if expire_if_unanswered(call, db, now):
                expired.append(call)
        except Exception:
            db.rollback()
            logger.exception("Failed to expire call %s", call.id)
    return expired


def resume_ring_timeouts(
    db: Session, scheduler: CallTimeoutScheduler, now: datetime | None = None
) -> list[CallSignal]:
    """Expire overdue ringing calls and re-arm timers for the rest.

    Timers live in memory, so this runs once the process starts.
    """

    now = now or utcnow()
    expired = expire_unanswered_calls(db, now)
    stmt = select(CallSignal).where(_anchor_filter(), CallSignal.status == CallStatus.CALLING)
    ringing = db.execute(stmt).scalars().all()
    for call in ringing:
        scheduler.schedule(call.id, ring_seconds_left(call, now))
    if expired or ringing:
        logger.info(
            "Recovered call timers: %d missed, %d still ringing", len(expired), len(ringing)
        )
    return expired


def pending_signals(
    call: CallSignal, user_id: int, db: Session, after_id: int | None = None
) -> list[CallSignal]:
    """Signal rows of a call addressed to ``user_id``, oldest first."""

    stmt = select(CallSignal).where(
        or_(CallSignal.id == call.id, CallSignal.call_id == call.id),
        CallSignal.receiver_id == user_id,
    )
    if after_id is not None:
        stmt = stmt.where(CallSignal.id > after_id)
    return list(db.execute(stmt.order_by(CallSignal.id.asc())).scalars().all())


def call_state_for(call: CallSignal | None, user_id: int) -> CallState:
    if call is None:
        return CallState.IDLE
    return derive_call_state(call.status.value, is_caller=call.caller_id == user_id)


def signal_payload(row: CallSignal) -> dict[str, Any]:
    return {
        "id": row.id,
        "call_id": row.call_id or row.id,
        "chat_id": row.conversation_id,
        "from_user_id": row.caller_id,
        "to_user_id": row.receiver_id,
        "signal_type": row.signal_type.value,
        "signal_data": row.signal_data,
        "status": row.status.value,
    }


def status_payload(call: CallSignal) -> dict[str, Any]:
    return {
        "call_id": call.id,
        "chat_id": call.conversation_id,
        "caller_id": call.caller_id,
        "receiver_id": call.receiver_id,
        "status": call.status.value,
    }


async def publish_signal(row: CallSignal) -> None:
    await event_hub.send(row.receiver_id, {"type": "call_signal", "signal": signal_payload(row)})


async def publish_status(call: CallSignal) -> None:
    await event_hub.broadcast(
        (call.caller_id, call.receiver_id),
        {"type": "call_status", "call": status_payload(call)},
    )


class CallTimeoutScheduler:
    """Marks calls as missed when nobody answers within the ring timeout."""

    def __init__(self) -> None:
        self._tasks: dict[int, asyncio.Task[None]] = {}

    def schedule(self, call_id: int, delay_seconds: float | None = None) -> None:
        delay = settings.call_ring_timeout_seconds if delay_seconds is None else delay_seconds
        self.cancel(call_id)
        task = asyncio.create_task(self._expire_later(call_id, delay))
        self._tasks[call_id] = task
        task.add_done_callback(lambda finished: self._forget(call_id, finished))

    def _forget(self, call_id: int, task: asyncio.Task[None]) -> None:
        if self._tasks.get(call_id) is task:
            del self._tasks[call_id]

    def cancel(self, call_id: int) -> None:
        task = self._tasks.pop(call_id, None)
        if task is not None and not task.done():
            task.cancel()

    @property
    def pending(self) -> set[int]:
        return set(self._tasks)

    async def _expire_later(self, call_id: int, delay: float) -> None:
        await asyncio.sleep(delay)
        with get_db_session() as db:
            call = db.get(CallSignal, call_id)
            if call is None or call.status != CallStatus.CALLING:
                return
            try:
                # The timer is the deadline; clock skew must not keep it ringing.
                _set_status(call, CallStatus.MISSED, utcnow())
                db.add(call)
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Failed to mark call %s as missed", call_id)
                return
            logger.info("Call %s timed out after %.0fs", call_id, delay)
            await publish_status(call)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


call_timeouts = CallTimeoutScheduler()
