"""Conversions from ORM rows to response schemas shared by several routers."""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable

from app.models import CallSignal, DirectMessage, MessageReaction, User
from app.schemas import (
    CallRead,
    DirectMessageRead,
    MessageReactionSummary,
    PublicUser,
    ReplyPreview,
)
from app.services.calls import call_state_for
from app.services.presence import is_effectively_online


def serialize_public_user(user: User) -> PublicUser:
    return PublicUser(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        bio=user.bio,
        is_online=is_effectively_online(user),
        last_seen=user.last_seen,
    )


def summarize_reactions(
    reactions: Iterable[MessageReaction], viewer_id: int
) -> list[MessageReactionSummary]:
    """Group reactions by emoji, most used first; ties keep first-reaction order."""

    grouped: "OrderedDict[str, list[int]]" = OrderedDict()
    for reaction in sorted(reactions, key=lambda item: item.id):
        grouped.setdefault(reaction.emoji, []).append(reaction.user_id)
    summaries = [
        MessageReactionSummary(
            emoji=emoji,
            count=len(user_ids),
            reacted=viewer_id in user_ids,
            user_ids=user_ids,
        )
        for emoji, user_ids in grouped.items()
    ]
    # sorted() is stable, so equal counts stay in first-reaction order.
    return sorted(summaries, key=lambda summary: -summary.count)


def serialize_message(message: DirectMessage, viewer_id: int) -> DirectMessageRead:
    reply = message.reply_to
    return DirectMessageRead(
        id=message.id,
        chat_id=message.conversation_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        content=message.content,
        audio_url=message.audio_url,
        image_url=message.image_url,
        reply_to=(
            ReplyPreview(id=reply.id, sender_id=reply.sender_id, content=reply.content)
            if reply is not None
            else None
        ),
        is_edited=message.is_edited,
        edited_at=message.edited_at,
        read_at=message.read_at,
        created_at=message.created_at,
        reactions=summarize_reactions(message.reactions, viewer_id),
    )


def serialize_call(call: CallSignal, viewer_id: int) -> CallRead:
    return CallRead(
        id=call.id,
        chat_id=call.conversation_id,
        caller_id=call.caller_id,
        receiver_id=call.receiver_id,
        status=call.status,
        state=call_state_for(call, viewer_id),
        offer=call.signal_data or {},
        created_at=call.created_at,
        answered_at=call.answered_at,
        ended_at=call.ended_at,
    )
