"""One-to-one chats: messages, read receipts, reactions and themes."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from app.api.deps import (
    are_friends,
    get_current_user,
    get_user_or_404,
    ensure_friends,
    require_conversation,
    require_friend_conversation,
    require_message,
)
from app.api.friends import ensure_conversation
from app.api.serializers import serialize_message, serialize_public_user, summarize_reactions
from app.config import get_settings
from app.core.clock import as_utc, utcnow
from app.core.storage import AUDIO_TYPES, IMAGE_TYPES, delete_stored, store_media
from app.database import get_db
from app.models import (
    ChatTheme,
    DirectConversation,
    DirectMessage,
    MessageHide,
    MessageReaction,
    User,
)
from app.schemas import (
    ChatOpenRequest,
    ChatRead,
    ChatThemeOption,
    ChatThemeRead,
    ChatThemeUpdate,
    DirectMessageCreate,
    DirectMessageRead,
    DirectMessageUpdate,
    MessageReactionSummary,
    ReactionRequest,
    ReactionResult,
    ReadReceipt,
    UnreadCounts,
)
from app.services.events import event_hub
from app.services.notifications import message_preview, notify_new_message, unread_counts
from app.services.push import deliver_message_push
from app.services.themes import DEFAULT_THEME, is_known_theme, theme_catalog

router = APIRouter(prefix="/chats", tags=["chats"])

settings = get_settings()

logger = logging.getLogger(__name__)

VOICE_MESSAGE_CONTENT = "🎤 Voice message"
PHOTO_MESSAGE_CONTENT = "📷 Photo"


def _hidden_ids(user_id: int):
    return select(MessageHide.message_id).where(MessageHide.user_id == user_id)


def _message_options():
    return (
        selectinload(DirectMessage.reactions),
        selectinload(DirectMessage.reply_to),
    )


def _clean_content(raw: str) -> str:
    content = raw.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message cannot be empty")
    if len(content) > settings.chat_message_max_length:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is too long")
    return content


def _last_visible_message(conversation_id: int, user_id: int, db: Session) -> DirectMessage | None:
    stmt = (
        select(DirectMessage)
        .where(
            DirectMessage.conversation_id == conversation_id,
            DirectMessage.id.not_in(_hidden_ids(user_id)),
        )
        .options(*_message_options())
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def _unread_in_chat(conversation: DirectConversation, user_id: int, db: Session) -> int:
    if not are_friends(user_id, conversation.other_user_id(user_id), db):
        return 0
    stmt = select(func.count(DirectMessage.id)).where(
        DirectMessage.conversation_id == conversation.id,
        DirectMessage.recipient_id == user_id,
        DirectMessage.read_at.is_(None),
        DirectMessage.id.not_in(_hidden_ids(user_id)),
    )
    return int(db.execute(stmt).scalar_one())


def serialize_chat(conversation: DirectConversation, user_id: int, db: Session) -> ChatRead:
    last_message = _last_visible_message(conversation.id, user_id, db)
    return ChatRead(
        id=conversation.id,
        other_user=serialize_public_user(conversation.other_user(user_id)),
        last_message=serialize_message(last_message, user_id) if last_message else None,
        unread_count=_unread_in_chat(conversation, user_id, db),
        last_message_at=conversation.last_message_at,
        created_at=conversation.created_at,
    )


def _activity_key(chat: ChatRead) -> tuple[datetime, int]:
    moment = chat.last_message_at or chat.created_at
    return as_utc(moment), chat.id


async def _publish_reactions(message: DirectMessage, db: Session) -> None:
    db.refresh(message, attribute_names=["reactions"])
    for viewer_id in (message.sender_id, message.recipient_id):
        await event_hub.send(
            viewer_id,
            {
                "type": "reactions_updated",
                "chat_id": message.conversation_id,
                "message_id": message.id,
                "reactions": [
                    summary.model_dump(mode="json")
                    for summary in summarize_reactions(message.reactions, viewer_id)
                ],
            },
        )


async def _publish_new_message(
    conversation: DirectConversation,
    message: DirectMessage,
    sender: User,
    background_tasks: BackgroundTasks,
    db: Session,
) -> DirectMessageRead:
    payload = serialize_message(message, sender.id)
    await event_hub.broadcast(
        conversation.participant_ids,
        {
            "type": "message",
            "chat_id": conversation.id,
            "message": payload.model_dump(mode="json"),
        },
    )
    recipient = conversation.other_user(sender.id)
    await notify_new_message(message, sender, recipient, db)
    background_tasks.add_task(
        deliver_message_push,
        recipient.id,
        sender.name,
        message_preview(message),
        {"type": "message", "chat_id": str(conversation.id), "message_id": str(message.id)},
    )
    return payload


def _store_message(
    conversation: DirectConversation,
    sender: User,
    db: Session,
    *,
    content: str,
    reply_to_id: int | None = None,
    audio_path: str | None = None,
    image_path: str | None = None,
) -> DirectMessage:
    if reply_to_id is not None:
        target = db.get(DirectMessage, reply_to_id)
        if target is None or target.conversation_id != conversation.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Reply target is not part of this chat",
            )
    now = utcnow()
    message = DirectMessage(
        conversation_id=conversation.id,
        sender_id=sender.id,
        recipient_id=conversation.other_user_id(sender.id),
        reply_to_id=reply_to_id,
        content=content,
        audio_path=audio_path,
        image_path=image_path,
        created_at=now,
    )
    conversation.last_message_at = now
    db.add_all([message, conversation])
    db.commit()
    db.refresh(message)
    return message


@router.get("", response_model=list[ChatRead])
async def list_chats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ChatRead]:
    """Chats of the current user, most recent activity first."""

    stmt = (
        select(DirectConversation)
        .where(
            or_(
                DirectConversation.user_a_id == current_user.id,
                DirectConversation.user_b_id == current_user.id,
            )
        )
        .options(selectinload(DirectConversation.user_a), selectinload(DirectConversation.user_b))
    )
    chats = [
        serialize_chat(conversation, current_user.id, db)
        for conversation in db.execute(stmt).scalars().all()
    ]
    return sorted(chats, key=_activity_key, reverse=True)


@router.post("", response_model=ChatRead)
async def open_chat(
    payload: ChatOpenRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatRead:
    """Return the chat with a friend, creating it when needed."""

    friend = get_user_or_404(payload.friend_id, db)
    if friend.id == current_user.id or not are_friends(current_user.id, friend.id, db):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only chat with friends")
    conversation = ensure_conversation(current_user.id, friend.id, db)
    db.commit()
    db.refresh(conversation)
    return serialize_chat(conversation, current_user.id, db)


@router.get("/unread", response_model=UnreadCounts)
async def read_unread_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCounts:
    counts = unread_counts(current_user.id, db)
    return UnreadCounts(counts=counts, total=sum(counts.values()))


@router.get("/themes", response_model=list[ChatThemeOption])
async def list_themes() -> list[ChatThemeOption]:
    return [ChatThemeOption(**option) for option in theme_catalog()]


@router.get("/{chat_id}", response_model=ChatRead)
async def read_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatRead:
    conversation = require_conversation(chat_id, current_user, db)
    return serialize_chat(conversation, current_user.id, db)


@router.get("/{chat_id}/messages", response_model=list[DirectMessageRead])
async def list_messages(
    chat_id: int,
    limit: int | None = Query(default=None, ge=1),
    before_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[DirectMessageRead]:
    """Page through history; the newest page comes first, each page is oldest first."""

    conversation = require_conversation(chat_id, current_user, db)
    page_size = min(limit or settings.chat_history_default_limit, settings.chat_history_max_limit)

    stmt = (
        select(DirectMessage)
        .where(
            DirectMessage.conversation_id == conversation.id,
            DirectMessage.id.not_in(_hidden_ids(current_user.id)),
        )
        .options(*_message_options())
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(page_size)
    )
    if before_id is not None:
        stmt = stmt.where(DirectMessage.id < before_id)
    messages = list(reversed(db.execute(stmt).scalars().all()))
    return [serialize_message(message, current_user.id) for message in messages]


@router.post(
    "/{chat_id}/messages",
    response_model=DirectMessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    chat_id: int,
    payload: DirectMessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DirectMessageRead:
    conversation = require_friend_conversation(chat_id, current_user, db)
    message = _store_message(
        conversation,
        current_user,
        db,
        content=_clean_content(payload.content),
        reply_to_id=payload.reply_to_id,
    )
    return await _publish_new_message(conversation, message, current_user, background_tasks, db)


@router.post(
    "/{chat_id}/voice",
    response_model=DirectMessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_voice_message(
    chat_id: int,
    background_tasks: BackgroundTasks,
    audio: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DirectMessageRead:
    conversation = require_friend_conversation(chat_id, current_user, db)
    stored = await store_media(
        "voice", current_user.id, audio, allowed_prefixes=AUDIO_TYPES, label="audio"
    )
    message = _store_message(
        conversation,
        current_user,
        db,
        content=VOICE_MESSAGE_CONTENT,
        audio_path=stored.relative_path,
    )
    return await _publish_new_message(conversation, message, current_user, background_tasks, db)


@router.post(
    "/{chat_id}/images",
    response_model=DirectMessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_image_message(
    chat_id: int,
    background_tasks: BackgroundTasks,
    image: UploadFile = File(...),
    caption: str | None = Form(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DirectMessageRead:
    conversation = require_friend_conversation(chat_id, current_user, db)
    content = (caption or "").strip() or PHOTO_MESSAGE_CONTENT
    if len(content) > settings.chat_message_max_length:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is too long")
    stored = await store_media(
        "images", current_user.id, image, allowed_prefixes=IMAGE_TYPES, label="image"
    )
    message = _store_message(
        conversation,
        current_user,
        db,
        content=content,
        image_path=stored.relative_path,
    )
    return await _publish_new_message(conversation, message, current_user, background_tasks, db)


@router.delete("/{chat_id}/messages", status_code=status.HTTP_204_NO_CONTENT)
async def clear_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete every message of the chat for both participants."""

    conversation = require_conversation(chat_id, current_user, db)
    messages = db.execute(
        select(DirectMessage).where(DirectMessage.conversation_id == conversation.id)
    ).scalars().all()
    message_ids = [message.id for message in messages]
    media = [path for message in messages for path in (message.audio_path, message.image_path) if path]
    for message in messages:
        db.delete(message)
    conversation.last_message_at = None
    db.add(conversation)
    db.commit()
    for path in media:
        delete_stored(path)
    await event_hub.broadcast(
        conversation.participant_ids,
        {"type": "message_deleted", "chat_id": conversation.id, "message_ids": message_ids, "cleared": True},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{chat_id}/read", response_model=ReadReceipt)
async def mark_read(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReadReceipt:
    """Mark every unread message addressed to the caller as read."""

    conversation = require_conversation(chat_id, current_user, db)
    unread_ids = db.execute(
        select(DirectMessage.id).where(
            DirectMessage.conversation_id == conversation.id,
            DirectMessage.recipient_id == current_user.id,
            DirectMessage.read_at.is_(None),
        )
    ).scalars().all()
    now = utcnow()
    if unread_ids:
        db.execute(
            update(DirectMessage)
            .where(DirectMessage.id.in_(unread_ids))
            .values(read_at=now)
        )
        db.commit()
        await event_hub.send(
            conversation.other_user_id(current_user.id),
            {
                "type": "messages_read",
                "chat_id": conversation.id,
                "reader_id": current_user.id,
                "message_ids": list(unread_ids),
                "read_at": now.isoformat(),
            },
        )
    return ReadReceipt(chat_id=conversation.id, updated=len(unread_ids), read_at=now)


@router.get("/{chat_id}/reactions", response_model=dict[int, list[MessageReactionSummary]])
async def list_chat_reactions(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[int, list[MessageReactionSummary]]:
    """Reaction summaries for every message of the chat that has reactions."""

    conversation = require_conversation(chat_id, current_user, db)
    reactions = db.execute(
        select(MessageReaction)
        .join(DirectMessage, DirectMessage.id == MessageReaction.message_id)
        .where(DirectMessage.conversation_id == conversation.id)
        .order_by(MessageReaction.id.asc())
    ).scalars().all()
    grouped: dict[int, list[MessageReaction]] = {}
    for reaction in reactions:
        grouped.setdefault(reaction.message_id, []).append(reaction)
    return {
        message_id: summarize_reactions(items, current_user.id)
        for message_id, items in grouped.items()
    }


@router.get("/{chat_id}/theme", response_model=ChatThemeRead)
async def read_chat_theme(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatThemeRead:
    conversation = require_conversation(chat_id, current_user, db)
    theme = db.execute(
        select(ChatTheme).where(
            ChatTheme.conversation_id == conversation.id,
            ChatTheme.user_id == current_user.id,
        )
    ).scalar_one_or_none()
    return ChatThemeRead(chat_id=conversation.id, theme_key=theme.theme_key if theme else DEFAULT_THEME)


@router.put("/{chat_id}/theme", response_model=ChatThemeRead)
async def update_chat_theme(
    chat_id: int,
    payload: ChatThemeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatThemeRead:
    """Store the caller's theme for this chat; the other participant is unaffected."""

    conversation = require_conversation(chat_id, current_user, db)
    if not is_known_theme(payload.theme_key):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown chat theme")
    theme = db.execute(
        select(ChatTheme).where(
            ChatTheme.conversation_id == conversation.id,
            ChatTheme.user_id == current_user.id,
        )
    ).scalar_one_or_none()
    if theme is None:
        theme = ChatTheme(conversation_id=conversation.id, user_id=current_user.id)
    theme.theme_key = payload.theme_key
    theme.updated_at = utcnow()
    db.add(theme)
    db.commit()
    return ChatThemeRead(chat_id=conversation.id, theme_key=theme.theme_key)


@router.patch("/messages/{message_id}", response_model=DirectMessageRead)
async def edit_message(
    message_id: int,
    payload: DirectMessageUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DirectMessageRead:
    message = require_message(message_id, current_user, db)
    if message.sender_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the sender can edit a message")
    message.content = _clean_content(payload.content)
    message.is_edited = True
    message.edited_at = utcnow()
    db.add(message)
    db.commit()
    db.refresh(message)
    result = serialize_message(message, current_user.id)
    await event_hub.broadcast(
        (message.sender_id, message.recipient_id),
        {
            "type": "message_updated",
            "chat_id": message.conversation_id,
            "message": result.model_dump(mode="json"),
        },
    )
    return result


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    for_everyone: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete a message for everyone (sender only) or hide it for the caller."""

    message = require_message(message_id, current_user, db)
    if for_everyone:
        if message.sender_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the sender can delete a message for everyone",
            )
        chat_id = message.conversation_id
        participants = (message.sender_id, message.recipient_id)
        media = [path for path in (message.audio_path, message.image_path) if path]
        db.execute(
            update(DirectMessage)
            .where(DirectMessage.reply_to_id == message.id)
            .values(reply_to_id=None)
        )
        db.delete(message)
        db.commit()
        for path in media:
            delete_stored(path)
        await event_hub.broadcast(
            participants,
            {"type": "message_deleted", "chat_id": chat_id, "message_ids": [message_id]},
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    already_hidden = db.execute(
        select(MessageHide.id).where(
            MessageHide.message_id == message.id,
            MessageHide.user_id == current_user.id,
        )
    ).first()
    if already_hidden is None:
        db.add(MessageHide(message_id=message.id, user_id=current_user.id))
        db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/messages/{message_id}/reactions", response_model=list[MessageReactionSummary])
async def read_reactions(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageReactionSummary]:
    message = require_message(message_id, current_user, db)
    return summarize_reactions(message.reactions, current_user.id)


def _other_participant(message: DirectMessage, user_id: int) -> int:
    return message.recipient_id if message.sender_id == user_id else message.sender_id


def _find_reaction(message_id: int, user_id: int, emoji: str, db: Session) -> MessageReaction | None:
    return db.execute(
        select(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
            MessageReaction.emoji == emoji,
        )
    ).scalar_one_or_none()


@router.post("/messages/{message_id}/reactions", response_model=ReactionResult)
async def add_reaction(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReactionResult:
    """Add a reaction; repeating the same emoji changes nothing."""

    message = require_message(message_id, current_user, db)
    ensure_friends(current_user, _other_participant(message, current_user.id), db)
    if _find_reaction(message.id, current_user.id, payload.emoji, db) is not None:
        return ReactionResult(
            message_id=message.id,
            changed=False,
            added=False,
            reactions=summarize_reactions(message.reactions, current_user.id),
        )
    db.add(MessageReaction(message_id=message.id, user_id=current_user.id, emoji=payload.emoji))
    db.commit()
    await _publish_reactions(message, db)
    return ReactionResult(
        message_id=message.id,
        changed=True,
        added=True,
        reactions=summarize_reactions(message.reactions, current_user.id),
    )


@router.delete("/messages/{message_id}/reactions", response_model=ReactionResult)
async def remove_reaction(
    message_id: int,
    emoji: str = Query(..., min_length=1, max_length=32),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReactionResult:
    message = require_message(message_id, current_user, db)
    reaction = _find_reaction(message.id, current_user.id, emoji.strip(), db)
    changed = reaction is not None
    if reaction is not None:
        db.delete(reaction)
        db.commit()
        await _publish_reactions(message, db)
    return ReactionResult(
        message_id=message.id,
        changed=changed,
        added=False,
        reactions=summarize_reactions(message.reactions, current_user.id),
    )


@router.post("/messages/{message_id}/reactions/toggle", response_model=ReactionResult)
async def toggle_reaction(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReactionResult:
    message = require_message(message_id, current_user, db)
    ensure_friends(current_user, _other_participant(message, current_user.id), db)
    reaction = _find_reaction(message.id, current_user.id, payload.emoji, db)
    if reaction is None:
        db.add(MessageReaction(message_id=message.id, user_id=current_user.id, emoji=payload.emoji))
        added = True
    else:
        db.delete(reaction)
        added = False
    db.commit()
    await _publish_reactions(message, db)
    return ReactionResult(
        message_id=message.id,
        changed=True,
        added=added,
        reactions=summarize_reactions(message.reactions, current_user.id),
    )
