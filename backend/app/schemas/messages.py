"""Schemas for chats, messages, reactions and chat themes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, constr

from app.schemas.users import PublicUser


class MessageReactionSummary(BaseModel):
    """Aggregated reaction information for a message."""

    emoji: str = Field(..., description="Emoji character, e.g. 👍")
    count: int = Field(..., ge=0, description="Total reactions with the emoji")
    reacted: bool = Field(
        default=False,
        description="Indicates whether the current user added this reaction",
    )
    user_ids: list[int] = Field(
        default_factory=list,
        description="Identifiers of users who added this reaction",
    )


class ReplyPreview(BaseModel):
    id: int
    sender_id: int
    content: str


class DirectMessageRead(BaseModel):
    """Representation of a chat message."""

    id: int
    chat_id: int
    sender_id: int
    recipient_id: int
    content: str
    audio_url: str | None = None
    image_url: str | None = None
    reply_to: ReplyPreview | None = None
    is_edited: bool = False
    edited_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime
    reactions: list[MessageReactionSummary] = Field(default_factory=list)


class DirectMessageCreate(BaseModel):
    content: constr(max_length=20000) = Field(..., description="Message text")
    reply_to_id: int | None = Field(default=None, description="Message being replied to")


class DirectMessageUpdate(BaseModel):
    content: constr(max_length=20000) = Field(..., description="New message text")


class ChatOpenRequest(BaseModel):
    friend_id: int = Field(..., description="Friend to open a chat with")


class ChatRead(BaseModel):
    """Chat summary for the conversation list."""

    id: int
    other_user: PublicUser
    last_message: DirectMessageRead | None = None
    unread_count: int = 0
    last_message_at: datetime | None = None
    created_at: datetime


class ReadReceipt(BaseModel):
    chat_id: int
    updated: int = Field(..., description="Number of messages marked as read")
    read_at: datetime


class UnreadCounts(BaseModel):
    counts: dict[int, int] = Field(default_factory=dict, description="Unread messages per friend")
    total: int = 0


class ReactionRequest(BaseModel):
    """Payload for adding or removing a reaction."""

    emoji: constr(strip_whitespace=True, min_length=1, max_length=32)


class ReactionResult(BaseModel):
    message_id: int
    changed: bool = Field(..., description="Whether the reaction set was modified")
    added: bool = Field(default=False, description="Whether the caller's reaction is now present")
    reactions: list[MessageReactionSummary] = Field(default_factory=list)


class ChatThemeRead(BaseModel):
    chat_id: int
    theme_key: str


class ChatThemeUpdate(BaseModel):
    theme_key: constr(strip_whitespace=True, min_length=1, max_length=32)


class ChatThemeOption(BaseModel):
    key: str
    name: str
