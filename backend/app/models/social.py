from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import CallStatus, FriendRequestStatus, SignalType


def _enum_column(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


def _media_url(relative_path: str | None) -> str | None:
    from app.core.storage import build_media_url

    if not relative_path:
        return None
    return build_media_url(relative_path)


class User(Base):
    """Application user and public profile."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128))
    bio: Mapped[str | None] = mapped_column(Text)
    avatar_path: Mapped[str | None] = mapped_column(String(512))
    avatar_content_type: Mapped[str | None] = mapped_column(String(128))
    avatar_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    onesignal_player_id: Mapped[str | None] = mapped_column(String(128))
    push_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    device_platform: Mapped[str | None] = mapped_column(String(32))

    sound_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    browser_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    toast_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    sent_friend_requests: Mapped[list["FriendLink"]] = relationship(
        back_populates="requester", foreign_keys="FriendLink.requester_id", cascade="all, delete-orphan"
    )
    received_friend_requests: Mapped[list["FriendLink"]] = relationship(
        back_populates="addressee", foreign_keys="FriendLink.addressee_id", cascade="all, delete-orphan"
    )
    conversations_as_a: Mapped[list["DirectConversation"]] = relationship(
        back_populates="user_a",
        foreign_keys="DirectConversation.user_a_id",
        cascade="all, delete-orphan",
    )
    conversations_as_b: Mapped[list["DirectConversation"]] = relationship(
        back_populates="user_b",
        foreign_keys="DirectConversation.user_b_id",
        cascade="all, delete-orphan",
    )
    posts: Mapped[list["Post"]] = relationship(
        back_populates="author", cascade="all, delete-orphan"
    )
    stories: Mapped[list["Story"]] = relationship(
        back_populates="author", cascade="all, delete-orphan"
    )

    @property
    def avatar_url(self) -> str | None:
        from app.config import get_settings

        if not self.avatar_path:
            return None
        settings = get_settings()
        base = settings.avatar_base_url.rstrip("/")
        version = (
            int(self.avatar_updated_at.timestamp()) if self.avatar_updated_at is not None else None
        )
        suffix = f"?v={version}" if version is not None else ""
        return f"{base}/{self.id}{suffix}"

    @property
    def name(self) -> str:
        return self.display_name or self.username


class FriendLink(Base):
    """Friend request that becomes a friendship once accepted."""

    __tablename__ = "friend_links"
    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_friend_link_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    addressee_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[FriendRequestStatus] = mapped_column(
        _enum_column(FriendRequestStatus, "friend_request_status"),
        default=FriendRequestStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    requester: Mapped[User] = relationship(back_populates="sent_friend_requests", foreign_keys=[requester_id])
    addressee: Mapped[User] = relationship(
        back_populates="received_friend_requests", foreign_keys=[addressee_id]
    )

    def other_user(self, user_id: int) -> User:
        return self.addressee if self.requester_id == user_id else self.requester


class DirectConversation(Base):
    """One-to-one chat between two friends; the pair is stored with the smaller id first."""

    __tablename__ = "direct_conversations"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_direct_conversation_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_a_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_b_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    user_a: Mapped[User] = relationship(
        back_populates="conversations_as_a", foreign_keys=[user_a_id]
    )
    user_b: Mapped[User] = relationship(
        back_populates="conversations_as_b", foreign_keys=[user_b_id]
    )
    messages: Mapped[list["DirectMessage"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="DirectMessage.created_at",
    )
    themes: Mapped[list["ChatTheme"]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan"
    )
    call_signals: Mapped[list["CallSignal"]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan"
    )

    @property
    def participant_ids(self) -> tuple[int, int]:
        return (self.user_a_id, self.user_b_id)

    def has_user(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def other_user_id(self, user_id: int) -> int:
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id

    def other_user(self, user_id: int) -> User:
        return self.user_b if self.user_a_id == user_id else self.user_a


class DirectMessage(Base):
    """Message exchanged in a direct conversation."""

    __tablename__ = "direct_messages"
    __table_args__ = (
        Index("ix_direct_messages_conversation", "conversation_id", "created_at"),
        Index("ix_direct_messages_unread", "recipient_id", "read_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("direct_conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reply_to_id: Mapped[int | None] = mapped_column(
        ForeignKey("direct_messages.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    audio_path: Mapped[str | None] = mapped_column(String(512))
    image_path: Mapped[str | None] = mapped_column(String(512))
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    conversation: Mapped[DirectConversation] = relationship(back_populates="messages")
    sender: Mapped[User] = relationship(foreign_keys=[sender_id])
    recipient: Mapped[User] = relationship(foreign_keys=[recipient_id])
    reply_to: Mapped["DirectMessage | None"] = relationship(
        remote_side="DirectMessage.id", foreign_keys=[reply_to_id]
    )
    reactions: Mapped[list["MessageReaction"]] = relationship(
        back_populates="message", cascade="all, delete-orphan", order_by="MessageReaction.id"
    )
    hidden_for: Mapped[list["MessageHide"]] = relationship(
        back_populates="message", cascade="all, delete-orphan"
    )

    @property
    def audio_url(self) -> str | None:
        return _media_url(self.audio_path)

    @property
    def image_url(self) -> str | None:
        return _media_url(self.image_path)


class MessageHide(Base):
    """Marks a message as deleted for a single user only."""

    __tablename__ = "direct_message_hides"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_direct_message_hide"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("direct_messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    message: Mapped[DirectMessage] = relationship(back_populates="hidden_for")


class MessageReaction(Base):
    """Individual emoji reactions for a message."""

    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        Index("ix_reactions_message", "message_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("direct_messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    message: Mapped[DirectMessage] = relationship(back_populates="reactions")


class ChatTheme(Base):
    """Per-user theme choice for a conversation."""

    __tablename__ = "chat_themes"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_chat_theme_owner"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("direct_conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    theme_key: Mapped[str] = mapped_column(String(32), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    conversation: Mapped[DirectConversation] = relationship(back_populates="themes")


class CallSignal(Base):
    """Signalling row relayed between call participants.

    The offer row anchors a call: its ``status`` tracks the call lifecycle
    while answer, ICE candidate and end-call rows point back to it through
    ``call_id``.
    """

    __tablename__ = "call_signals"
    __table_args__ = (
        Index("ix_call_signals_receiver", "receiver_id", "created_at"),
        Index("ix_call_signals_call", "call_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("direct_conversations.id", ondelete="CASCADE"), nullable=False
    )
    call_id: Mapped[int | None] = mapped_column(
        ForeignKey("call_signals.id", ondelete="SET NULL"), nullable=True
    )
    caller_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    signal_type: Mapped[SignalType] = mapped_column(
        _enum_column(SignalType, "call_signal_type"), nullable=False
    )
    signal_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[CallStatus] = mapped_column(
        _enum_column(CallStatus, "call_status"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    answered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    conversation: Mapped[DirectConversation] = relationship(back_populates="call_signals")
    caller: Mapped[User] = relationship(foreign_keys=[caller_id])
    receiver: Mapped[User] = relationship(foreign_keys=[receiver_id])

    def has_user(self, user_id: int) -> bool:
        return user_id in (self.caller_id, self.receiver_id)

    def other_user_id(self, user_id: int) -> int:
        return self.receiver_id if self.caller_id == user_id else self.caller_id
