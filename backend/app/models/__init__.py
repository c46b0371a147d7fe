"""Database models package."""

from .base import Base
from .enums import CallStatus, FriendRequestStatus, MediaType, SignalType
from .social import (
    CallSignal,
    ChatTheme,
    DirectConversation,
    DirectMessage,
    FriendLink,
    MessageHide,
    MessageReaction,
    User,
)
from .feed import Follow, Post, PostComment, PostLike, Story

__all__ = [
    "Base",
    "User",
    "FriendLink",
    "DirectConversation",
    "DirectMessage",
    "MessageHide",
    "MessageReaction",
    "ChatTheme",
    "CallSignal",
    "Post",
    "PostComment",
    "PostLike",
    "Follow",
    "Story",
    "CallStatus",
    "FriendRequestStatus",
    "MediaType",
    "SignalType",
]
