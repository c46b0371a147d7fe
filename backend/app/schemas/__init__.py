"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, RefreshRequest, Token, UserCreate, UserRead
from .users import (
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    FriendRequestResponse,
    PublicUser,
    UserProfileUpdate,
)
from .messages import (
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
    ReplyPreview,
    UnreadCounts,
)
from .feed import (
    CommentCreate,
    CommentRead,
    FollowCounts,
    FollowStatus,
    LikeResult,
    PostRead,
    PostUpdate,
    StoryGroup,
    StoryRead,
)
from .calls import CallAnswer, CallEnd, CallRead, CallSignalRead, CallStart, CurrentCall, IceCandidate
from .push import NotificationSettings, NotificationSettingsUpdate, PushProfileSync, PushSendRequest

__all__ = [
    "LoginRequest",
    "RefreshRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "PublicUser",
    "UserProfileUpdate",
    "FriendRequestCreate",
    "FriendRequestList",
    "FriendRequestRead",
    "FriendRequestResponse",
    "ChatOpenRequest",
    "ChatRead",
    "ChatThemeOption",
    "ChatThemeRead",
    "ChatThemeUpdate",
    "DirectMessageCreate",
    "DirectMessageRead",
    "DirectMessageUpdate",
    "MessageReactionSummary",
    "ReactionRequest",
    "ReactionResult",
    "ReadReceipt",
    "ReplyPreview",
    "UnreadCounts",
    "CommentCreate",
    "CommentRead",
    "FollowCounts",
    "FollowStatus",
    "LikeResult",
    "PostRead",
    "PostUpdate",
    "StoryGroup",
    "StoryRead",
    "CallAnswer",
    "CallEnd",
    "CallRead",
    "CallSignalRead",
    "CallStart",
    "CurrentCall",
    "IceCandidate",
    "NotificationSettings",
    "NotificationSettingsUpdate",
    "PushProfileSync",
    "PushSendRequest",
]
