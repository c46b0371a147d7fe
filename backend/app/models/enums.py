from __future__ import annotations

from enum import Enum


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class MediaType(str, Enum):
    """Kinds of media a story can carry."""

    IMAGE = "image"
    VIDEO = "video"


class SignalType(str, Enum):
    """Signalling messages exchanged while setting up a call."""

    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    END_CALL = "end-call"


class CallStatus(str, Enum):
    """Status recorded on call signal rows."""

    CALLING = "calling"
    ACTIVE = "active"
    DECLINED = "declined"
    ENDED = "ended"
    MISSED = "missed"
