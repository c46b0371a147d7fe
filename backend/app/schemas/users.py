"""Schemas related to user profiles and friendships."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr

from app.models.enums import FriendRequestStatus


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None


class UserProfileUpdate(BaseModel):
    """Payload for updating the profile; omitted fields stay unchanged."""

    display_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = None
    username: constr(strip_whitespace=True, min_length=3, max_length=64) | None = None
    bio: constr(strip_whitespace=True, max_length=500) | None = None


class FriendRequestRead(BaseModel):
    """Serialized friend request including participants."""

    id: int
    requester: PublicUser
    addressee: PublicUser
    status: FriendRequestStatus
    created_at: datetime
    responded_at: datetime | None = None


class FriendRequestList(BaseModel):
    """Categorized friend requests for convenience in the UI."""

    incoming: list[FriendRequestRead] = Field(default_factory=list)
    outgoing: list[FriendRequestRead] = Field(default_factory=list)


class FriendRequestCreate(BaseModel):
    """Payload for sending a friend request."""

    user_id: int = Field(..., description="Identifier of the user to befriend")


class FriendRequestResponse(BaseModel):
    accept: bool = Field(..., description="Accept (true) or decline (false) the request")
