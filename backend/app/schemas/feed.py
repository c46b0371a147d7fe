"""Schemas for posts, comments, follows and stories."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, constr

from app.models.enums import MediaType
from app.schemas.users import PublicUser


class PostRead(BaseModel):
    id: int
    author: PublicUser
    caption: str | None = None
    image_url: str | None = None
    likes_count: int = 0
    comments_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime


class PostUpdate(BaseModel):
    caption: constr(strip_whitespace=True, max_length=2200) | None = None


class CommentCreate(BaseModel):
    content: constr(max_length=2000) = Field(..., description="Comment text")


class CommentRead(BaseModel):
    id: int
    post_id: int
    author: PublicUser
    content: str
    created_at: datetime


class LikeResult(BaseModel):
    post_id: int
    is_liked: bool
    likes_count: int


class FollowStatus(BaseModel):
    user_id: int
    is_following: bool


class FollowCounts(BaseModel):
    user_id: int
    followers: int = 0
    following: int = 0


class StoryRead(BaseModel):
    id: int
    user_id: int
    media_url: str
    media_type: MediaType
    created_at: datetime
    expires_at: datetime


class StoryGroup(BaseModel):
    """Active stories of a single author, newest first."""

    author: PublicUser
    stories: list[StoryRead] = Field(default_factory=list)
