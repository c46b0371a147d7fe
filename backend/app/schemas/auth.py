"""Schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr


class UserBase(BaseModel):
    """Base fields shared across user schemas."""

    username: constr(strip_whitespace=True, min_length=3, max_length=64) = Field(
        ..., description="Unique username consisting of 3-64 characters"
    )
    display_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = Field(
        default=None, description="Optional display name to show in the UI"
    )


class UserCreate(UserBase):
    """Payload for creating a new user via registration."""

    email: constr(
        strip_whitespace=True,
        to_lower=True,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
    ) = Field(..., description="Unique e-mail address used to sign in")
    password: constr(min_length=6, max_length=128) = Field(
        ..., description="Plain text password that will be hashed before storing"
    )


class UserRead(UserBase):
    """Representation of the authenticated account."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    bio: str | None = None
    avatar_url: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None
    push_enabled: bool = False
    created_at: datetime
    updated_at: datetime


class LoginRequest(BaseModel):
    """Payload for user login."""

    identifier: constr(strip_whitespace=True, min_length=3, max_length=255) = Field(
        ..., description="E-mail address or username"
    )
    password: constr(min_length=1, max_length=128) = Field(..., description="User password")
    remember_me: bool = Field(
        default=False,
        description="Request a long-lived refresh token (stored in an HttpOnly cookie)",
    )


class Token(BaseModel):
    """Access token returned after successful authentication."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type, always 'bearer'")
    refresh_token: str | None = Field(
        default=None,
        description="Opaque refresh token identifier (also set as an HttpOnly cookie)",
    )
    expires_in: int | None = Field(
        default=None,
        description="Number of seconds until the access token expires",
    )


class RefreshRequest(BaseModel):
    """Payload for requesting a new access token using a refresh token."""

    refresh_token: str | None = Field(
        default=None,
        description="Optional refresh token value when cookies are unavailable",
    )
