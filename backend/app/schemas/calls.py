"""Schemas for call signaling."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from kindred.voice.signaling import CallState

from app.models.enums import CallStatus, SignalType


class CallStart(BaseModel):
    chat_id: int
    offer: dict[str, Any] = Field(..., description="SDP offer produced by the caller")


class CallAnswer(BaseModel):
    answer: dict[str, Any] = Field(..., description="SDP answer produced by the receiver")


class IceCandidate(BaseModel):
    candidate: dict[str, Any] = Field(..., description="ICE candidate to relay")


class CallEnd(BaseModel):
    status: Literal["ended", "missed"] = "ended"


class CallRead(BaseModel):
    """Call anchor along with the state the viewer should display."""

    id: int
    chat_id: int
    caller_id: int
    receiver_id: int
    status: CallStatus
    state: CallState
    offer: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    answered_at: datetime | None = None
    ended_at: datetime | None = None


class CurrentCall(BaseModel):
    state: CallState = CallState.IDLE
    call: CallRead | None = None


class CallSignalRead(BaseModel):
    id: int
    call_id: int
    chat_id: int
    from_user_id: int
    to_user_id: int
    signal_type: SignalType
    signal_data: dict[str, Any] = Field(default_factory=dict)
    status: CallStatus
    created_at: datetime
