"""Call state rules for one-to-one WebRTC calls.

Calls are relayed through stored signal rows. The offer row carries the call
status; everything a client shows (ringing, incoming, in call) is derived from
that status and the viewer's side of the call, which keeps the rules testable
without a database.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping

RINGING_STATUS = "calling"
ACTIVE_STATUS = "active"
OPEN_STATUSES = frozenset({RINGING_STATUS, ACTIVE_STATUS})

# Allowed status changes of an anchored call. Anything else is rejected.
TRANSITIONS: Dict[str, frozenset[str]] = {
    RINGING_STATUS: frozenset({ACTIVE_STATUS, "declined", "ended", "missed"}),
    ACTIVE_STATUS: frozenset({"ended", "missed"}),
}

SIGNAL_FIELDS = {
    "offer": ("type", "sdp"),
    "answer": ("type", "sdp"),
    "ice-candidate": ("candidate", "sdpMid", "sdpMLineIndex", "usernameFragment"),
    "end-call": ("reason",),
}


class CallState(str, Enum):
    """What a participant's client should display for a call."""

    IDLE = "idle"
    CALLING = "calling"
    INCOMING = "incoming"
    ACTIVE = "active"
    ENDED = "ended"


class CallTransitionError(Exception):
    """Raised when a call cannot move to the requested status."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move call from '{current}' to '{target}'")
        self.current = current
        self.target = target


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise CallTransitionError(current, target)


def derive_call_state(status: str | None, *, is_caller: bool) -> CallState:
    """Map a stored call status onto the viewer's client state."""

    if status is None:
        return CallState.IDLE
    if status == RINGING_STATUS:
        return CallState.CALLING if is_caller else CallState.INCOMING
    if status == ACTIVE_STATUS:
        return CallState.ACTIVE
    return CallState.ENDED


def build_signal_envelope(kind: str, payload: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Normalise a signalling payload before it is stored and relayed.

    Known WebRTC fields for the signal kind come first; unknown keys are kept
    so clients may attach extra metadata.
    """

    body: Dict[str, Any] = {}
    payload = payload or {}
    for key in SIGNAL_FIELDS.get(kind, ()):
        if key in payload:
            body[key] = payload[key]
    if kind in {"offer", "answer"} and "type" not in body:
        body["type"] = kind
    for key, value in payload.items():
        if key not in body:
            body[key] = value
    return body


__all__ = [
    "ACTIVE_STATUS",
    "OPEN_STATUSES",
    "RINGING_STATUS",
    "TRANSITIONS",
    "CallState",
    "CallTransitionError",
    "build_signal_envelope",
    "can_transition",
    "derive_call_state",
    "ensure_transition",
]
