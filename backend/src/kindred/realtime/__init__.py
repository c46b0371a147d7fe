"""Realtime helpers that hold transient, in-memory state."""

from .typing import TypingStatusStore, get_typing_store  # noqa: F401

__all__ = ["TypingStatusStore", "get_typing_store"]
