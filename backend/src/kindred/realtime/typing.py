"""Typing indicators with automatic expiry."""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Callable, Dict

TypingEntry = dict[str, str | int]


class TypingStatusStore:
    """Stores transient typing indicators per chat.

    Each entry records when the user last reported typing; entries older than
    ``ttl_seconds`` are treated as stopped and pruned on the next access.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, Dict[int, tuple[str, float]]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def _cleanup_expired(
        self, chat_id: int, bucket: Dict[int, tuple[str, float]], now: float
    ) -> bool:
        removed = [user_id for user_id, (_, ts) in bucket.items() if now - ts > self._ttl]
        for user_id in removed:
            bucket.pop(user_id, None)
        if not bucket:
            self._entries.pop(chat_id, None)
        return bool(removed)

    def _build_snapshot(self, bucket: Dict[int, tuple[str, float]], now: float) -> list[TypingEntry]:
        entries: list[TypingEntry] = [
            {"id": user_id, "display_name": display_name}
            for user_id, (display_name, ts) in bucket.items()
            if now - ts <= self._ttl
        ]
        entries.sort(key=lambda item: str(item["display_name"]).lower())
        return entries

    async def set_status(
        self,
        chat_id: int,
        *,
        user_id: int,
        display_name: str,
        is_typing: bool,
    ) -> tuple[list[TypingEntry], bool]:
        """Record a typing report and return the chat snapshot and whether it changed."""

        now = self._clock()
        async with self._lock:
            bucket = self._entries.setdefault(chat_id, {})
            previous = {user_id for user_id, (_, ts) in bucket.items() if now - ts <= self._ttl}
            if is_typing:
                bucket[user_id] = (display_name, now)
            else:
                bucket.pop(user_id, None)
            self._cleanup_expired(chat_id, bucket, now)
            snapshot = self._build_snapshot(bucket, now)
            current = {int(entry["id"]) for entry in snapshot}
            return snapshot, current != previous

    async def expire(self, chat_id: int) -> tuple[list[TypingEntry], bool]:
        """Prune stale entries of a chat; the flag tells whether any were removed."""

        now = self._clock()
        async with self._lock:
            bucket = self._entries.get(chat_id)
            if not bucket:
                return [], False
            removed = self._cleanup_expired(chat_id, bucket, now)
            return self._build_snapshot(bucket, now), removed

    async def clear_user(self, user_id: int) -> dict[int, list[TypingEntry]]:
        """Drop the user from every chat, returning the new snapshots of affected chats."""

        now = self._clock()
        affected: dict[int, list[TypingEntry]] = {}
        async with self._lock:
            for chat_id in list(self._entries):
                bucket = self._entries[chat_id]
                if user_id not in bucket:
                    continue
                bucket.pop(user_id, None)
                self._cleanup_expired(chat_id, bucket, now)
                affected[chat_id] = self._build_snapshot(bucket, now)
        return affected


_typing_store: TypingStatusStore | None = None


def get_typing_store(ttl_seconds: float = 3.0) -> TypingStatusStore:
    """Return the process-wide store, creating it on first use."""

    global _typing_store
    if _typing_store is None:
        _typing_store = TypingStatusStore(ttl_seconds)
    return _typing_store
