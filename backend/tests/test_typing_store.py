from __future__ import annotations

import asyncio

from kindred.realtime.typing import TypingStatusStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _run(coro):
    return asyncio.run(coro)


def test_typing_status_changes_are_reported() -> None:
    clock = FakeClock()
    store = TypingStatusStore(3.0, clock=clock)

    snapshot, changed = _run(store.set_status(7, user_id=1, display_name="Bob", is_typing=True))
    assert changed is True
    assert snapshot == [{"id": 1, "display_name": "Bob"}]

    clock.now += 1
    snapshot, changed = _run(store.set_status(7, user_id=1, display_name="Bob", is_typing=True))
    assert changed is False

    snapshot, changed = _run(store.set_status(7, user_id=2, display_name="alice", is_typing=True))
    assert changed is True
    assert [entry["display_name"] for entry in snapshot] == ["alice", "Bob"]

    snapshot, changed = _run(store.set_status(7, user_id=1, display_name="Bob", is_typing=False))
    assert changed is True
    assert snapshot == [{"id": 2, "display_name": "alice"}]


def test_typing_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    store = TypingStatusStore(3.0, clock=clock)
    _run(store.set_status(7, user_id=1, display_name="Bob", is_typing=True))

    clock.now += 2.5
    assert _run(store.expire(7)) == ([{"id": 1, "display_name": "Bob"}], False)

    clock.now += 1
    assert _run(store.expire(7)) == ([], True)
    assert _run(store.expire(7)) == ([], False)


def test_clear_user_reports_affected_chats() -> None:
    clock = FakeClock()
    store = TypingStatusStore(3.0, clock=clock)
    _run(store.set_status(7, user_id=1, display_name="Bob", is_typing=True))
    _run(store.set_status(8, user_id=1, display_name="Bob", is_typing=True))
    _run(store.set_status(8, user_id=2, display_name="Alice", is_typing=True))

    affected = _run(store.clear_user(1))

    assert affected == {7: [], 8: [{"id": 2, "display_name": "Alice"}]}
    assert _run(store.clear_user(1)) == {}
