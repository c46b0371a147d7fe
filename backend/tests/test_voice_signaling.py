import pytest

from kindred.voice.signaling import (
    CallState,
    CallTransitionError,
    build_signal_envelope,
    can_transition,
    derive_call_state,
    ensure_transition,
)


def test_ringing_call_can_be_answered_declined_or_ended() -> None:
    for target in ("active", "declined", "ended", "missed"):
        assert can_transition("calling", target)


def test_active_call_can_only_finish() -> None:
    assert can_transition("active", "ended")
    assert can_transition("active", "missed")
    assert not can_transition("active", "declined")
    assert not can_transition("active", "calling")


def test_final_statuses_are_terminal() -> None:
    for current in ("declined", "ended", "missed"):
        with pytest.raises(CallTransitionError) as exc:
            ensure_transition(current, "active")
        assert exc.value.current == current
        assert exc.value.target == "active"


def test_derive_call_state_depends_on_side() -> None:
    assert derive_call_state(None, is_caller=True) == CallState.IDLE
    assert derive_call_state("calling", is_caller=True) == CallState.CALLING
    assert derive_call_state("calling", is_caller=False) == CallState.INCOMING
    assert derive_call_state("active", is_caller=False) == CallState.ACTIVE
    assert derive_call_state("missed", is_caller=True) == CallState.ENDED


def test_build_signal_envelope_defaults_description_type() -> None:
    payload = build_signal_envelope("answer", {"sdp": "v=0"})
    assert payload == {"type": "answer", "sdp": "v=0"}


def test_build_signal_envelope_keeps_extra_fields_after_known_ones() -> None:
    payload = build_signal_envelope(
        "ice-candidate",
        {"trace": "abc", "sdpMid": "0", "candidate": "candidate:1"},
    )
    assert list(payload) == ["candidate", "sdpMid", "trace"]
    assert build_signal_envelope("end-call", None) == {}
