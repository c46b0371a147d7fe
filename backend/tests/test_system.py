from __future__ import annotations

from fastapi.testclient import TestClient

from app.config import get_settings
from app.monitoring.metrics import call_transitions_total
from app.monitoring.registry import MetricsRegistry

from helpers import befriend, create_account


def test_health_and_root(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    assert client.get("/api/").json() == {"message": "Welcome to the Kindred API"}


def test_webrtc_config_defaults_to_public_stun(client: TestClient, monkeypatch) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "webrtc_ice_servers", [])
    monkeypatch.setattr(settings, "webrtc_stun_servers", [])
    monkeypatch.setattr(settings, "webrtc_turn_servers", [])

    response = client.get("/api/config/webrtc")

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["call"]["ringTimeoutSeconds"] == settings.call_ring_timeout_seconds
    urls = [url for entry in payload["iceServers"] for url in entry["urls"]]
    assert "stun:stun.l.google.com:19302" in urls


def test_webrtc_config_keeps_turn_credential_out_of_turn_block(
    client: TestClient, monkeypatch
) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "webrtc_turn_servers", ["turn:voice.example:3478"])
    monkeypatch.setattr(settings, "webrtc_turn_username", "voice-user")
    monkeypatch.setattr(settings, "webrtc_turn_credential", "temporary-secret")

    payload = client.get("/api/config/webrtc").json()

    assert payload["turn"] == {"urls": ["turn:voice.example:3478"], "username": "voice-user"}
    assert any(
        entry.get("credential") == "temporary-secret" for entry in payload["iceServers"]
    ), "ICE servers should still receive the TURN credential"

def test_metrics_endpoint_reports_call_transitions(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])
    before = call_transitions_total.value("calling")

    client.post("/api/calls", json={"chat_id": chat_id, "offer": {"sdp": "v=0"}}, headers=alice_headers)

    assert call_transitions_total.value("calling") == before + 1
    body = client.get("/metrics").text
    assert "# TYPE call_transitions_total counter" in body
    assert 'call_transitions_total{status="calling"}' in body
    assert "realtime_active_connections" in body


def test_registry_renders_labelled_samples() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("events_total", "Events seen", label_names=("kind",))
    gauge = registry.gauge("sockets", "Open sockets")

    counter.labels("message").inc()
    counter.labels("message").inc(2)
    gauge.inc()
    gauge.inc()
    gauge.dec()

    assert registry.render().splitlines() == [
        "# HELP events_total Events seen",
        "# TYPE events_total counter",
        'events_total{kind="message"} 3',
        "# HELP sockets Open sockets",
        "# TYPE sockets gauge",
        "sockets 1",
    ]
