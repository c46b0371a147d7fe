"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/webrtc")
def read_webrtc_config() -> dict[str, object]:
    """Expose WebRTC ICE configuration and call timing."""

    settings = get_settings()
    return {
        "iceServers": settings.webrtc_ice_servers_payload,
        "stun": [str(url) for url in settings.webrtc_stun_servers],
        "turn": {
            "urls": [str(url) for url in settings.webrtc_turn_servers],
            "username": settings.webrtc_turn_username,
        },
        "call": {
            "ringTimeoutSeconds": settings.call_ring_timeout_seconds,
        },
        "presence": {
            "heartbeatIntervalSeconds": settings.presence_heartbeat_interval_seconds,
        },
        "typing": {
            "ttlSeconds": settings.typing_ttl_seconds,
        },
    }
