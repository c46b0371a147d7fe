from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable, List

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_STUN_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)


class IceServer(BaseModel):
    """Representation of a WebRTC ICE server configuration."""

    urls: list[str] = Field(default_factory=list, description="ICE server URLs")
    username: str | None = Field(default=None, description="Optional TURN username")
    credential: str | None = Field(default=None, description="Optional TURN credential")

    @field_validator("urls", mode="before")
    @classmethod
    def ensure_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set)):
            return [str(item) for item in value]
        return [] if value in (None, Ellipsis) else [str(value)]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Kindred API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1:5173",
        ],
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_url: str = Field(
        default="sqlite+pysqlite:///./kindred.db",
        description="SQLAlchemy database URL",
    )
    database_auto_create: bool = Field(
        default=False,
        description="Create missing tables on startup instead of relying on migrations.",
    )

    jwt_secret_key: str = Field(default="changeme")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)
    refresh_token_expire_minutes: int = Field(default=60 * 24)
    refresh_token_remember_me_expire_minutes: int = Field(default=60 * 24 * 30)
    remember_me_enabled: bool = Field(default=True)
    refresh_token_cookie_name: str = Field(default="kindred_refresh")
    refresh_token_cookie_secure: bool = Field(default=False)
    refresh_token_cookie_samesite: str = Field(default="lax")
    refresh_token_cookie_path: str = Field(default="/api/auth")
    refresh_token_cookie_domain: str | None = Field(default=None)
    auth_cache_url: str | None = Field(
        default=None,
        description="Redis URL used to store refresh tokens. Falls back to memory when unset.",
    )

    chat_history_default_limit: int = Field(default=50)
    chat_history_max_limit: int = Field(default=200)
    chat_message_max_length: int = Field(default=4000)
    user_search_limit: int = Field(default=20)

    typing_ttl_seconds: float = Field(
        default=3.0,
        description="Seconds after which a typing indicator expires without a refresh.",
    )
    presence_heartbeat_interval_seconds: int = Field(
        default=60,
        description="Interval at which clients are expected to send presence heartbeats.",
    )
    presence_stale_factor: float = Field(
        default=2.0,
        description="Heartbeat intervals after which an online flag is considered stale.",
    )
    call_ring_timeout_seconds: int = Field(
        default=30,
        description="Seconds an unanswered call rings before it is marked as missed.",
    )
    story_lifetime_hours: int = Field(default=24)

    websocket_keepalive_timeout_seconds: float = Field(default=30)
    websocket_keepalive_ping_interval_seconds: float = Field(default=25)

    media_root: Path = Field(default=Path("uploads"))
    media_base_url: str = Field(default="/api/media")
    avatar_base_url: str = Field(
        default="/api/profile/avatar",
        description="Base URL for serving user avatars",
    )
    max_upload_size: int = Field(
        default=10 * 1024 * 1024, description="Maximum upload size in bytes"
    )

    push_notifications_enabled: bool = Field(
        default=True,
        description="Send push notifications to recipients of new messages.",
    )
    onesignal_app_id: str | None = Field(default=None)
    onesignal_rest_api_key: str | None = Field(default=None)
    onesignal_api_url: str = Field(default="https://onesignal.com/api/v1/notifications")
    onesignal_timeout_seconds: float = Field(default=10.0)

    webrtc_ice_servers: list[IceServer] = Field(
        default_factory=list,
        description="List of ICE (STUN/TURN) servers available to WebRTC peers.",
    )
    webrtc_stun_servers: list[str] = Field(
        default_factory=list,
        description="Additional STUN endpoints exposed to clients.",
    )
    webrtc_turn_servers: list[str] = Field(
        default_factory=list,
        description="TURN endpoints exposed to clients.",
    )
    webrtc_turn_username: str | None = Field(default=None)
    webrtc_turn_credential: str | None = Field(default=None)

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def push_configured(self) -> bool:
        return bool(self.onesignal_app_id and self.onesignal_rest_api_key)

    @property
    def presence_stale_after_seconds(self) -> float:
        return self.presence_heartbeat_interval_seconds * self.presence_stale_factor

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        return Path(value).resolve()

    @field_validator(
        "webrtc_ice_servers",
        "webrtc_stun_servers",
        "webrtc_turn_servers",
        mode="before",
    )
    @classmethod
    def parse_iterable_field(cls, value: Any) -> list[Any] | Any:
        if value in (None, "", Ellipsis):
            return []
        if isinstance(value, str):
            import json

            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return [item.strip() for item in value.split(",") if item.strip()]
            if isinstance(parsed, (list, tuple, set)):
                return list(parsed)
            return [str(value)]
        if isinstance(value, (list, tuple, set)):
            return list(value)
        return [value]

    def _aggregate_ice_servers(self) -> list[IceServer]:
        def coerce_server(entry: Any) -> IceServer | None:
            if isinstance(entry, IceServer):
                return entry
            if isinstance(entry, dict):
                return IceServer.model_validate(entry)
            if isinstance(entry, str):
                return IceServer(urls=[entry])
            if isinstance(entry, Iterable):
                return IceServer(urls=[str(item) for item in entry])
            return None

        servers = [
            server
            for server in (coerce_server(item) for item in self.webrtc_ice_servers)
            if server is not None
        ]

        if self.webrtc_stun_servers:
            servers.append(IceServer(urls=[str(url) for url in self.webrtc_stun_servers]))

        if self.webrtc_turn_servers:
            servers.append(
                IceServer(
                    urls=[str(url) for url in self.webrtc_turn_servers],
                    username=self.webrtc_turn_username,
                    credential=self.webrtc_turn_credential,
                )
            )

        if not servers:
            servers = [IceServer(urls=[url]) for url in DEFAULT_STUN_SERVERS]

        return servers

    @property
    def webrtc_ice_servers_payload(self) -> list[dict[str, Any]]:
        return [
            server.model_dump(mode="json", exclude_none=True)
            for server in self._aggregate_ice_servers()
        ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
