"""OneSignal push notification relay."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from app.config import get_settings
from app.database import get_db_session
from app.models import User
from app.monitoring.metrics import push_notifications_total

settings = get_settings()

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """Raised when the push provider rejects a notification or cannot be reached."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


class OneSignalClient:
    """Minimal client for the OneSignal notifications endpoint."""

    def __init__(
        self,
        app_id: str,
        api_key: str,
        *,
        api_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.app_id = app_id
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json",
        }

    async def send_notification(
        self,
        player_ids: list[str],
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Deliver a notification to the given OneSignal players.

        Returns:
            Decoded provider response

        Raises:
            PushDeliveryError: If the provider is unreachable or answers with a non-2xx status
        """
        payload = {
            "app_id": self.app_id,
            "include_player_ids": player_ids,
            "headings": {"en": title},
            "contents": {"en": body},
            "data": dict(data or {}),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, json=payload, headers=self._get_headers())
        except httpx.HTTPError as exc:
            raise PushDeliveryError("Push provider unreachable", str(exc)) from exc

        try:
            result = response.json()
        except ValueError:
            result = response.text
        if not response.is_success:
            raise PushDeliveryError("Failed to send push notification", result)
        return result


def get_push_client() -> OneSignalClient | None:
    """Return a client when OneSignal credentials are configured."""

    if not settings.push_configured:
        return None
    return OneSignalClient(
        settings.onesignal_app_id or "",
        settings.onesignal_rest_api_key or "",
        api_url=settings.onesignal_api_url,
        timeout=settings.onesignal_timeout_seconds,
    )


async def send_push_to_user(
    client: OneSignalClient,
    recipient: User,
    title: str,
    body: str,
    data: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Send a push notification to a user's registered device.

    Recipients without a player id or with push disabled are reported rather
    than treated as errors. Provider failures propagate as ``PushDeliveryError``.
    """

    if not recipient.onesignal_player_id:
        push_notifications_total.labels("no_player_id").inc()
        logger.info("User %s has no push player id registered", recipient.id)
        return {"success": False, "reason": "no_player_id"}
    if not recipient.push_enabled:
        push_notifications_total.labels("push_disabled").inc()
        logger.info("User %s has push notifications disabled", recipient.id)
        return {"success": False, "reason": "push_disabled"}

    try:
        result = await client.send_notification(
            [recipient.onesignal_player_id], title, body, data
        )
    except PushDeliveryError as exc:
        push_notifications_total.labels("failed").inc()
        logger.error("Push delivery to user %s failed: %s", recipient.id, exc.details)
        raise
    push_notifications_total.labels("sent").inc()
    return {"success": True, "result": result}


async def deliver_message_push(
    recipient_id: int, title: str, body: str, data: Mapping[str, Any]
) -> None:
    """Best-effort push for a new chat message; failures are only logged."""

    if not settings.push_notifications_enabled:
        return
    client = get_push_client()
    if client is None:
        return
    with get_db_session() as db:
        recipient = db.get(User, recipient_id)
        if recipient is None:
            return
        try:
            await send_push_to_user(client, recipient, title, body, data)
        except PushDeliveryError:
            return
