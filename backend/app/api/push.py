"""Push notification relay and device registration endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import PushProfileSync, PushSendRequest
from app.services.push import OneSignalClient, PushDeliveryError, get_push_client, send_push_to_user

router = APIRouter(prefix="/push", tags=["push"])

logger = logging.getLogger(__name__)


@router.post("/send")
async def send_push_notification(
    payload: PushSendRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    client: OneSignalClient | None = Depends(get_push_client),
) -> dict[str, Any]:
    """Send a push notification to another user's registered device."""

    if client is None:
        logger.error("Push requested by user %s but OneSignal is not configured", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OneSignal credentials not configured",
        )
    if payload.recipient_user_id is None or not payload.title or not payload.body:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: recipient_user_id, title, body",
        )

    recipient = db.get(User, payload.recipient_user_id)
    if recipient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

    try:
        return await send_push_to_user(client, recipient, payload.title, payload.body, payload.data)
    except PushDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": str(exc), "details": exc.details},
        ) from exc


@router.post("/profile")
async def sync_push_profile(
    payload: PushProfileSync,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    """Store the device's push registration; omitted fields keep their value."""

    if payload.push_enabled is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required field: push_enabled",
        )
    current_user.push_enabled = payload.push_enabled
    if "onesignal_player_id" in payload.model_fields_set:
        current_user.onesignal_player_id = payload.onesignal_player_id
    if "device_platform" in payload.model_fields_set:
        current_user.device_platform = payload.device_platform
    db.add(current_user)
    db.commit()
    return {"success": True}
