"""Serving of uploaded chat, post and story media."""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from app.core.storage import resolve_path

router = APIRouter(prefix="/media", tags=["media"])


@router.get("/{relative_path:path}")
async def fetch_media(relative_path: str) -> FileResponse:
    return FileResponse(resolve_path(relative_path))
