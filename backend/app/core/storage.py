"""Utilities for storing uploaded media on the local filesystem."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Iterable
from uuid import uuid4

from fastapi import HTTPException, UploadFile, status

from app.config import get_settings

settings = get_settings()

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB

IMAGE_TYPES: Final[tuple[str, ...]] = ("image/",)
AUDIO_TYPES: Final[tuple[str, ...]] = ("audio/", "video/webm")
VIDEO_TYPES: Final[tuple[str, ...]] = ("video/",)


@dataclass(slots=True)
class StoredFile:
    """Represents a file persisted by the storage backend."""

    file_name: str
    content_type: str | None
    file_size: int
    absolute_path: Path
    relative_path: str


def _media_root() -> Path:
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return root


def _ensure_content_type(upload: UploadFile, allowed_prefixes: Iterable[str] | None, label: str) -> None:
    if allowed_prefixes is None:
        return
    content_type = upload.content_type or ""
    if not any(content_type.startswith(prefix) for prefix in allowed_prefixes):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported {label} type",
        )


async def _write_upload(upload: UploadFile, absolute_path: Path, label: str) -> int:
    total_size = 0
    try:
        with absolute_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > settings.max_upload_size:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"{label.capitalize()} exceeds allowed size",
                    )
                buffer.write(chunk)
    except HTTPException:
        if absolute_path.exists():
            absolute_path.unlink()
        raise
    finally:
        await upload.close()
    return total_size


async def store_media(
    bucket: str,
    owner_id: int,
    upload: UploadFile,
    *,
    allowed_prefixes: Iterable[str] | None = None,
    label: str = "file",
) -> StoredFile:
    """Persist an upload under ``<bucket>/user_<owner_id>/`` with a random name."""

    _ensure_content_type(upload, allowed_prefixes, label)

    target_dir = _media_root() / bucket / f"user_{owner_id}"
    target_dir.mkdir(parents=True, exist_ok=True)

    original_name = upload.filename or "upload.bin"
    extension = Path(original_name).suffix
    absolute_path = target_dir / f"{uuid4().hex}{extension}"
    total_size = await _write_upload(upload, absolute_path, label)

    return StoredFile(
        file_name=original_name,
        content_type=upload.content_type,
        file_size=total_size,
        absolute_path=absolute_path,
        relative_path=Path(os.path.relpath(absolute_path, _media_root())).as_posix(),
    )


async def store_user_avatar(user_id: int, upload: UploadFile) -> StoredFile:
    """Persist a user avatar image, replacing any previous upload."""

    _ensure_content_type(upload, IMAGE_TYPES, "avatar")

    target_dir = _media_root() / "avatars" / f"user_{user_id}"
    target_dir.mkdir(parents=True, exist_ok=True)

    for existing in target_dir.iterdir():
        if existing.is_file():
            try:
                existing.unlink()
            except OSError:
                continue

    original_name = upload.filename or "avatar.png"
    extension = Path(original_name).suffix or ".png"
    absolute_path = target_dir / f"avatar{extension}"
    total_size = await _write_upload(upload, absolute_path, "avatar")

    return StoredFile(
        file_name=original_name,
        content_type=upload.content_type,
        file_size=total_size,
        absolute_path=absolute_path,
        relative_path=Path(os.path.relpath(absolute_path, _media_root())).as_posix(),
    )


def delete_stored(relative_path: str | None) -> None:
    """Remove a stored file, ignoring files that are already gone."""

    if not relative_path:
        return
    candidate = (_media_root() / relative_path).resolve()
    if not candidate.is_relative_to(_media_root().resolve()):
        return
    try:
        candidate.unlink(missing_ok=True)
    except OSError:
        return


def resolve_path(relative_path: str) -> Path:
    """Return an absolute path for a stored file relative path."""

    root = _media_root().resolve()
    candidate = (root / relative_path).resolve()
    if not candidate.is_relative_to(root):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path")
    if not candidate.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return candidate


def build_media_url(relative_path: str) -> str:
    """Construct the public URL under which a stored file is served."""

    base = settings.media_base_url.rstrip("/")
    return f"{base}/{relative_path}"
