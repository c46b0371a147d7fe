"""Core utilities for the Kindred backend."""

from .storage import build_media_url, resolve_path, store_media, store_user_avatar

__all__ = ["store_media", "store_user_avatar", "resolve_path", "build_media_url"]
