"""Application service helpers."""

from .events import event_hub
from .cache import get_cache
from .calls import call_timeouts
from .push import get_push_client

__all__ = [
    "event_hub",
    "get_cache",
    "call_timeouts",
    "get_push_client",
]
