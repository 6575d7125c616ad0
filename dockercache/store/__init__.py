"""Shared store access: the Cache engine and its clock."""

from .cache import EVENTS_CHANNEL, KEY_PREFIX, Cache
from .clock import StoreClock, local_now

__all__ = [
    "Cache",
    "EVENTS_CHANNEL",
    "KEY_PREFIX",
    "StoreClock",
    "local_now",
]
