"""Storage backends for tracking state."""

from __future__ import annotations

import logging

from ..db.supabase import get_supabase_client
from .base import TelegramAccessStore, TrackingStore
from .memory import MemoryTelegramAccessStore, MemoryTrackingStore
from .supabase_store import SupabaseTelegramAccessStore, SupabaseTrackingStore

__all__ = [
    "TrackingStore",
    "TelegramAccessStore",
    "MemoryTrackingStore",
    "MemoryTelegramAccessStore",
    "SupabaseTrackingStore",
    "SupabaseTelegramAccessStore",
    "build_stores",
]


def build_stores() -> tuple[TrackingStore, TelegramAccessStore]:
    """Supabase stores when configured, otherwise in-process stores."""
    client = get_supabase_client()
    if client is None:
        logging.warning("Supabase not configured - tracking state will be kept in memory only")
        return MemoryTrackingStore(), MemoryTelegramAccessStore()
    return SupabaseTrackingStore(client), SupabaseTelegramAccessStore(client)
