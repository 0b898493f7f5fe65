"""Route group exports."""

from . import geofences, gps, health, telegram, telegram_access, tracking, trucks

__all__ = ["geofences", "gps", "health", "telegram", "telegram_access", "tracking", "trucks"]
