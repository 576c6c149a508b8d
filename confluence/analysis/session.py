"""Trading session and killzone lookup — pure functions over UTC hours."""

from datetime import datetime, timezone
from typing import Optional

# name -> (start hour inclusive, end hour exclusive), UTC
SESSIONS: dict[str, tuple[int, int]] = {
    "ASIAN": (0, 9),
    "LONDON": (8, 16),
    "NEW_YORK": (13, 22),
}

KILLZONES: dict[str, tuple[int, int]] = {
    "LONDON_OPEN": (8, 10),
    "NY_OPEN": (13, 15),
    "LONDON_NY_OVERLAP": (15, 16),
}


def is_in_session(utc_hour: int, session_start: int, session_end: int) -> bool:
    """Return True if *utc_hour* falls in ``[session_start, session_end)``."""
    return session_start <= utc_hour < session_end


def utc_hour(timestamp: int) -> int:
    """Hour of day (UTC) for an epoch timestamp in seconds."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).hour


def active_sessions(timestamp: int) -> list[str]:
    """Names of every session open at *timestamp*."""
    hour = utc_hour(timestamp)
    return [name for name, (start, end) in SESSIONS.items() if is_in_session(hour, start, end)]


def active_killzone(timestamp: int, killzones_active: bool = True) -> Optional[str]:
    """Killzone in force at *timestamp*, or None.

    Instruments whose parameters disable killzones never report one.
    """
    if not killzones_active:
        return None
    hour = utc_hour(timestamp)
    for name, (start, end) in KILLZONES.items():
        if is_in_session(hour, start, end):
            return name
    return None
