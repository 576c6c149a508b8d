"""Per-symbol signal cooldowns.

After two consecutive failed predictions for a symbol, signals for it are
suppressed for a fixed window.  The store is the one piece of state that
outlives an analysis run, so access to each symbol's entry is serialised
with its own lock.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger("confluence.cooldown")

CONSECUTIVE_FAILURES = 2


@runtime_checkable
class OutcomeHistory(Protocol):
    """Read access to past prediction outcomes."""

    async def recent_outcomes(self, symbol: str) -> list[str]:
        """Outcomes for *symbol*, newest first (``"HIT"`` or ``"FAIL"``)."""
        ...


@dataclass(frozen=True)
class CooldownEntry:
    expires_at: float  # epoch seconds
    reason: str


class CooldownStore:
    """Symbol → cooldown map with an injectable clock."""

    def __init__(self, hours: float = 4.0, clock: Callable[[], float] = time.time) -> None:
        self._window = hours * 3600
        self._clock = clock
        self._entries: dict[str, CooldownEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = self._locks[symbol] = asyncio.Lock()
        return lock

    async def record_outcomes(self, symbol: str, outcomes: list[str]) -> Optional[CooldownEntry]:
        """Start a cooldown if the newest outcomes are consecutive failures."""
        recent = [o.upper() for o in outcomes[:CONSECUTIVE_FAILURES]]
        if len(recent) < CONSECUTIVE_FAILURES or any(o != "FAIL" for o in recent):
            return None

        async with self._lock(symbol):
            current = self._entries.get(symbol)
            if current is not None and current.expires_at > self._clock():
                return current
            entry = CooldownEntry(
                expires_at=self._clock() + self._window,
                reason=f"{CONSECUTIVE_FAILURES} consecutive failed predictions",
            )
            self._entries[symbol] = entry
        logger.info("Cooldown active for %s for %.1fh", symbol, self._window / 3600)
        return entry

    async def active(self, symbol: str) -> Optional[CooldownEntry]:
        """Current cooldown for *symbol*, or None.  Expired entries are dropped."""
        async with self._lock(symbol):
            entry = self._entries.get(symbol)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[symbol]
                return None
            return entry

    async def refresh(self, symbol: str, history: Optional[OutcomeHistory]) -> Optional[CooldownEntry]:
        """Consult *history* (if any) and return the cooldown in force."""
        if history is not None:
            outcomes = await history.recent_outcomes(symbol)
            await self.record_outcomes(symbol, outcomes)
        return await self.active(symbol)
