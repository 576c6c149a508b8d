"""Enrichment collaborators — correlation, sentiment, on-chain and news.

Every collaborator is optional.  Calls are fanned out concurrently, each
under its own timeout; a failure or timeout in one never affects the
others and is replaced by the neutral signal.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

from confluence.analysis.models import Bias

logger = logging.getLogger("confluence.enrichment")

ENRICHMENT_KINDS = ("correlation", "sentiment", "on_chain", "news")


@dataclass(frozen=True)
class EnrichmentSignal:
    """A small directional opinion from an external service."""

    bias: Bias = "NEUTRAL"
    score: float = 0.0
    confidence: float = 0.0


NEUTRAL_SIGNAL = EnrichmentSignal()


@dataclass(frozen=True)
class Enrichment:
    correlation: EnrichmentSignal = NEUTRAL_SIGNAL
    sentiment: EnrichmentSignal = NEUTRAL_SIGNAL
    on_chain: EnrichmentSignal = NEUTRAL_SIGNAL
    news: EnrichmentSignal = NEUTRAL_SIGNAL


@runtime_checkable
class EnrichmentSource(Protocol):
    """External services consulted for context.  Any may return None."""

    async def correlation(self, symbol: str) -> Optional[EnrichmentSignal]:
        ...

    async def sentiment(self, symbol: str) -> Optional[EnrichmentSignal]:
        ...

    async def on_chain(self, symbol: str) -> Optional[EnrichmentSignal]:
        ...

    async def news(self, symbol: str) -> Optional[EnrichmentSignal]:
        ...


def parse_signal(payload: Optional[dict]) -> EnrichmentSignal:
    """Build a signal from a JSON payload, neutral for anything unusable."""
    if not isinstance(payload, dict):
        return NEUTRAL_SIGNAL
    bias = str(payload.get("bias", "NEUTRAL")).upper()
    if bias not in ("BULLISH", "BEARISH", "NEUTRAL"):
        bias = "NEUTRAL"
    try:
        score = float(payload.get("score", 0.0))
        confidence = float(payload.get("confidence", 0.0))
    except (TypeError, ValueError):
        return NEUTRAL_SIGNAL
    return EnrichmentSignal(bias=bias, score=score, confidence=confidence)


async def _guarded(source: EnrichmentSource, kind: str, symbol: str, timeout: float) -> EnrichmentSignal:
    try:
        result = await asyncio.wait_for(getattr(source, kind)(symbol), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Enrichment %s for %s timed out after %.1fs", kind, symbol, timeout)
        return NEUTRAL_SIGNAL
    except Exception as exc:
        logger.warning("Enrichment %s for %s failed: %s", kind, symbol, exc)
        return NEUTRAL_SIGNAL
    return result if isinstance(result, EnrichmentSignal) else NEUTRAL_SIGNAL


async def gather_enrichment(
    source: Optional[EnrichmentSource],
    symbol: str,
    timeout: float = 2.0,
) -> Enrichment:
    """Query every collaborator concurrently; never raises."""
    if source is None:
        return Enrichment()

    results = await asyncio.gather(
        *(_guarded(source, kind, symbol, timeout) for kind in ENRICHMENT_KINDS)
    )
    return Enrichment(**dict(zip(ENRICHMENT_KINDS, results)))


class HttpEnrichmentService:
    """Enrichment collaborators served by one HTTP endpoint.

    ``GET {base_url}/{kind}/{symbol}`` is expected to return
    ``{"bias": ..., "score": ..., "confidence": ...}``.
    """

    def __init__(self, base_url: str, timeout: float = 2.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _fetch(self, kind: str, symbol: str) -> EnrichmentSignal:
        url = f"{self._base_url}/{kind}/{symbol}"
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(url, timeout=self._timeout)
            resp.raise_for_status()
            return parse_signal(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Enrichment GET %s failed: %s", url, exc)
            return NEUTRAL_SIGNAL

    async def correlation(self, symbol: str) -> Optional[EnrichmentSignal]:
        return await self._fetch("correlation", symbol)

    async def sentiment(self, symbol: str) -> Optional[EnrichmentSignal]:
        return await self._fetch("sentiment", symbol)

    async def on_chain(self, symbol: str) -> Optional[EnrichmentSignal]:
        return await self._fetch("on-chain", symbol)

    async def news(self, symbol: str) -> Optional[EnrichmentSignal]:
        return await self._fetch("news", symbol)
