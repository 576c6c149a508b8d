"""Market data collaborator — async HTTP client for candle history and
order-book snapshots.

Transient failures are retried with exponential backoff; once retries are
exhausted (or on any other HTTP failure) the caller gets an empty result,
never an exception.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from confluence.analysis.models import Candle

logger = logging.getLogger("confluence.market_data")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


@dataclass(frozen=True)
class OrderBook:
    bids: list[tuple[float, float]] = field(default_factory=list)  # (price, size), best first
    asks: list[tuple[float, float]] = field(default_factory=list)


def parse_candle(raw: dict) -> Candle:
    return Candle(
        time=int(raw["time"]),
        open=float(raw["open"]),
        high=float(raw["high"]),
        low=float(raw["low"]),
        close=float(raw["close"]),
        volume=float(raw.get("volume", 0.0)),
    )


class MarketDataClient:
    """Async client for a market data service.

    ``GET {base_url}/candles/{symbol}?timeframe=..&limit=..`` returns
    ``{"candles": [{"time", "open", "high", "low", "close", "volume"}, ...]}``
    and ``GET {base_url}/orderbook/{symbol}?depth=..`` returns
    ``{"bids": [[price, size], ...], "asks": [[price, size], ...]}``.
    """

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Accept": "application/json"}

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        timeout=self._timeout,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "%s %s returned %d, retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "%s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Candle data ──────────────────────────────────────────────────────

    async def fetch_history(self, symbol: str, timeframe: str, limit: int = 500) -> list[Candle]:
        """Fetch up to *limit* candles, oldest first.  Empty on failure."""
        url = f"{self._base_url}/candles/{symbol}"
        params = {"timeframe": timeframe, "limit": limit}
        try:
            resp = await self._request_with_retry("get", url, params=params)
            candles = [parse_candle(c) for c in resp.json().get("candles", [])]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Candle history for %s %s unavailable: %s", symbol, timeframe, exc)
            return []

        candles.sort(key=lambda c: c.time)
        logger.debug("Fetched %d %s candles for %s", len(candles), timeframe, symbol)
        return candles

    # ── Order book ───────────────────────────────────────────────────────

    async def fetch_order_book(self, symbol: str, depth: int = 20) -> OrderBook:
        """Fetch an order-book snapshot.  Empty book on failure."""
        url = f"{self._base_url}/orderbook/{symbol}"
        try:
            resp = await self._request_with_retry("get", url, params={"depth": depth})
            data = resp.json()
            bids = [(float(p), float(s)) for p, s in data.get("bids", [])[:depth]]
            asks = [(float(p), float(s)) for p, s in data.get("asks", [])[:depth]]
        except (httpx.HTTPError, TypeError, ValueError) as exc:
            logger.warning("Order book for %s unavailable: %s", symbol, exc)
            return OrderBook()
        return OrderBook(bids=bids, asks=asks)
