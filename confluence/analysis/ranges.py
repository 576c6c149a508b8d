"""Wyckoff range events — climaxes, range formation, springs and upthrusts."""

from typing import Optional

from confluence.analysis.models import Candle, RangeEvent, TradingRange

CLIMAX_LOOKBACK = 20
RANGE_WINDOW = 50
RANGE_MIN_CANDLES = 25
BAND_FRACTION = 0.1
EVENT_WINDOW = 10


def detect_volume_climax(candles: list[Candle], lookback: int = CLIMAX_LOOKBACK) -> list[RangeEvent]:
    """Candles with at least twice the average volume on a wide range.

    A down candle is a SELLING_CLIMAX, anything else a BUYING_CLIMAX.
    Averages cover the *lookback* candles before each bar.
    """
    if len(candles) < lookback + 10:
        return []

    events: list[RangeEvent] = []
    for i in range(lookback, len(candles)):
        prior = candles[i - lookback : i]
        avg_volume = sum(c.volume for c in prior) / lookback
        avg_range = sum(c.range for c in prior) / lookback
        current = candles[i]
        if avg_volume <= 0 or avg_range <= 0:
            continue
        if current.volume >= 2 * avg_volume and current.range >= 1.5 * avg_range:
            events.append(RangeEvent(
                kind="SELLING_CLIMAX" if current.is_bearish else "BUYING_CLIMAX",
                price=current.low if current.is_bearish else current.high,
                index=i,
                time=current.time,
                volume=current.volume,
            ))
    return events


def detect_range_formation(candles: list[Candle]) -> Optional[TradingRange]:
    """Range over the last 50 candles, or None.

    Support and resistance sit 10% inside the window's extremes; a range
    exists when more than 60% of closes fall between them.
    """
    if len(candles) < RANGE_MIN_CANDLES:
        return None

    window = candles[-RANGE_WINDOW:]
    high = max(c.high for c in window)
    low = min(c.low for c in window)
    size = high - low
    if size <= 0:
        return None

    resistance = high - size * BAND_FRACTION
    support = low + size * BAND_FRACTION
    inside = sum(1 for c in window if support <= c.close <= resistance)
    if inside / len(window) <= 0.6:
        return None

    return TradingRange(
        support=support,
        resistance=resistance,
        start_time=window[0].time,
        end_time=window[-1].time,
    )


def _recent_offset(candles: list[Candle]) -> int:
    return max(0, len(candles) - EVENT_WINDOW)


def detect_spring(candles: list[Candle], trading_range: Optional[TradingRange]) -> Optional[RangeEvent]:
    """First wick below support in the last 10 candles that closed back
    inside and was followed by two closes above support."""
    if trading_range is None or len(candles) < 5:
        return None

    offset = _recent_offset(candles)
    support = trading_range.support
    for i in range(offset, len(candles) - 2):
        current = candles[i]
        if current.low < support and current.close > support:
            if all(c.close > support for c in candles[i + 1 : i + 3]):
                return RangeEvent(kind="SPRING", price=current.low, index=i, time=current.time, volume=current.volume)
    return None


def detect_utad(candles: list[Candle], trading_range: Optional[TradingRange]) -> Optional[RangeEvent]:
    """Mirror of :func:`detect_spring` above resistance."""
    if trading_range is None or len(candles) < 5:
        return None

    offset = _recent_offset(candles)
    resistance = trading_range.resistance
    for i in range(offset, len(candles) - 2):
        current = candles[i]
        if current.high > resistance and current.close < resistance:
            if all(c.close < resistance for c in candles[i + 1 : i + 3]):
                return RangeEvent(kind="UTAD", price=current.high, index=i, time=current.time, volume=current.volume)
    return None
