"""Swing point extraction — fractal pivot highs and lows. Pure functions."""

from typing import Optional

from confluence.analysis.indicators import percent_change
from confluence.analysis.models import Candle, SwingPoint


def _is_swing_high(candles: list[Candle], i: int, window: int) -> bool:
    high = candles[i].high
    for j in range(1, window + 1):
        if candles[i - j].high >= high or candles[i + j].high >= high:
            return False
    return True


def _is_swing_low(candles: list[Candle], i: int, window: int) -> bool:
    low = candles[i].low
    for j in range(1, window + 1):
        if candles[i - j].low <= low or candles[i + j].low <= low:
            return False
    return True


def detect_swing_points(candles: list[Candle], lookback: int = 5) -> list[SwingPoint]:
    """Identify fractal swing highs and lows.

    A swing high is a candle whose high is strictly higher than the highs
    of the *lookback* candles on each side (a tie disqualifies it); swing
    lows are symmetric.  Returns all swings sorted by index, or an empty
    list when fewer than ``2 * lookback + 1`` candles are given.
    """
    if lookback < 1 or len(candles) < 2 * lookback + 1:
        return []

    points: list[SwingPoint] = []
    for i in range(lookback, len(candles) - lookback):
        candle = candles[i]
        if _is_swing_high(candles, i, lookback):
            points.append(SwingPoint(index=i, time=candle.time, price=candle.high, kind="HIGH"))
        if _is_swing_low(candles, i, lookback):
            points.append(SwingPoint(index=i, time=candle.time, price=candle.low, kind="LOW"))
    return points


def filter_significant_swings(
    points: list[SwingPoint],
    threshold: float = 0.005,
) -> list[SwingPoint]:
    """Merge consecutive same-kind swings that moved less than *threshold*.

    Each swing is compared with the previously kept swing of the same kind.
    When the fractional move between them is below *threshold* the two are
    merged and the more extreme price survives (the higher high or the
    lower low).  Output stays sorted by index.
    """
    kept: list[Optional[SwingPoint]] = []
    last_pos: dict[str, int] = {}

    for point in sorted(points, key=lambda p: p.index):
        pos = last_pos.get(point.kind)
        previous = kept[pos] if pos is not None else None
        if previous is not None and percent_change(point.price, previous.price) < threshold:
            more_extreme = (
                point.price > previous.price if point.kind == "HIGH"
                else point.price < previous.price
            )
            if more_extreme:
                kept[pos] = None
                kept.append(point)
                last_pos[point.kind] = len(kept) - 1
            continue
        kept.append(point)
        last_pos[point.kind] = len(kept) - 1

    return [p for p in kept if p is not None]
