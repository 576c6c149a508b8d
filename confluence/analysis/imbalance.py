"""Fair value gap detection with 50% midpoint mitigation."""

from typing import Optional

from confluence.analysis.indicators import calculate_range_atr
from confluence.analysis.models import Bias, Candle, Imbalance

FVG_WINDOW = 100


def _quality(middle: Candle, gap: float, bullish: bool, atr: float) -> float:
    body_ratio = abs(middle.close - middle.open) / middle.range if middle.range > 0 else 0.0
    aligned = middle.is_bullish if bullish else middle.is_bearish
    size = min(gap / atr, 1.0) if atr > 0 else 0.0
    return round(body_ratio * 0.3 + (0.4 if aligned else 0.1) + size * 0.3, 2)


def _mitigation_index(candles: list[Candle], start: int, midpoint: float, bullish: bool) -> Optional[int]:
    for j in range(start, len(candles)):
        if bullish and candles[j].low <= midpoint:
            return j
        if not bullish and candles[j].high >= midpoint:
            return j
    return None


def detect_imbalances(candles: list[Candle], lookback: int = FVG_WINDOW) -> list[Imbalance]:
    """Find three-candle fair value gaps over the last *lookback* candles.

    Bullish when the third candle's low is above the first candle's high
    (the gap spans ``[c1.high, c3.low]``); bearish is symmetric.  Scanning
    forward from the candle after the pattern, a gap is mitigated the first
    time price trades to its midpoint.  Mitigated gaps are returned with
    the flag set so callers can tell them apart.
    """
    if len(candles) < 3:
        return []

    atr = calculate_range_atr(candles, 14)
    start = max(0, len(candles) - lookback)
    gaps: list[Imbalance] = []

    for i in range(start, len(candles) - 2):
        c1, c2, c3 = candles[i], candles[i + 1], candles[i + 2]
        if c3.low > c1.high:
            top, bottom, bullish = c3.low, c1.high, True
        elif c3.high < c1.low:
            top, bottom, bullish = c1.low, c3.high, False
        else:
            continue

        midpoint = (top + bottom) / 2
        mitigated_at = _mitigation_index(candles, i + 3, midpoint, bullish)
        gaps.append(Imbalance(
            top=top,
            bottom=bottom,
            type="BULLISH" if bullish else "BEARISH",
            index=i + 1,
            time=c2.time,
            mitigated=mitigated_at is not None,
            mitigated_index=mitigated_at,
            quality=_quality(c2, top - bottom, bullish, atr),
        ))

    return gaps


def get_most_relevant_fvg(
    imbalances: list[Imbalance],
    price: float,
    direction: Bias = "NEUTRAL",
) -> Optional[Imbalance]:
    """Nearest unmitigated gap to *price*, optionally of one *direction*."""
    candidates = [
        g for g in imbalances
        if not g.mitigated and (direction == "NEUTRAL" or g.type == direction)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda g: abs(g.midpoint - price))
