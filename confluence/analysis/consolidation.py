"""Consolidation zone detection — tight sideways ranges and their bias."""

from confluence.analysis.indicators import safe_atr, std_dev, window_rsi
from confluence.analysis.models import Candle, ConsolidationZone

CONSOLIDATION_WINDOW = 20
MAX_RANGE_ATR = 1.5
MERGE_GAP = 5


def _classify(closes: list[float]) -> tuple[str, str, str]:
    rsi = window_rsi(closes)
    if rsi < 40:
        classification, bias = "ACCUMULATION", "BULLISH"
    elif rsi > 60:
        classification, bias = "DISTRIBUTION", "BEARISH"
    else:
        classification, bias = "PAUSE", "NEUTRAL"
    fakeout = "HIGH" if 45 <= rsi <= 55 else "LOW"
    return classification, bias, fakeout


def _zone(candles: list[Candle], start: int, end: int, last_index: int) -> ConsolidationZone:
    window = candles[start : end + 1]
    top = max(c.high for c in window)
    bottom = min(c.low for c in window)
    closes = [c.close for c in window]
    height = top - bottom
    classification, bias, fakeout = _classify(closes)
    strength = 1 - std_dev(closes) / (height / 2) if height > 0 else 1.0
    return ConsolidationZone(
        top=top,
        bottom=bottom,
        start_index=start,
        end_index=end,
        start_time=window[0].time,
        end_time=window[-1].time,
        classification=classification,
        breakout_bias=bias,
        fakeout_risk=fakeout,
        strength=round(max(0.0, min(1.0, strength)), 2),
        active=end == last_index,
    )


def detect_consolidation(
    candles: list[Candle],
    lookback: int = CONSOLIDATION_WINDOW,
) -> list[ConsolidationZone]:
    """Find consolidation zones using rolling *lookback*-bar windows.

    A window qualifies when its high-low range is below 1.5 × ATR(14) of
    the series and the standard deviation of its closes is below a quarter
    of that range.  Qualifying windows are skipped ahead by half a window;
    windows overlapping or within five bars of each other merge.  The zone
    touching the last candle is marked active.
    """
    atr = safe_atr(candles, 14)
    if len(candles) < lookback or atr <= 0:
        return []

    spans: list[list[int]] = []
    i = 0
    while i + lookback <= len(candles):
        window = candles[i : i + lookback]
        height = max(c.high for c in window) - min(c.low for c in window)
        closes = [c.close for c in window]
        if height < MAX_RANGE_ATR * atr and std_dev(closes) < height / 4:
            end = i + lookback - 1
            if spans and i - spans[-1][1] <= MERGE_GAP:
                spans[-1][1] = max(spans[-1][1], end)
            else:
                spans.append([i, end])
            i += max(1, lookback // 2)
        else:
            i += 1

    last_index = len(candles) - 1
    return [_zone(candles, start, end, last_index) for start, end in spans]
