"""Regime transition — how likely is the current regime to change soon?"""

from dataclasses import dataclass, field
from typing import Optional

from confluence.analysis.indicators import latest_rsi, safe_atr
from confluence.analysis.models import Bias, Candle, ConsolidationZone, StructureMarker

IMMINENT_PROBABILITY = 75


@dataclass(frozen=True)
class Compression:
    compressed: bool
    level: int  # 0-100, higher is tighter
    squeeze: bool
    range_percent: float


@dataclass(frozen=True)
class FailureStats:
    failed_bos: int
    total_bos: int
    failure_rate: int  # percent
    is_anomalous: bool


@dataclass(frozen=True)
class RangeExhaustion:
    hours_in_range: float
    exhausted: bool


@dataclass(frozen=True)
class Divergence:
    detected: bool
    type: Optional[Bias] = None
    confidence: float = 0.0


@dataclass(frozen=True)
class RegimeTransition:
    probability: float
    current_regime: str
    expected_regime: str
    triggers: list[str] = field(default_factory=list)
    is_imminent: bool = False


def detect_volatility_compression(candles: list[Candle], period: int = 14) -> Compression:
    """Compare the current ATR with the mean ATR of the 20 trailing windows.

    Compressed below a ratio of 0.7.  A squeeze is a 20-bar range under
    1.5% of the mid price.
    """
    if len(candles) < 20:
        return Compression(compressed=False, level=0, squeeze=False, range_percent=0.0)

    history = [
        safe_atr(candles[: len(candles) - i], period)
        for i in range(20)
        if len(candles) - i >= period + 1
    ]
    current = safe_atr(candles, period)
    avg = sum(history) / len(history) if history else 0.0
    ratio = current / avg if avg > 0 else 1.0

    recent = candles[-20:]
    high = max(c.high for c in recent)
    low = min(c.low for c in recent)
    mid = (high + low) / 2
    range_percent = (high - low) / mid * 100 if mid > 0 else 0.0

    return Compression(
        compressed=ratio < 0.7,
        level=round((1 - ratio) * 100),
        squeeze=range_percent < 1.5,
        range_percent=range_percent,
    )


def track_failed_patterns(markers: list[StructureMarker]) -> FailureStats:
    """Failure rate of BOS markers among the last ten markers."""
    if len(markers) < 5:
        return FailureStats(failed_bos=0, total_bos=0, failure_rate=0, is_anomalous=False)

    recent = sorted(markers, key=lambda m: m.index)[-10:]
    breaks = [m for m in recent if m.marker_type == "BOS"]
    failed = sum(1 for m in breaks if m.failed)
    rate = failed / len(breaks) if breaks else 0.0
    return FailureStats(
        failed_bos=failed,
        total_bos=len(breaks),
        failure_rate=round(rate * 100),
        is_anomalous=rate > 0.5,
    )


def _exhaustion_threshold(timeframe: str) -> float:
    tf = timeframe.lower()
    if tf == "1h":
        return 48.0
    if tf == "4h":
        return 72.0
    return 120.0


def calculate_range_exhaustion(
    zones: list[ConsolidationZone],
    current_time: int,
    timeframe: str,
) -> RangeExhaustion:
    """Hours spent in the active (or latest) consolidation zone."""
    if not zones:
        return RangeExhaustion(hours_in_range=0.0, exhausted=False)

    zone = next((z for z in zones if z.active), zones[-1])
    hours = max(0.0, (current_time - zone.start_time) / 3600)
    return RangeExhaustion(hours_in_range=round(hours, 1), exhausted=hours > _exhaustion_threshold(timeframe))


def detect_momentum_divergence(candles: list[Candle]) -> Divergence:
    """Price/RSI divergence over the last 30 candles using 3-bar pivots.

    A higher high while RSI is below 60 is bearish; a lower low while RSI
    is above 40 is bullish.
    """
    if len(candles) < 30:
        return Divergence(detected=False)

    recent = candles[-30:]
    rsi = latest_rsi(recent)

    highs: list[float] = []
    lows: list[float] = []
    for i in range(1, len(recent) - 1):
        if recent[i].high > recent[i - 1].high and recent[i].high > recent[i + 1].high:
            highs.append(recent[i].high)
        if recent[i].low < recent[i - 1].low and recent[i].low < recent[i + 1].low:
            lows.append(recent[i].low)

    if len(highs) >= 2 and highs[-1] > highs[-2] and rsi < 60:
        return Divergence(detected=True, type="BEARISH", confidence=0.75)
    if len(lows) >= 2 and lows[-1] < lows[-2] and rsi > 40:
        return Divergence(detected=True, type="BULLISH", confidence=0.75)
    return Divergence(detected=False)


def calculate_transition_probability(
    candles: list[Candle],
    regime: str,
    markers: list[StructureMarker],
    zones: list[ConsolidationZone],
    timeframe: str,
    current_time: Optional[int] = None,
    divergence: Optional[Divergence] = None,
) -> RegimeTransition:
    """Combine compression, failed breaks, range exhaustion and divergence
    into a 0-100 transition probability and an expected next regime."""
    probability = 0.0
    triggers: list[str] = []
    now = current_time if current_time is not None else (candles[-1].time if candles else 0)

    compression = detect_volatility_compression(candles)
    if compression.compressed:
        probability += min(compression.level * 0.3, 30)
        triggers.append(f"Volatility compression ({compression.level}%)")

    failures = track_failed_patterns(markers)
    if failures.is_anomalous:
        probability += 25
        triggers.append(f"Failed BOS rate ({failures.failure_rate}%)")

    exhaustion = calculate_range_exhaustion(zones, now, timeframe)
    if exhaustion.exhausted:
        probability += 20
        triggers.append(f"Range exhaustion ({exhaustion.hours_in_range}h)")

    div = divergence if divergence is not None else detect_momentum_divergence(candles)
    if div.detected:
        probability += 25
        triggers.append(f"{div.type} divergence")

    probability = min(probability, 100.0)
    expected = regime
    if probability > 60:
        if regime == "RANGING":
            expected = "TRENDING"
        elif regime == "TRENDING":
            expected = "TRANSITIONAL" if div.type == "BEARISH" else "RANGING"
        else:
            expected = "RANGING"

    return RegimeTransition(
        probability=probability,
        current_regime=regime,
        expected_regime=expected,
        triggers=triggers,
        is_imminent=probability > IMMINENT_PROBABILITY,
    )
