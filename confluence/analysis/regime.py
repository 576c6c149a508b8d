"""Regime classifier — trend state, volatility, market cycle and cycle shifts.

All slopes are normalised by the mean price of the regression window so a
single set of thresholds works for a 1.10 currency pair and a 60 000
crypto pair alike.
"""

from dataclasses import dataclass
from typing import Literal

from confluence.analysis.indicators import (
    calculate_range_atr,
    latest_rsi,
    linear_regression,
)
from confluence.analysis.models import Bias, Candle, StructureMarker

MIN_REGIME_CANDLES = 50
REGRESSION_WINDOW = 50
IMPULSIVE_SLOPE = 0.0015
CORRECTIVE_SLOPE = 0.0005
MARKER_AGREEMENT = 6
CYCLE_HORIZONS = (20, 50, 100)
CYCLE_SLOPE = 0.001
SHIFT_HISTORY = 5

RegimeName = Literal["TRENDING", "RANGING", "TRANSITIONAL", "UNKNOWN"]
CycleName = Literal["BULL", "BEAR", "SIDEWAYS"]


@dataclass(frozen=True)
class TrendState:
    direction: Bias
    strength: float  # 0-1, the regression R²
    slope: float  # normalised per-bar slope
    r_squared: float
    state: Literal["impulsive", "corrective", "ranging"]


@dataclass(frozen=True)
class Volatility:
    level: Literal["LOW", "MODERATE", "HIGH"]
    percent: float  # range ATR as a percentage of the average price
    atr: float


@dataclass(frozen=True)
class CycleReading:
    cycle: CycleName
    strength: float  # 0-100


@dataclass(frozen=True)
class RegimeShift:
    shifted: bool
    previous: CycleName
    current: CycleName
    confidence: float  # matches / 3


@dataclass(frozen=True)
class MarketRegime:
    """Full regime reading for one candle buffer."""

    regime: RegimeName
    phase: str
    confidence: float
    trend: TrendState
    volatility: Volatility
    condition: Literal["clean", "choppy", "news_driven", "low_liquidity"]
    cycle: CycleReading
    shift: RegimeShift


NEUTRAL_TREND = TrendState(direction="NEUTRAL", strength=0.0, slope=0.0, r_squared=0.0, state="ranging")
NEUTRAL_CYCLE = CycleReading(cycle="SIDEWAYS", strength=0.0)
NO_SHIFT = RegimeShift(shifted=False, previous="SIDEWAYS", current="SIDEWAYS", confidence=0.0)


def _unknown_regime() -> MarketRegime:
    return MarketRegime(
        regime="UNKNOWN",
        phase="unknown",
        confidence=0.0,
        trend=NEUTRAL_TREND,
        volatility=Volatility(level="MODERATE", percent=0.0, atr=0.0),
        condition="clean",
        cycle=NEUTRAL_CYCLE,
        shift=NO_SHIFT,
    )


def _marker_agreement(markers: list[StructureMarker], direction: Bias) -> int:
    recent = sorted(markers, key=lambda m: m.index)[-10:]
    return sum(1 for m in recent if m.direction == direction)


def measure_volatility(candles: list[Candle], period: int = 14) -> Volatility:
    """Bucket the range ATR relative to the average price.

    Below 0.5% is LOW, above 1.2% is HIGH.  Short or zero-priced input
    reads as MODERATE with zero percent.
    """
    atr = calculate_range_atr(candles, period)
    window = candles[-REGRESSION_WINDOW:]
    avg_price = sum(c.close for c in window) / len(window) if window else 0.0
    if avg_price <= 0:
        return Volatility(level="MODERATE", percent=0.0, atr=atr)
    percent = atr / avg_price * 100
    if percent < 0.5:
        level = "LOW"
    elif percent > 1.2:
        level = "HIGH"
    else:
        level = "MODERATE"
    return Volatility(level=level, percent=percent, atr=atr)


def _condition(candles: list[Candle], r_squared: float) -> str:
    short_atr = calculate_range_atr(candles, 14)
    long_atr = calculate_range_atr(candles, REGRESSION_WINDOW)
    ratio = short_atr / long_atr if long_atr > 0 else 1.0
    if ratio > 1.5:
        return "news_driven"
    if ratio < 0.4:
        return "low_liquidity"
    if r_squared < 0.3:
        return "choppy"
    return "clean"


def classify_cycle(candles: list[Candle], markers: list[StructureMarker]) -> CycleReading:
    """Multi-horizon BULL / BEAR / SIDEWAYS classification with 0-100 strength.

    The 50-bar regression decides: BULL needs a normalised slope above
    0.001, R² above 0.5 and bullish structure outnumbering bearish, with
    neither the 20- nor the 100-bar slope pointing the other way.  BEAR is
    symmetric.
    """
    if len(candles) < CYCLE_HORIZONS[0]:
        return NEUTRAL_CYCLE

    closes = [c.close for c in candles]
    short, medium, long_ = (linear_regression(closes[-h:]) for h in CYCLE_HORIZONS)
    slope = medium.normalized_slope
    r2 = medium.r_squared

    bullish = sum(1 for m in markers if m.direction == "BULLISH")
    bearish = sum(1 for m in markers if m.direction == "BEARISH")

    def directional_strength(count: int) -> float:
        score = (
            min(abs(slope) / 0.003 * 40, 40)
            + r2 * 30
            + min(count / 7 * 30, 30)
        )
        return round(max(0.0, min(100.0, score)), 1)

    if (
        slope > CYCLE_SLOPE and r2 > 0.5 and bullish > bearish
        and short.slope >= 0 and long_.slope >= 0
    ):
        return CycleReading(cycle="BULL", strength=directional_strength(bullish))
    if (
        slope < -CYCLE_SLOPE and r2 > 0.5 and bearish > bullish
        and short.slope <= 0 and long_.slope <= 0
    ):
        return CycleReading(cycle="BEAR", strength=directional_strength(bearish))

    window = candles[-CYCLE_HORIZONS[1]:]
    low = min(c.low for c in window)
    high = max(c.high for c in window)
    range_pct = (high - low) / low * 100 if low > 0 else 0.0
    strength = (max(0.0, 100 - range_pct * 10) + (1 - r2) * 50) / 2
    return CycleReading(cycle="SIDEWAYS", strength=round(strength, 1))


def detect_regime_shift(candles: list[Candle], markers: list[StructureMarker]) -> RegimeShift:
    """Compare the current cycle with readings at the four previous bars.

    Readings are taken at trailing offsets of the same buffer.  A shift is
    flagged when the current cycle differs from the oldest reading and at
    least two of the latest three readings agree with it.
    """
    if len(candles) - (SHIFT_HISTORY - 1) < CYCLE_HORIZONS[0]:
        return NO_SHIFT

    readings: list[str] = []
    for offset in range(SHIFT_HISTORY - 1, -1, -1):
        end = len(candles) - offset
        visible = [m for m in markers if m.index < end]
        readings.append(classify_cycle(candles[:end], visible).cycle)

    current = readings[-1]
    previous = readings[0]
    matches = sum(1 for r in readings[-3:] if r == current)
    shifted = current != previous and matches >= 2
    return RegimeShift(
        shifted=shifted,
        previous=previous,
        current=current,
        confidence=round(matches / 3, 2) if shifted else 0.0,
    )


def detect_market_regime(candles: list[Candle], markers: list[StructureMarker]) -> MarketRegime:
    """Classify the regime of *candles* given their structure *markers*.

    Fewer than 50 candles yield an UNKNOWN regime with neutral parts.
    """
    if len(candles) < MIN_REGIME_CANDLES:
        return _unknown_regime()

    reg = linear_regression([c.close for c in candles[-REGRESSION_WINDOW:]])
    slope = reg.normalized_slope
    r2 = reg.r_squared

    if abs(slope) > CORRECTIVE_SLOPE:
        direction: Bias = "BULLISH" if slope > 0 else "BEARISH"
    else:
        direction = "NEUTRAL"

    if (
        abs(slope) > IMPULSIVE_SLOPE
        and _marker_agreement(markers, direction) >= MARKER_AGREEMENT
    ):
        regime: RegimeName = "TRENDING"
        state = "impulsive"
        has_bos = any(m.marker_type == "BOS" and not m.failed for m in markers)
        phase = "expansion" if has_bos else "trending"
        confidence = 0.85
    elif abs(slope) > CORRECTIVE_SLOPE:
        regime = "TRANSITIONAL"
        state = "corrective"
        phase = "retracement"
        confidence = 0.65
    else:
        regime = "RANGING"
        state = "ranging"
        rsi = latest_rsi(candles)
        if rsi < 40:
            phase = "accumulation"
        elif rsi > 60:
            phase = "distribution"
        else:
            phase = "consolidation"
        confidence = 0.75

    return MarketRegime(
        regime=regime,
        phase=phase,
        confidence=confidence,
        trend=TrendState(
            direction=direction,
            strength=min(r2, 1.0),
            slope=slope,
            r_squared=r2,
            state=state,
        ),
        volatility=measure_volatility(candles),
        condition=_condition(candles, r2),
        cycle=classify_cycle(candles, markers),
        shift=detect_regime_shift(candles, markers),
    )
