"""Market structure labelling — HH/HL/LH/LL, BOS and CHOCH. Pure functions.

Labelling walks the swings of each kind in time order.  A break of
structure is confirmed by a candle *close* beyond the most recent pivot;
wick-only crossings never count.  A change of character requires a later
structural point or BOS to violate the opposite-polarity pivot of the last
trend leg and is always reported with HIGH significance.
"""

from dataclasses import dataclass

from confluence.analysis.indicators import percent_change
from confluence.analysis.models import (
    Bias,
    Candle,
    Significance,
    StructureMarker,
    SwingPoint,
)
from confluence.analysis.swings import detect_swing_points, filter_significant_swings

BOS_FAILURE_WINDOW = 5
TREND_VOTE_WINDOW = 10
TREND_VOTE_THRESHOLD = 2.5


@dataclass(frozen=True)
class TrendVote:
    """Result of the weighted structure vote."""

    direction: Bias
    score: float


@dataclass(frozen=True)
class StructureReport:
    """Everything the structure stage derives from one candle buffer."""

    swings: list[SwingPoint]
    markers: list[StructureMarker]  # HH/HL/LH/LL + BOS + CHOCH, sorted by index
    bos: list[StructureMarker]
    choch: list[StructureMarker]
    trend: TrendVote


@dataclass(frozen=True)
class FractalAlignment:
    """Agreement between a lower and a higher timeframe's structure."""

    aligned: bool
    strength: int


def classify_significance(price: float, reference: float) -> Significance:
    """Bucket the percentage displacement between two pivots."""
    move = percent_change(price, reference)
    if move > 0.02:
        return "HIGH"
    if move > 0.01:
        return "MEDIUM"
    return "LOW"


def detect_market_structure(swings: list[SwingPoint]) -> list[StructureMarker]:
    """Label each swing against the previous swing of the same kind.

    A HIGH above the previous HIGH is ``HH``, otherwise ``LH``; a LOW below
    the previous LOW is ``LL``, otherwise ``HL``.  Needs at least four
    swings; returns an empty list otherwise.
    """
    if len(swings) < 4:
        return []

    markers: list[StructureMarker] = []
    last_high = None
    last_low = None

    for swing in sorted(swings, key=lambda s: s.index):
        if swing.kind == "HIGH":
            if last_high is not None:
                higher = swing.price > last_high.price
                markers.append(StructureMarker(
                    marker_type="HH" if higher else "LH",
                    price=swing.price,
                    time=swing.time,
                    index=swing.index,
                    direction="BULLISH" if higher else "BEARISH",
                    significance=classify_significance(swing.price, last_high.price),
                ))
            last_high = swing
        else:
            if last_low is not None:
                lower = swing.price < last_low.price
                markers.append(StructureMarker(
                    marker_type="LL" if lower else "HL",
                    price=swing.price,
                    time=swing.time,
                    index=swing.index,
                    direction="BEARISH" if lower else "BULLISH",
                    significance=classify_significance(swing.price, last_low.price),
                ))
            last_low = swing

    return markers


def _break_failed(candles: list[Candle], break_index: int, price: float, bullish: bool) -> bool:
    window = candles[break_index + 1 : break_index + 1 + BOS_FAILURE_WINDOW]
    if bullish:
        return any(c.close < price for c in window)
    return any(c.close > price for c in window)


def detect_bos(candles: list[Candle], markers: list[StructureMarker]) -> list[StructureMarker]:
    """Detect the latest bullish and bearish breaks of structure.

    Bullish: after the most recent HH/LH, the first candle whose close is
    above that pivot.  Bearish: after the most recent LL/HL, the first
    close below it.  The BOS carries the pivot price and inherits the
    pivot's significance; it is flagged ``failed`` when a close returns
    beyond the pivot within the next few candles.
    """
    if len(candles) < 5 or len(markers) < 2:
        return []

    ordered = sorted(markers, key=lambda m: m.index)
    highs = [m for m in ordered if m.marker_type in ("HH", "LH")]
    lows = [m for m in ordered if m.marker_type in ("LL", "HL")]
    breaks: list[StructureMarker] = []

    if highs:
        pivot = highs[-1]
        for j in range(pivot.index + 1, len(candles)):
            if candles[j].close > pivot.price:
                breaks.append(StructureMarker(
                    marker_type="BOS",
                    price=pivot.price,
                    time=candles[j].time,
                    index=j,
                    direction="BULLISH",
                    significance=pivot.significance,
                    failed=_break_failed(candles, j, pivot.price, bullish=True),
                ))
                break

    if lows:
        pivot = lows[-1]
        for j in range(pivot.index + 1, len(candles)):
            if candles[j].close < pivot.price:
                breaks.append(StructureMarker(
                    marker_type="BOS",
                    price=pivot.price,
                    time=candles[j].time,
                    index=j,
                    direction="BEARISH",
                    significance=pivot.significance,
                    failed=_break_failed(candles, j, pivot.price, bullish=False),
                ))
                break

    return sorted(breaks, key=lambda m: m.index)


def detect_choch(markers: list[StructureMarker]) -> list[StructureMarker]:
    """Detect changes of character from labelled swings plus BOS markers.

    Bullish CHOCH: a later HH above, or bullish BOS at or above, the last
    LH.  Bearish CHOCH: a later LL below, or bearish BOS at or below, the
    last HL.  The CHOCH is placed at the violated pivot's price.
    """
    ordered = sorted(markers, key=lambda m: m.index)
    if len(ordered) < 4:
        return []

    result: list[StructureMarker] = []

    lower_highs = [m for m in ordered if m.marker_type == "LH"]
    if lower_highs:
        pivot = lower_highs[-1]
        for m in ordered:
            if m.index <= pivot.index or m.direction != "BULLISH":
                continue
            if (m.marker_type == "HH" and m.price > pivot.price) or (
                m.marker_type == "BOS" and m.price >= pivot.price
            ):
                result.append(StructureMarker(
                    marker_type="CHOCH",
                    price=pivot.price,
                    time=m.time,
                    index=m.index,
                    direction="BULLISH",
                    significance="HIGH",
                ))
                break

    higher_lows = [m for m in ordered if m.marker_type == "HL"]
    if higher_lows:
        pivot = higher_lows[-1]
        for m in ordered:
            if m.index <= pivot.index or m.direction != "BEARISH":
                continue
            if (m.marker_type == "LL" and m.price < pivot.price) or (
                m.marker_type == "BOS" and m.price <= pivot.price
            ):
                result.append(StructureMarker(
                    marker_type="CHOCH",
                    price=pivot.price,
                    time=m.time,
                    index=m.index,
                    direction="BEARISH",
                    significance="HIGH",
                ))
                break

    return sorted(result, key=lambda m: m.index)


def get_current_trend(markers: list[StructureMarker]) -> TrendVote:
    """Weighted vote over the last ten structure markers.

    Each marker votes +1 (bullish) or -1 (bearish), multiplied by 1.5 for a
    BOS and by 1.2 for HIGH significance.  A net score above 2.5 is
    BULLISH, below -2.5 BEARISH, anything else NEUTRAL.
    """
    recent = sorted(markers, key=lambda m: m.index)[-TREND_VOTE_WINDOW:]
    score = 0.0
    for marker in recent:
        weight = 1.0
        if marker.marker_type == "BOS":
            weight *= 1.5
        if marker.significance == "HIGH":
            weight *= 1.2
        score += weight if marker.direction == "BULLISH" else -weight

    if score > TREND_VOTE_THRESHOLD:
        return TrendVote(direction="BULLISH", score=score)
    if score < -TREND_VOTE_THRESHOLD:
        return TrendVote(direction="BEARISH", score=score)
    return TrendVote(direction="NEUTRAL", score=score)


def check_fractal_alignment(
    ltf_markers: list[StructureMarker],
    htf_markers: list[StructureMarker],
    htf_bias: Bias,
) -> FractalAlignment:
    """Check whether the lower timeframe trades with the higher timeframe.

    Aligned when the HTF has a directional bias and the LTF vote agrees.
    Strength starts at 50 and gains 25 for each timeframe that printed a
    BOS in the bias direction.
    """
    if htf_bias == "NEUTRAL":
        return FractalAlignment(aligned=False, strength=0)
    if get_current_trend(ltf_markers).direction != htf_bias:
        return FractalAlignment(aligned=False, strength=0)

    strength = 50
    if any(m.marker_type == "BOS" and m.direction == htf_bias for m in ltf_markers):
        strength += 25
    if any(m.marker_type == "BOS" and m.direction == htf_bias for m in htf_markers):
        strength += 25
    return FractalAlignment(aligned=True, strength=strength)


def analyze_structure(
    candles: list[Candle],
    lookback: int = 5,
    min_structure_move: float = 0.005,
) -> StructureReport:
    """Run swings → labels → BOS → CHOCH → trend vote on one buffer."""
    swings = filter_significant_swings(
        detect_swing_points(candles, lookback), min_structure_move
    )
    labelled = detect_market_structure(swings)
    bos = detect_bos(candles, labelled)
    choch = detect_choch(labelled + bos)
    markers = sorted(labelled + bos + choch, key=lambda m: m.index)
    return StructureReport(
        swings=swings,
        markers=markers,
        bos=bos,
        choch=choch,
        trend=get_current_trend(markers),
    )
