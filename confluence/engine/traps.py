"""Trap zones — places where a continuation pattern failed and trapped traders."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from confluence.analysis.models import Candle, Imbalance, StructureMarker

TrapType = Literal["BULL_TRAP", "BEAR_TRAP"]


@dataclass(frozen=True)
class TrapPattern:
    kind: Literal["FAILED_FVG", "FAILED_BREAKOUT", "FAKE_TREND_CONTINUATION"]
    location: float
    implication: TrapType
    confidence: float
    time: int
    reason: str


@dataclass(frozen=True)
class TrapSummary:
    count: int = 0
    bull_traps: int = 0
    bear_traps: int = 0
    warning: Optional[str] = None
    most_recent: Optional[TrapPattern] = None
    patterns: list[TrapPattern] = field(default_factory=list)


def detect_failed_fvg(candles: list[Candle], imbalances: list[Imbalance]) -> list[TrapPattern]:
    """Gaps whose midpoint was touched and then rejected by three closes."""
    recent = candles[-50:]
    traps: list[TrapPattern] = []
    for gap in imbalances:
        mid = gap.midpoint
        touches = [i for i, c in enumerate(recent) if c.low <= mid <= c.high]
        if not touches:
            continue
        last = touches[-1]
        if last >= len(recent) - 3:
            continue
        touch = recent[last]
        after = recent[last + 1 : last + 4]
        if gap.type == "BULLISH":
            rejected = all(c.close < touch.close for c in after)
        else:
            rejected = all(c.close > touch.close for c in after)
        if rejected:
            traps.append(TrapPattern(
                kind="FAILED_FVG",
                location=mid,
                implication="BULL_TRAP" if gap.type == "BULLISH" else "BEAR_TRAP",
                confidence=0.70,
                time=touch.time,
                reason=f"{gap.type} gap rejected instead of filled",
            ))
    return traps


def detect_failed_breakouts(markers: list[StructureMarker]) -> list[TrapPattern]:
    """BOS markers among the last 20 that were immediately reclaimed."""
    recent = sorted(markers, key=lambda m: m.index)[-20:]
    return [
        TrapPattern(
            kind="FAILED_BREAKOUT",
            location=m.price,
            implication="BULL_TRAP" if m.direction == "BULLISH" else "BEAR_TRAP",
            confidence=0.75,
            time=m.time,
            reason=f"BOS at {m.price:.5f} failed with an immediate reversal",
        )
        for m in recent
        if m.marker_type == "BOS" and m.failed
    ]


def detect_fake_trend_continuation(candles: list[Candle]) -> list[TrapPattern]:
    """New 10-bar extremes inside the last 30 bars that did not hold.

    A higher high is fake when none of the next five highs comes within
    0.2% of it and at least three of those candles close below its low;
    lower lows are symmetric.
    """
    if len(candles) < 30:
        return []

    recent = candles[-30:]
    traps: list[TrapPattern] = []
    for i in range(10, len(recent) - 5):
        current = recent[i]
        before = recent[i - 10 : i]
        after = recent[i + 1 : i + 6]

        if current.high > max(c.high for c in before):
            sustained = any(c.high > current.high * 0.998 for c in after)
            reversed_ = sum(1 for c in after if c.close < current.low) >= 3
            if not sustained and reversed_:
                traps.append(TrapPattern(
                    kind="FAKE_TREND_CONTINUATION",
                    location=current.high,
                    implication="BULL_TRAP",
                    confidence=0.65,
                    time=current.time,
                    reason="Higher high failed to sustain",
                ))

        if current.low < min(c.low for c in before):
            sustained = any(c.low < current.low * 1.002 for c in after)
            reversed_ = sum(1 for c in after if c.close > current.high) >= 3
            if not sustained and reversed_:
                traps.append(TrapPattern(
                    kind="FAKE_TREND_CONTINUATION",
                    location=current.low,
                    implication="BEAR_TRAP",
                    confidence=0.65,
                    time=current.time,
                    reason="Lower low failed to sustain",
                ))
    return traps


def detect_trap_patterns(
    candles: list[Candle],
    markers: list[StructureMarker],
    imbalances: list[Imbalance],
) -> list[TrapPattern]:
    patterns = detect_failed_fvg(candles, imbalances)
    patterns += detect_failed_breakouts(markers)
    patterns += detect_fake_trend_continuation(candles)
    return sorted(patterns, key=lambda p: p.time)


def summarize_trap_zones(patterns: list[TrapPattern]) -> TrapSummary:
    if not patterns:
        return TrapSummary()
    warning = None
    if len(patterns) >= 3:
        warning = f"High trap activity: {len(patterns)} failed patterns detected"
    return TrapSummary(
        count=len(patterns),
        bull_traps=sum(1 for p in patterns if p.implication == "BULL_TRAP"),
        bear_traps=sum(1 for p in patterns if p.implication == "BEAR_TRAP"),
        warning=warning,
        most_recent=patterns[-1],
        patterns=list(patterns),
    )


def near_trap_zone(price: float, patterns: list[TrapPattern], tolerance: float = 0.002) -> Optional[TrapPattern]:
    """First trap within *tolerance* (fractional) of *price*, if any."""
    if price <= 0:
        return None
    for pattern in patterns:
        if abs(pattern.location - price) / price < tolerance:
            return pattern
    return None
