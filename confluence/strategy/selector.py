"""Strategy selector — scale each strategy's suitability by market context
and keep the best candidates per direction."""

import logging
from dataclasses import dataclass

from confluence.analysis.models import Candle
from confluence.models.market_state import MarketState
from confluence.strategy.base import StrategyProtocol
from confluence.strategy.models import DIRECTIONS, SetupCandidate, TradeDirection, direction_bias

logger = logging.getLogger("confluence.selector")

MIN_SUITABILITY = 0.35
PER_DIRECTION = 2
RECENT_SWEEP_BARS = 10
KILLZONE_STRATEGIES = frozenset({"order_block", "liquidity_sweep"})


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: SetupCandidate
    suitability: float


def adjust_suitability(
    strategy: StrategyProtocol,
    state: MarketState,
    direction: TradeDirection,
    suitability: float,
) -> float:
    """Apply trend, MTF, correlation, session, volume, sweep and obligation
    multipliers to a strategy's raw suitability.  Capped at 1.0."""
    wanted = direction_bias(direction)
    trend = state.trend.direction
    trend_following = strategy.style == "trend_following"
    counter_trend = strategy.style == "counter_trend"

    if trend != "NEUTRAL":
        aligned = trend == wanted
        if trend_following:
            suitability *= 1.15 if aligned else 0.3
        if counter_trend and not aligned and state.trend.strength > 0.8:
            suitability *= 1.1

    if state.mtf_bias != "NEUTRAL":
        if state.mtf_bias == wanted:
            suitability *= 1.3
        elif trend_following:
            suitability *= 0.5

    correlation = state.enrichment.correlation.bias
    if correlation != "NEUTRAL":
        suitability *= 1.15 if correlation == wanted else 0.85

    if state.killzone and strategy.name in KILLZONE_STRATEGIES:
        suitability *= 1.15

    volume = state.volume
    if volume.is_institutional:
        suitability *= 1.25
        if counter_trend and volume.sub_type == "ABSORPTION":
            suitability *= 1.2
        elif counter_trend and volume.sub_type == "CLIMAX":
            suitability *= 1.3

    sweep = state.sweep
    if sweep is not None and state.last_index - sweep.index <= RECENT_SWEEP_BARS:
        swept_side = "SELL_SIDE" if direction == "LONG" else "BUY_SIDE"
        if sweep.side == swept_side:
            suitability *= 1.4

    primary = state.obligations.primary
    if primary is not None:
        if primary.direction == wanted:
            suitability *= 1 + primary.urgency / 200
        elif state.obligations.is_obligated:
            suitability *= 0.4

    return min(suitability, 1.0)


def select_candidates(
    candles: list[Candle],
    state: MarketState,
    strategies: list[StrategyProtocol],
) -> list[ScoredCandidate]:
    """Evaluate every strategy for LONG and SHORT and generate setups.

    Only strategies whose adjusted suitability exceeds 0.35 are asked to
    generate; the two most suitable candidates per direction are kept.
    """
    selected: list[ScoredCandidate] = []

    for direction in DIRECTIONS:
        scored: list[ScoredCandidate] = []
        for strategy in strategies:
            raw = strategy.evaluate(state, direction)
            suitability = adjust_suitability(strategy, state, direction, raw)
            if suitability <= MIN_SUITABILITY:
                continue
            candidate = strategy.generate(candles, state, direction)
            if candidate is None:
                continue
            scored.append(ScoredCandidate(candidate=candidate, suitability=round(suitability, 3)))

        scored.sort(key=lambda s: s.suitability, reverse=True)
        selected.extend(scored[:PER_DIRECTION])
        logger.debug("%s: %d candidate(s) generated, %d kept", direction, len(scored), min(len(scored), PER_DIRECTION))

    return selected
