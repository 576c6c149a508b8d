"""Confluence scorer — one bounded quant score per candidate setup.

Contributions:

    technical suitability        0-20
    multi-timeframe alignment    0 / 20
    correlation consensus        0 / 10
    killzone timing              0 / 10
    institutional liquidity      0 / 15
    market obligation            0 / 10
    CHOCH alignment              0 / 15

The sum is clamped to 100; a correlation conflict then costs 20 points
(floored at 0).  Every candidate is scored before any is dropped.
"""

import logging
import string

from confluence.models.market_state import MarketState
from confluence.risk.setup_guard import GuardedSetup
from confluence.strategy.models import SetupCandidate, TradeSetup, direction_bias

logger = logging.getLogger("confluence.scorer")

DEFAULT_MIN_SCORE = 30.0
CONSENSUS_PENALTY = 20.0


def calculate_quant_score(candidate: SetupCandidate, suitability: float, state: MarketState) -> float:
    """Quant score of *candidate* in ``[0, 100]``."""
    wanted = direction_bias(candidate.direction)
    score = max(0.0, min(1.0, suitability)) * 20

    if state.mtf_bias == wanted:
        score += 20

    correlation = state.enrichment.correlation.bias
    if correlation == wanted:
        score += 10

    if state.killzone:
        score += 10

    # Longs draw on liquidity resting below, shorts above
    pool_side = "SELL_SIDE" if candidate.direction == "LONG" else "BUY_SIDE"
    if any(p.pool_type == "INSTITUTIONAL_POOL" and p.side == pool_side for p in state.pools):
        score += 15

    if state.obligations.is_obligated:
        score += 10

    if any(m.marker_type == "CHOCH" and m.direction == wanted for m in state.markers):
        score += 15

    score = float(round(min(score, 100.0)))

    if correlation != "NEUTRAL" and correlation != wanted:
        score = max(0.0, score - CONSENSUS_PENALTY)

    return score


def rank_setups(
    guarded: list[tuple[GuardedSetup, float]],
    state: MarketState,
    min_score: float = DEFAULT_MIN_SCORE,
    max_setups: int = 4,
) -> list[TradeSetup]:
    """Score every ``(guarded setup, suitability)`` pair, then drop those
    below *min_score* and label the best *max_setups* A, B, C, ..."""
    scored = [
        (g, suitability, calculate_quant_score(g.candidate, suitability, state))
        for g, suitability in guarded
    ]
    survivors = [entry for entry in scored if entry[2] >= min_score]
    survivors.sort(key=lambda entry: (entry[2], entry[1]), reverse=True)
    logger.debug("Scored %d setup(s), %d above %.0f", len(scored), len(survivors), min_score)

    setups: list[TradeSetup] = []
    for label, (g, suitability, quant) in zip(string.ascii_uppercase, survivors[:max_setups]):
        c = g.candidate
        setups.append(TradeSetup(
            label=label,
            strategy=c.strategy,
            direction=c.direction,
            entry_zone=c.entry_zone,
            stop_loss=c.stop_loss,
            targets=c.targets,
            suitability=suitability,
            quant_score=quant,
            rationale=c.rationale,
            corrections=list(g.corrections),
        ))
    return setups
