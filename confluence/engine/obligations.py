"""Obligation engine — which unfinished levels is price being pulled toward?

Unswept liquidity pools and unmitigated fair value gaps are scored for
their pull on price (0-100).  The highest-scoring one is the primary
obligation; the market is OBLIGATED only when its urgency clears
``OBLIGATED_URGENCY``.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from confluence.analysis.models import Bias, Direction, Imbalance, LiquidityPool

logger = logging.getLogger("confluence.obligations")

OBLIGATED_URGENCY = 80.0
POOL_MIN_URGENCY = 55.0
IMBALANCE_MIN_URGENCY = 50.0
IMBALANCE_MAX_URGENCY = 90.0
RECENT_SWEEP_BARS = 20
VOLUME_NODE_TOLERANCE = 0.001


@dataclass(frozen=True)
class Obligation:
    """A level price is expected to revisit."""

    type: str  # BUY_SIDE_LIQUIDITY, SELL_SIDE_LIQUIDITY, BULLISH_IMBALANCE, BEARISH_IMBALANCE
    price: float
    urgency: float
    source: Union[LiquidityPool, Imbalance]  # the zone that created it
    direction: Direction  # the way price must travel to reach it


@dataclass(frozen=True)
class ObligationState:
    state: Literal["OBLIGATED", "FREE_ROAMING"] = "FREE_ROAMING"
    obligations: list[Obligation] = field(default_factory=list)
    primary: Optional[Obligation] = None

    @property
    def is_obligated(self) -> bool:
        return self.state == "OBLIGATED"


def is_obligated(urgency: float) -> bool:
    """Single source of truth for the OBLIGATED threshold."""
    return urgency > OBLIGATED_URGENCY


def _distance(price: float, level: float) -> float:
    return abs(level - price) / price if price > 0 else float("inf")


def score_pool(
    pool: LiquidityPool,
    current_price: float,
    trend: Bias,
    opposite_swept_recently: bool = False,
    volume_nodes: Optional[list[float]] = None,
) -> float:
    """Vulnerability score of an unswept pool, clamped to 0-100."""
    score = 50.0

    distance = _distance(current_price, pool.price)
    if distance < 0.005:
        score += 25
    elif distance < 0.02:
        score += 10
    elif distance > 0.05:
        score -= 20

    if pool.is_equal_level:
        score += 45
    if opposite_swept_recently:
        score += 30

    if pool.age > 200:
        score += 15
    elif pool.age > 50:
        score += 5

    # a NEUTRAL trend counts as against the pool
    with_trend = trend != "NEUTRAL" and (trend == "BULLISH") == (pool.side == "BUY_SIDE")
    score += 15 if with_trend else -15

    if pool.price > 0 and any(
        abs(node - pool.price) / pool.price <= VOLUME_NODE_TOLERANCE for node in volume_nodes or []
    ):
        score += 20

    return max(0.0, min(100.0, score))


def score_imbalance(gap: Imbalance, current_price: float, trend: Bias, last_index: int) -> float:
    """Urgency of an unmitigated gap, capped at 90."""
    urgency = 40.0

    distance = _distance(current_price, gap.midpoint)
    if distance < 0.005:
        urgency += 30
    elif distance < 0.015:
        urgency += 10

    age = last_index - gap.index
    if age < 20:
        urgency += 15
    elif age > 100:
        urgency += 10

    if trend == gap.type:
        urgency += 15

    return min(urgency, IMBALANCE_MAX_URGENCY)


def calculate_obligations(
    current_price: float,
    pools: list[LiquidityPool],
    imbalances: list[Imbalance],
    trend: Bias,
    last_index: int,
    volume_nodes: Optional[list[float]] = None,
) -> ObligationState:
    """Score every open level and elect the primary obligation.

    Only unswept pools on the correct side of price (buy-side above,
    sell-side below) and unmitigated gaps are considered.  Obligations are
    sorted by urgency, highest first.
    """
    obligations: list[Obligation] = []

    for pool in pools:
        if pool.swept:
            continue
        if pool.side == "BUY_SIDE" and pool.price <= current_price:
            continue
        if pool.side == "SELL_SIDE" and pool.price >= current_price:
            continue
        opposite_swept = any(
            other.side != pool.side
            and other.swept_index is not None
            and other.swept_index >= last_index - RECENT_SWEEP_BARS
            for other in pools
        )
        urgency = score_pool(pool, current_price, trend, opposite_swept, volume_nodes)
        if urgency > POOL_MIN_URGENCY:
            obligations.append(Obligation(
                type=f"{pool.side}_LIQUIDITY",
                price=pool.price,
                urgency=urgency,
                source=pool,
                direction="BULLISH" if pool.side == "BUY_SIDE" else "BEARISH",
            ))

    for gap in imbalances:
        if gap.mitigated:
            continue
        urgency = score_imbalance(gap, current_price, trend, last_index)
        if urgency > IMBALANCE_MIN_URGENCY:
            obligations.append(Obligation(
                type=f"{gap.type}_IMBALANCE",
                price=gap.midpoint,
                urgency=urgency,
                source=gap,
                direction="BULLISH" if gap.midpoint > current_price else "BEARISH",
            ))

    obligations.sort(key=lambda o: o.urgency, reverse=True)
    primary = obligations[0] if obligations else None
    state = "OBLIGATED" if primary is not None and is_obligated(primary.urgency) else "FREE_ROAMING"

    logger.debug(
        "Obligations: %d candidates, state=%s, primary=%s",
        len(obligations), state, primary.type if primary else None,
    )
    return ObligationState(state=state, obligations=obligations, primary=primary)
