"""Liquidity pool detection and stop-run (sweep) recognition.

Buy-side liquidity rests above swing highs, sell-side below swing lows.
A pool is swept by classic stop-run geometry: a wick through the level
that closes back on the originating side, with the previous candle still
on that side.  Once swept a pool stays swept.
"""

from dataclasses import dataclass, field
from typing import Optional

from confluence.analysis.indicators import calculate_range_atr
from confluence.analysis.models import Candle, LiquidityPool, LiquiditySweep, Side, StructureMarker
from confluence.analysis.swings import detect_swing_points

POOL_WINDOW = 120
SWEEP_WINDOW = 20
TOLERANCE_ATR = 0.2


@dataclass
class _Cluster:
    price: float
    first_index: int
    last_index: int
    touches: int = 1
    members: list[float] = field(default_factory=list)


def is_sweep(candles: list[Candle], j: int, price: float, side: Side) -> bool:
    """True when candle *j* sweeps *price* on *side* (needs a previous candle)."""
    if j < 1:
        return False
    candle = candles[j]
    prev = candles[j - 1]
    if side == "SELL_SIDE":
        return candle.low < price and candle.close > price and prev.low > price
    return candle.high > price and candle.close < price and prev.high < price


def _first_sweep(candles: list[Candle], price: float, side: Side, start: int) -> Optional[int]:
    for j in range(max(start, 1), len(candles)):
        if is_sweep(candles, j, price, side):
            return j
    return None


def _cluster(points: list[tuple[int, float]], tolerance: float, keep_high: bool) -> list[_Cluster]:
    clusters: list[_Cluster] = []
    for index, price in points:
        match = next((c for c in clusters if abs(c.price - price) <= tolerance), None)
        if match is None:
            clusters.append(_Cluster(price=price, first_index=index, last_index=index, members=[price]))
            continue
        match.touches += 1
        match.last_index = index
        match.members.append(price)
        match.price = max(match.members) if keep_high else min(match.members)
    return clusters


def _to_pool(cluster: _Cluster, side: Side, candles: list[Candle]) -> LiquidityPool:
    age = len(candles) - 1 - cluster.first_index
    swept_index = _first_sweep(candles, cluster.price, side, cluster.last_index + 1)
    equal = cluster.touches >= 2
    return LiquidityPool(
        price=cluster.price,
        side=side,
        strength="HIGH" if equal else "MEDIUM",
        pool_type="INSTITUTIONAL_POOL" if cluster.touches >= 3 or age > 50 else "STOP_POOL",
        is_equal_level=equal,
        touches=cluster.touches,
        age=age,
        index=cluster.last_index,
        swept=swept_index is not None,
        swept_index=swept_index,
    )


def _inducement_pool(candles: list[Candle], markers: list[StructureMarker]) -> Optional[LiquidityPool]:
    ordered = sorted(markers, key=lambda m: m.index)
    if len(ordered) < 5 or ordered[-1].marker_type not in ("BOS", "CHOCH"):
        return None
    breaker = ordered[-1]
    prior = ordered[-2]
    side: Side = "SELL_SIDE" if breaker.direction == "BULLISH" else "BUY_SIDE"
    swept_index = _first_sweep(candles, prior.price, side, prior.index + 1)
    return LiquidityPool(
        price=prior.price,
        side=side,
        strength="LOW",
        pool_type="INDUCEMENT",
        is_equal_level=False,
        touches=1,
        age=len(candles) - 1 - prior.index,
        index=prior.index,
        swept=swept_index is not None,
        swept_index=swept_index,
    )


def detect_liquidity_pools(
    candles: list[Candle],
    markers: Optional[list[StructureMarker]] = None,
    lookback: int = 3,
) -> list[LiquidityPool]:
    """Detect buy-side and sell-side pools over the last 120 candles.

    Swings within 0.2 × range ATR of each other cluster into one pool that
    keeps the extreme price.  Two or more touches make an equal-highs/lows
    pool (HIGH strength); three touches or an age above 50 candles make it
    institutional.  When *markers* end in a BOS or CHOCH, the pivot before
    the break is added as an inducement pool.
    """
    if len(candles) < 2 * lookback + 1:
        return []

    offset = max(0, len(candles) - POOL_WINDOW)
    window = candles[offset:]
    tolerance = TOLERANCE_ATR * calculate_range_atr(window, 14)

    swings = detect_swing_points(window, lookback)
    highs = [(s.index + offset, s.price) for s in swings if s.kind == "HIGH"]
    lows = [(s.index + offset, s.price) for s in swings if s.kind == "LOW"]

    pools = [_to_pool(c, "BUY_SIDE", candles) for c in _cluster(highs, tolerance, keep_high=True)]
    pools += [_to_pool(c, "SELL_SIDE", candles) for c in _cluster(lows, tolerance, keep_high=False)]

    if markers:
        inducement = _inducement_pool(candles, markers)
        if inducement is not None:
            pools.append(inducement)

    return sorted(pools, key=lambda p: p.index)


def detect_liquidity_sweep(candles: list[Candle], pools: list[LiquidityPool]) -> Optional[LiquiditySweep]:
    """Return the most recent sweep of any pool within the last 20 candles."""
    if len(candles) < 2 or not pools:
        return None

    start = max(1, len(candles) - SWEEP_WINDOW)
    best: Optional[LiquiditySweep] = None
    for pool in pools:
        first = max(start, pool.index + 1)
        if best is not None:
            first = max(first, best.index + 1)
        for j in range(len(candles) - 1, first - 1, -1):
            if not is_sweep(candles, j, pool.price, pool.side):
                continue
            candle = candles[j]
            if pool.side == "SELL_SIDE":
                depth = (pool.price - candle.low) / pool.price if pool.price > 0 else 0.0
            else:
                depth = (candle.high - pool.price) / pool.price if pool.price > 0 else 0.0
            prior = candles[max(0, j - 19):j]
            avg_volume = sum(c.volume for c in prior) / len(prior) if prior else 0.0
            best = LiquiditySweep(
                side=pool.side,
                level=pool.price,
                index=j,
                time=candle.time,
                relative_depth=depth,
                volume_surge=avg_volume > 0 and candle.volume > 1.5 * avg_volume,
            )
            break
    return best
