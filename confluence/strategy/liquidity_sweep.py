"""Liquidity sweep strategy — fade stop runs through equal highs/lows."""

from typing import Optional

from confluence.analysis.models import Candle, LiquidityPool
from confluence.models.market_state import MarketState
from confluence.strategy.base import entry_zone
from confluence.strategy.models import SetupCandidate, Target, TradeDirection

MAX_DEVIATION = 0.015


class LiquiditySweepStrategy:
    """Longs below swept sell-side pools, shorts above buy-side pools."""

    name = "liquidity_sweep"
    style = "counter_trend"

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        regime = state.regime.regime
        if regime == "RANGING":
            return 0.70
        if regime == "TRANSITIONAL":
            return 0.65
        return 0.50

    def _target_pool(self, state: MarketState, direction: TradeDirection) -> Optional[LiquidityPool]:
        price = state.current_price
        if direction == "LONG":
            pools = [
                p for p in state.pools
                if p.side == "SELL_SIDE" and p.is_equal_level and price >= p.price * (1 - MAX_DEVIATION)
            ]
        else:
            pools = [
                p for p in state.pools
                if p.side == "BUY_SIDE" and p.is_equal_level and price <= p.price * (1 + MAX_DEVIATION)
            ]
        if not pools:
            return None
        # Unswept pools first, then the closest
        return min(pools, key=lambda p: (p.swept, abs(p.price - price)))

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        pool = self._target_pool(state, direction)
        if pool is None:
            return None

        level = pool.price
        if direction == "LONG":
            zone = entry_zone(level * 0.998, level * 0.995)
            stop = level * 0.993
        else:
            zone = entry_zone(level * 1.005, level * 1.002)
            stop = level * 1.007

        risk = abs(zone.optimal - stop)
        sign = 1 if direction == "LONG" else -1
        targets = [
            Target(price=zone.optimal + sign * risk * 2, risk_reward=2.0, label="2R initial expansion"),
            Target(price=zone.optimal + sign * risk * 3, risk_reward=3.0, label="3R liquidity run"),
        ]

        return SetupCandidate(
            strategy=self.name,
            direction=direction,
            entry_zone=zone,
            stop_loss=stop,
            targets=targets,
            rationale=(
                f"{pool.touches}-touch {pool.side.replace('_', '-').lower()} pool at {level:.5f}; "
                f"enter on the wick rejection after the sweep"
            ),
        )
