"""Scalp strategy — quick reversal after a fresh stop run on low timeframes."""

from typing import Optional

from confluence.analysis.asset_class import SCALPING_TIMEFRAMES
from confluence.analysis.models import Candle, LiquiditySweep
from confluence.models.market_state import MarketState
from confluence.strategy.base import entry_zone
from confluence.strategy.models import SetupCandidate, Target, TradeDirection

FRESH_SWEEP_BARS = 3
STOP_PADDING = 0.0005


class ScalpStrategy:
    name = "scalp"
    style = "scalp"

    def _fresh_sweep(self, state: MarketState, direction: TradeDirection) -> Optional[LiquiditySweep]:
        sweep = state.sweep
        if sweep is None or state.last_index - sweep.index >= FRESH_SWEEP_BARS:
            return None
        wanted = "SELL_SIDE" if direction == "LONG" else "BUY_SIDE"
        return sweep if sweep.side == wanted else None

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        if state.timeframe.lower() not in SCALPING_TIMEFRAMES:
            return 0.0
        score = 0.6
        if self._fresh_sweep(state, direction) is not None:
            score += 0.2
        return score

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        if state.timeframe.lower() not in SCALPING_TIMEFRAMES:
            return None
        sweep = self._fresh_sweep(state, direction)
        if sweep is None:
            return None

        level = sweep.level
        price = state.current_price
        if direction == "LONG":
            if price <= level:
                return None
            zone = entry_zone(price, level)
            stop = level * (1 - STOP_PADDING)
        else:
            if price >= level:
                return None
            zone = entry_zone(level, price)
            stop = level * (1 + STOP_PADDING)

        risk = abs(zone.optimal - stop)
        sign = 1 if direction == "LONG" else -1
        return SetupCandidate(
            strategy=self.name,
            direction=direction,
            entry_zone=zone,
            stop_loss=stop,
            targets=[
                Target(price=zone.optimal + sign * risk * 2, risk_reward=2.0, label="2R scalp"),
                Target(price=zone.optimal + sign * risk * 3, risk_reward=3.0, label="3R runner"),
            ],
            rationale=f"Fresh {sweep.side.replace('_', '-').lower()} sweep of {level:.5f}, scalping the reversal",
        )
