"""Breaker flip strategy — retest of a broken order block from the other side."""

from typing import Optional

from confluence.analysis.models import Candle
from confluence.models.market_state import MarketState
from confluence.strategy.base import entry_zone, structural_invalidation
from confluence.strategy.models import SetupCandidate, Target, TradeDirection, direction_bias


class BreakerFlipStrategy:
    name = "breaker_flip"
    style = "breakout"

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        regime = state.regime.regime
        if regime == "TRANSITIONAL":
            score = 0.85
        elif regime == "TRENDING":
            score = 0.70
        else:
            score = 0.40
        if state.mtf_bias == direction_bias(direction):
            score *= 1.2
        return min(score, 1.0)

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        wanted = direction_bias(direction)
        breakers = [b for b in state.breakers if b.direction == wanted]
        if not breakers:
            return None
        breaker = max(breakers, key=lambda b: b.break_index)

        zone = entry_zone(breaker.top, breaker.bottom)
        stop = structural_invalidation(candles, state, direction)
        role = "support" if direction == "LONG" else "resistance"
        risk = abs(zone.optimal - stop)
        sign = 1 if direction == "LONG" else -1
        targets = [
            Target(price=zone.optimal + sign * risk * 2.5, risk_reward=2.5, label="2.5R flip expansion"),
            Target(price=zone.optimal + sign * risk * 4.5, risk_reward=4.5, label="4.5R extension"),
        ]

        return SetupCandidate(
            strategy=self.name,
            direction=direction,
            entry_zone=zone,
            stop_loss=stop,
            targets=targets,
            rationale=(
                f"Order block {breaker.bottom:.5f}-{breaker.top:.5f} broken at bar {breaker.break_index}; "
                f"retest expected to hold as {role}"
            ),
        )
