"""Order block strategy — trade the return to the last opposing candle
before an institutional displacement."""

from typing import Optional

from confluence.analysis.models import Candle, OrderBlock
from confluence.models.market_state import MarketState
from confluence.strategy.base import entry_zone, standard_targets, structural_invalidation
from confluence.strategy.models import SetupCandidate, TradeDirection, direction_bias


class OrderBlockStrategy:
    """Demand blocks for longs, supply blocks for shorts."""

    name = "order_block"
    style = "trend_following"

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        aligned = state.trend.direction == direction_bias(direction)
        regime = state.regime.regime

        if regime == "TRENDING":
            if not aligned:
                return 0.45
            if state.trend.strength > 0.70:
                return 0.85
            if state.trend.strength > 0.50:
                return 0.75
            return 0.50
        if regime == "TRANSITIONAL":
            return 0.70
        return 0.50

    def _pick_block(self, state: MarketState, direction: TradeDirection) -> Optional[OrderBlock]:
        kind = "DEMAND" if direction == "LONG" else "SUPPLY"
        blocks = [b for b in state.order_blocks if b.kind == kind]
        strict = [b for b in blocks if b.fresh and b.strength != "MODERATE"]
        fresh = [b for b in blocks if b.fresh]
        for pool in (strict, fresh, blocks):
            if pool:
                return pool[-1]
        return None

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        block = self._pick_block(state, direction)
        if block is None:
            return None

        height = block.top - block.bottom
        if direction == "LONG":
            zone = entry_zone(block.top, block.midpoint)
            failure = block.bottom - height * 0.2
            stop = min(structural_invalidation(candles, state, direction), failure)
        else:
            zone = entry_zone(block.midpoint, block.bottom)
            failure = block.top + height * 0.2
            stop = max(structural_invalidation(candles, state, direction), failure)

        return SetupCandidate(
            strategy=self.name,
            direction=direction,
            entry_zone=zone,
            stop_loss=stop,
            targets=standard_targets(zone.optimal, stop, state.pools, direction),
            rationale=(
                f"{block.strength.lower()} {block.kind.lower()} block at "
                f"{block.bottom:.5f}-{block.top:.5f} after a {block.displacement:.1f} ATR displacement"
            ),
        )
