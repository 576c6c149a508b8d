"""Wyckoff accumulation and distribution strategies.

Accumulation looks for a selling climax, a trading range and a spring,
then buys the move toward resistance.  Distribution mirrors it with a
buying climax and an upthrust (UTAD).
"""

from typing import Literal, Optional

from confluence.analysis.models import Candle, RangeEvent
from confluence.models.market_state import MarketState
from confluence.strategy.base import entry_zone
from confluence.strategy.models import SetupCandidate, Target, TradeDirection


class WyckoffStrategy:
    """One class, two registry entries: ``accumulation`` or ``distribution``."""

    style = "counter_trend"

    def __init__(self, phase: Literal["accumulation", "distribution"] = "accumulation") -> None:
        self.phase = phase
        self.name = f"wyckoff_{phase}"
        self._direction: TradeDirection = "LONG" if phase == "accumulation" else "SHORT"

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        if direction != self._direction:
            return 0.1

        trend = state.trend.direction
        against = "BEARISH" if self._direction == "LONG" else "BULLISH"

        if trend == "NEUTRAL":
            score = 0.85
        elif trend == against:
            score = 0.75 if state.trend.strength < 0.3 else 0.4
        else:
            score = 0.6

        volume = state.volume
        if volume.is_institutional:
            if volume.sub_type == "ABSORPTION":
                score += 0.15
            if volume.sub_type == "CLIMAX":
                score += 0.1
        return min(score, 1.0)

    def _latest(self, events: list[RangeEvent], kind: str) -> Optional[RangeEvent]:
        matching = [e for e in events if e.kind == kind]
        return matching[-1] if matching else None

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        if direction != self._direction:
            return None

        rng = state.trading_range
        if rng is None or rng.height <= 0:
            return None

        climax_kind = "SELLING_CLIMAX" if direction == "LONG" else "BUYING_CLIMAX"
        trap_kind = "SPRING" if direction == "LONG" else "UTAD"
        if self._latest(state.range_events, climax_kind) is None:
            return None
        trap = self._latest(state.range_events, trap_kind)
        if trap is None:
            return None

        price = state.current_price
        height = rng.height

        if direction == "LONG":
            if price <= rng.support + height * 0.7:
                return None
            zone = entry_zone(rng.resistance * 1.01, rng.resistance * 0.99)
            stop = trap.price * 0.995
            t1 = rng.resistance + height * 1.5
            t2 = rng.resistance + height * 3.0
        else:
            if price >= rng.support + height * 0.3:
                return None
            zone = entry_zone(rng.support * 1.01, rng.support * 0.99)
            stop = trap.price * 1.005
            t1 = rng.support - height * 1.5
            t2 = rng.support - height * 3.0

        risk = abs(zone.optimal - stop)
        targets = [
            Target(price=t, risk_reward=round(abs(t - zone.optimal) / risk, 2) if risk > 0 else 0.0, label=label)
            for t, label in ((t1, "Range extension"), (t2, "Range objective"))
        ]

        return SetupCandidate(
            strategy=self.name,
            direction=direction,
            entry_zone=zone,
            stop_loss=stop,
            targets=targets,
            rationale=(
                f"Wyckoff {self.phase}: climax, range {rng.support:.5f}-{rng.resistance:.5f} "
                f"and {trap_kind.lower()} at {trap.price:.5f}"
            ),
        )
