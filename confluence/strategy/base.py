"""Strategy protocol and shared setup geometry helpers.

Strategies read zones from the ``MarketState`` built by the analysis
stages; they never re-derive them from candles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from confluence.analysis.models import Candle, LiquidityPool
from confluence.strategy.models import EntryZone, SetupCandidate, Target, TradeDirection

if TYPE_CHECKING:
    from confluence.models.market_state import MarketState


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all setup strategies must satisfy."""

    name: str
    style: str  # "trend_following", "counter_trend", "breakout" or "scalp"

    def evaluate(self, state: MarketState, direction: TradeDirection) -> float:
        """Suitability of this strategy for *direction* right now (0-1)."""
        ...

    def generate(
        self,
        candles: list[Candle],
        state: MarketState,
        direction: TradeDirection,
    ) -> Optional[SetupCandidate]:
        """Propose at most one setup for *direction*, or None."""
        ...


def entry_zone(top: float, bottom: float) -> EntryZone:
    """Entry zone with the optimal fill at its midpoint."""
    high, low = max(top, bottom), min(top, bottom)
    return EntryZone(top=high, bottom=low, optimal=(high + low) / 2)


def volatility_buffer(state: MarketState) -> float:
    """ATR scaled by the instrument's stop multiplier."""
    return state.atr * state.params.stop_loss_multiplier


def structural_invalidation(candles: list[Candle], state: MarketState, direction: TradeDirection) -> float:
    """Stop beyond the latest protective swing, padded by the volatility buffer.

    LONG uses the most recent swing low, SHORT the most recent swing high.
    Without one, the extreme of the last 20 candles is used.
    """
    buffer = volatility_buffer(state)
    kind = "LOW" if direction == "LONG" else "HIGH"
    swings = [s for s in state.swings if s.kind == kind]
    if swings:
        level = swings[-1].price
    else:
        recent = candles[-20:]
        level = min(c.low for c in recent) if direction == "LONG" else max(c.high for c in recent)
    return level - buffer if direction == "LONG" else level + buffer


def standard_targets(
    entry: float,
    stop_loss: float,
    pools: list[LiquidityPool],
    direction: TradeDirection,
) -> list[Target]:
    """First two unswept pools beyond *entry*, falling back to 2R and 4R."""
    risk = abs(entry - stop_loss)
    if risk <= 0:
        return []

    if direction == "LONG":
        ahead = sorted((p for p in pools if not p.swept and p.price > entry), key=lambda p: p.price)
    else:
        ahead = sorted((p for p in pools if not p.swept and p.price < entry), key=lambda p: -p.price)

    sign = 1 if direction == "LONG" else -1
    targets: list[Target] = []
    for i, multiple in enumerate((2.0, 4.0)):
        if i < len(ahead):
            price = ahead[i].price
            label = f"{ahead[i].side} liquidity"
        else:
            price = entry + sign * risk * multiple
            label = f"{multiple:.0f}R extension"
        targets.append(Target(price=price, risk_reward=round(abs(price - entry) / risk, 2), label=label))
    return targets
