"""Directional prediction — reduce the probability set to one call.

The bias is read off the probabilities; target and invalidation come from
the best setup agreeing with it, falling back to the nearest liquidity
pool on that side.  An active cooldown overrides everything.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from confluence.analysis.models import Bias, LiquidityPool, VolumeAnalysis
from confluence.engine.probability import Probabilities
from confluence.engine.traps import TrapPattern, near_trap_zone
from confluence.strategy.models import TradeSetup, direction_bias

PredictionBias = Literal["BULLISH", "BEARISH", "NEUTRAL", "NO_EDGE", "WAIT_COOLDOWN"]

CONSOLIDATION_THRESHOLD = 60.0
CONTINUATION_THRESHOLD = 60.0
REVERSAL_THRESHOLD = 65.0
HTF_BONUS = 10.0
VOLUME_BONUS = 10.0
TRAP_PENALTY = 15.0


@dataclass(frozen=True)
class Prediction:
    bias: PredictionBias
    target: Optional[float]
    invalidation: Optional[float]
    confidence: float  # 0-100
    reason: str


def _opposite(bias: Bias) -> Bias:
    if bias == "BULLISH":
        return "BEARISH"
    if bias == "BEARISH":
        return "BULLISH"
    return "NEUTRAL"


def _nearest_pool(current_price: float, pools: list[LiquidityPool], bias: str) -> Optional[float]:
    if bias == "BULLISH":
        ahead = [p.price for p in pools if not p.swept and p.price > current_price]
        return min(ahead) if ahead else None
    ahead = [p.price for p in pools if not p.swept and p.price < current_price]
    return max(ahead) if ahead else None


def predict(
    probabilities: Probabilities,
    trend: Bias,
    mtf_bias: Bias,
    current_price: float,
    setups: list[TradeSetup],
    pools: list[LiquidityPool],
    volume: VolumeAnalysis,
    traps: list[TrapPattern],
    cooldown_reason: Optional[str] = None,
) -> Prediction:
    """Build the prediction for one analysis run."""
    if cooldown_reason is not None:
        return Prediction(
            bias="WAIT_COOLDOWN", target=None, invalidation=None, confidence=0.0,
            reason=cooldown_reason,
        )

    bias: PredictionBias
    if probabilities.consolidation > CONSOLIDATION_THRESHOLD:
        bias, dominant = "NEUTRAL", probabilities.consolidation
        reason = f"Consolidation likely ({probabilities.consolidation:.0f}%)"
    elif trend != "NEUTRAL" and probabilities.continuation >= CONTINUATION_THRESHOLD:
        bias, dominant = trend, probabilities.continuation
        reason = f"{trend.title()} continuation ({probabilities.continuation:.0f}%)"
    elif trend != "NEUTRAL" and probabilities.reversal >= REVERSAL_THRESHOLD:
        bias, dominant = _opposite(trend), probabilities.reversal
        reason = f"Reversal against {trend.lower()} trend ({probabilities.reversal:.0f}%)"
    else:
        bias, dominant = "NO_EDGE", max(probabilities.continuation, probabilities.reversal)
        reason = "No probability above threshold"

    target: Optional[float] = None
    invalidation: Optional[float] = None
    if bias in ("BULLISH", "BEARISH"):
        aligned = next((s for s in setups if direction_bias(s.direction) == bias), None)
        if aligned is not None and aligned.targets:
            target = aligned.targets[0].price
            invalidation = aligned.stop_loss
        else:
            target = _nearest_pool(current_price, pools, bias)

    confidence = dominant
    if bias in ("BULLISH", "BEARISH"):
        if mtf_bias == bias:
            confidence += HTF_BONUS
        if volume.is_institutional:
            confidence += VOLUME_BONUS
        trap = near_trap_zone(current_price, traps)
        if trap is not None and trap.implication == ("BULL_TRAP" if bias == "BULLISH" else "BEAR_TRAP"):
            confidence -= TRAP_PENALTY
            reason += f"; near {trap.implication.replace('_', ' ').lower()}"

    return Prediction(
        bias=bias,
        target=target,
        invalidation=invalidation,
        confidence=round(max(0.0, min(100.0, confidence)), 1),
        reason=reason,
    )
