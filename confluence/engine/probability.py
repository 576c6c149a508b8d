"""Probabilistic engine — continuation, reversal, liquidity-run and
consolidation probabilities with regime-dependent weights and time decay.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

from confluence.analysis.models import Bias, LiquidityPool, LiquiditySweep, StructureMarker, VolumeAnalysis
from confluence.engine.obligations import ObligationState, is_obligated

NEUTRAL_PRIOR = 0.5
DEFAULT_HALF_LIFE_HOURS = 4.0
MAJOR_LEVEL_DISTANCE = 0.002


@dataclass(frozen=True)
class ProbabilityWeights:
    bayesian: float
    htf: float
    structure: float
    volume: float
    obligation: float
    traps: float


REGIME_WEIGHTS: dict[str, ProbabilityWeights] = {
    "DEFAULT": ProbabilityWeights(bayesian=30, htf=20, structure=20, volume=20, obligation=10, traps=20),
    "TRENDING": ProbabilityWeights(bayesian=25, htf=35, structure=25, volume=15, obligation=0, traps=20),
    "RANGING": ProbabilityWeights(bayesian=35, htf=10, structure=15, volume=25, obligation=15, traps=40),
}


@dataclass(frozen=True)
class Probabilities:
    """Scenario probabilities, each 0-100."""

    continuation: float
    reversal: float
    liquidity_run: float
    consolidation: float
    liquidity_target: Optional[float] = None


NEUTRAL_PROBABILITIES = Probabilities(continuation=0.0, reversal=0.0, liquidity_run=0.0, consolidation=0.0)


def get_weights(regime: str, volatility_level: str) -> ProbabilityWeights:
    """Weights for *regime*, adjusted for high volatility.

    High volatility trusts the prior more (bayesian 40), expects more traps
    (+10) and discounts HTF alignment (-5).
    """
    weights = REGIME_WEIGHTS.get(regime, REGIME_WEIGHTS["DEFAULT"])
    if volatility_level == "HIGH":
        weights = replace(weights, bayesian=40, traps=weights.traps + 10, htf=weights.htf - 5)
    return weights


def _clamp(value: float) -> float:
    return float(max(0, min(100, round(value))))


def _htf_weight(trend: Bias, mtf_bias: Bias) -> float:
    if mtf_bias == "NEUTRAL":
        return 0.5
    return 1.0 if trend == mtf_bias else 0.2


def _structure_strength(markers: list[StructureMarker]) -> float:
    intact = sum(1 for m in markers if m.marker_type == "BOS" and not m.failed)
    return min(intact * 0.25, 1.0)


def _volume_confirmation(volume: VolumeAnalysis) -> float:
    if volume.is_institutional:
        return 1.0
    return 0.7 if volume.relative_volume > 1.5 else 0.4


def _at_major_level(price: float, pools: list[LiquidityPool]) -> bool:
    if price <= 0:
        return False
    return any(
        pool.touches >= 3 and abs(pool.price - price) / price < MAJOR_LEVEL_DISTANCE
        for pool in pools
    )


def calculate_continuation(
    weights: ProbabilityWeights,
    trend: Bias,
    mtf_bias: Bias,
    markers: list[StructureMarker],
    volume: VolumeAnalysis,
    obligations: ObligationState,
    prior: float = NEUTRAL_PRIOR,
) -> float:
    probability = prior * weights.bayesian
    probability += _htf_weight(trend, mtf_bias) * weights.htf
    probability += _structure_strength(markers) * weights.structure
    probability += _volume_confirmation(volume) * weights.volume

    primary = obligations.primary
    if obligations.is_obligated and primary is not None and weights.obligation > 0:
        if primary.direction == trend:
            probability += weights.obligation + 5
        else:
            probability -= weights.obligation * 2

    return _clamp(probability)


def calculate_reversal(
    weights: ProbabilityWeights,
    trend: Bias,
    current_price: float,
    pools: list[LiquidityPool],
    sweep: Optional[LiquiditySweep],
    volume: VolumeAnalysis,
    obligations: ObligationState,
    divergence: bool = False,
    prior: float = NEUTRAL_PRIOR,
) -> float:
    probability = prior * weights.bayesian
    if divergence:
        probability += 15
    if volume.sub_type == "CLIMAX":
        probability += 15
    if _at_major_level(current_price, pools):
        probability += 10

    if sweep is not None:
        probability += weights.traps
        if volume.sub_type == "ABSORPTION":
            probability += 10

    primary = obligations.primary
    if (
        primary is not None
        and is_obligated(primary.urgency)
        and trend != "NEUTRAL"
        and primary.direction != trend
    ):
        probability += 20

    return _clamp(probability)


def calculate_consolidation(regime: str, volatility_level: str) -> float:
    score = 0.0
    if volatility_level == "LOW":
        score += 40
    if regime == "RANGING":
        score += 40
    return min(score, 100.0)


def calculate_probabilities(
    regime: str,
    volatility_level: str,
    trend: Bias,
    mtf_bias: Bias,
    markers: list[StructureMarker],
    current_price: float,
    pools: list[LiquidityPool],
    sweep: Optional[LiquiditySweep],
    volume: VolumeAnalysis,
    obligations: ObligationState,
    divergence: bool = False,
    prior: float = NEUTRAL_PRIOR,
) -> Probabilities:
    """Combine regime, structure, volume and obligation state into scenario
    probabilities.  The liquidity-run probability is the primary
    obligation's urgency when that obligation is a liquidity pool, else 0.
    """
    weights = get_weights(regime, volatility_level)
    primary = obligations.primary
    runs_liquidity = primary is not None and "LIQUIDITY" in primary.type

    return Probabilities(
        continuation=calculate_continuation(weights, trend, mtf_bias, markers, volume, obligations, prior),
        reversal=calculate_reversal(
            weights, trend, current_price, pools, sweep, volume, obligations, divergence, prior,
        ),
        liquidity_run=primary.urgency if runs_liquidity else 0.0,
        consolidation=calculate_consolidation(regime, volatility_level),
        liquidity_target=primary.price if runs_liquidity else None,
    )


def apply_confidence_decay(
    probability: float,
    age_hours: float,
    half_life_hours: float = DEFAULT_HALF_LIFE_HOURS,
) -> float:
    """Exponential decay ``p · e^(-ln2 · t / half_life)``.

    Non-positive ages return *probability* unchanged.
    """
    if age_hours <= 0 or half_life_hours <= 0:
        return probability
    return probability * math.exp(-math.log(2) * age_hours / half_life_hours)


def decay_probabilities(probs: Probabilities, age_hours: float, half_life_hours: float) -> Probabilities:
    """Decay every scenario probability by the same elapsed time."""
    if age_hours <= 0:
        return probs
    return replace(
        probs,
        continuation=apply_confidence_decay(probs.continuation, age_hours, half_life_hours),
        reversal=apply_confidence_decay(probs.reversal, age_hours, half_life_hours),
        liquidity_run=apply_confidence_decay(probs.liquidity_run, age_hours, half_life_hours),
        consolidation=apply_confidence_decay(probs.consolidation, age_hours, half_life_hours),
    )
