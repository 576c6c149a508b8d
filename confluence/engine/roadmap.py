"""Roadmap — the next liquidity targets in the higher-timeframe direction."""

from dataclasses import dataclass, field
from typing import Optional

from confluence.analysis.models import Bias, LiquidityPool


@dataclass(frozen=True)
class RoadmapTarget:
    price: float
    side: str
    probability: float  # 20-95
    sequence: int


@dataclass(frozen=True)
class RoadmapPath:
    condition: str
    then: str
    probability: float


@dataclass(frozen=True)
class Roadmap:
    targets: list[RoadmapTarget] = field(default_factory=list)
    paths: list[RoadmapPath] = field(default_factory=list)
    summary: str = "No liquidity targets in view."

    @property
    def primary(self) -> Optional[RoadmapTarget]:
        return self.targets[0] if self.targets else None


def _target_probability(
    pool: LiquidityPool,
    current_price: float,
    sequence: int,
    mtf_aligned: bool,
) -> float:
    probability = 70 - sequence * 15
    if mtf_aligned:
        probability += 15
    if pool.strength == "HIGH":
        probability += 10
    if current_price > 0 and abs(pool.price - current_price) / current_price > 0.05:
        probability -= 20
    return float(max(20, min(95, probability)))


def project_liquidity_targets(
    current_price: float,
    pools: list[LiquidityPool],
    htf_bias: Bias,
    mtf_aligned: bool = False,
) -> list[RoadmapTarget]:
    """Up to three unswept pools in the HTF direction, nearest first.

    A neutral bias returns the nearest pool on each side.
    """
    open_pools = [p for p in pools if not p.swept and p.strength in ("HIGH", "MEDIUM")]
    above = sorted((p for p in open_pools if p.price > current_price), key=lambda p: p.price)
    below = sorted((p for p in open_pools if p.price < current_price), key=lambda p: -p.price)

    if htf_bias == "BULLISH":
        chosen = above
    elif htf_bias == "BEARISH":
        chosen = below
    else:
        chosen = above[:1] + below[:1]

    return [
        RoadmapTarget(
            price=pool.price,
            side=pool.side,
            probability=_target_probability(pool, current_price, seq, mtf_aligned),
            sequence=seq + 1,
        )
        for seq, pool in enumerate(chosen[:3])
    ]


def build_roadmap(
    current_price: float,
    pools: list[LiquidityPool],
    htf_bias: Bias,
    mtf_aligned: bool = False,
) -> Roadmap:
    """Targets plus "if breaks X then Y" paths and a one-line summary."""
    targets = project_liquidity_targets(current_price, pools, htf_bias, mtf_aligned)
    if not targets:
        return Roadmap()

    paths: list[RoadmapPath] = []
    for i, target in enumerate(targets):
        verb = "breaks above" if target.price > current_price else "breaks below"
        if i + 1 < len(targets):
            then = f"target {targets[i + 1].price:.5f}"
        else:
            then = "watch for reversal or continuation"
        paths.append(RoadmapPath(
            condition=f"if price {verb} {target.price:.5f}",
            then=then,
            probability=target.probability,
        ))

    first = targets[0]
    summary = (
        f"Draw on {first.side.replace('_', ' ').lower()} liquidity at {first.price:.5f} "
        f"({first.probability:.0f}%), {len(targets)} target(s) mapped."
    )
    return Roadmap(targets=targets, paths=paths, summary=summary)
