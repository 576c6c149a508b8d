"""Strategy data models — candidate setups and ranked trade setups."""

from dataclasses import dataclass, field
from typing import Literal

TradeDirection = Literal["LONG", "SHORT"]
DIRECTIONS: tuple[TradeDirection, TradeDirection] = ("LONG", "SHORT")


def validate_direction(direction: str) -> TradeDirection:
    """Return *direction* if it is LONG or SHORT, else raise ``ValueError``."""
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be 'LONG' or 'SHORT', got '{direction}'")
    return direction  # type: ignore[return-value]


def direction_bias(direction: TradeDirection) -> str:
    """Market bias that favours *direction* (LONG ↔ BULLISH)."""
    return "BULLISH" if direction == "LONG" else "BEARISH"


@dataclass(frozen=True)
class EntryZone:
    top: float
    bottom: float
    optimal: float


@dataclass(frozen=True)
class Target:
    price: float
    risk_reward: float
    label: str = ""


@dataclass(frozen=True)
class SetupCandidate:
    """A strategy's raw proposal, before geometry correction and scoring."""

    strategy: str
    direction: TradeDirection
    entry_zone: EntryZone
    stop_loss: float
    targets: list[Target]
    rationale: str = ""


@dataclass(frozen=True)
class TradeSetup:
    """A corrected, scored and labelled setup."""

    label: str  # A-D by rank
    strategy: str
    direction: TradeDirection
    entry_zone: EntryZone
    stop_loss: float
    targets: list[Target]
    suitability: float
    quant_score: float
    rationale: str = ""
    corrections: list[str] = field(default_factory=list)
