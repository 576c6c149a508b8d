"""Per-invocation market state and the analysis result.

``MarketState`` is built once per analysis run.  Required fields are set
at construction from the structural stages; the engine stages fill in
their outputs (obligations, probabilities, traps) as the run proceeds.
Nothing in it outlives the run.
"""

from dataclasses import dataclass, field
from typing import Optional

from confluence.analysis.asset_class import AssetParameters
from confluence.analysis.models import (
    NEUTRAL_VOLUME,
    Bias,
    Breaker,
    ConsolidationZone,
    Imbalance,
    LiquidityPool,
    LiquiditySweep,
    OrderBlock,
    RangeEvent,
    StructureMarker,
    SwingPoint,
    TradingRange,
    VolumeAnalysis,
)
from confluence.analysis.regime import MarketRegime, TrendState
from confluence.analysis.structure import FractalAlignment, TrendVote
from confluence.engine.obligations import ObligationState
from confluence.engine.prediction import Prediction
from confluence.engine.probability import NEUTRAL_PROBABILITIES, Probabilities
from confluence.engine.roadmap import Roadmap
from confluence.engine.transition import Divergence, RegimeTransition
from confluence.engine.traps import TrapSummary
from confluence.services.enrichment import Enrichment
from confluence.strategy.models import TradeSetup


@dataclass
class MarketState:
    # ── Identity ─────────────────────────────────────────────────────────
    symbol: str
    timeframe: str
    profile: str  # SCALPER, DAY or SWING
    asset_class: str
    params: AssetParameters
    current_price: float
    current_time: int
    last_index: int
    atr: float

    # ── Structure ────────────────────────────────────────────────────────
    swings: list[SwingPoint]
    markers: list[StructureMarker]
    structure_bias: TrendVote
    regime: MarketRegime

    # ── Zones ────────────────────────────────────────────────────────────
    pools: list[LiquidityPool] = field(default_factory=list)
    sweep: Optional[LiquiditySweep] = None
    imbalances: list[Imbalance] = field(default_factory=list)
    order_blocks: list[OrderBlock] = field(default_factory=list)
    breakers: list[Breaker] = field(default_factory=list)
    consolidations: list[ConsolidationZone] = field(default_factory=list)
    trading_range: Optional[TradingRange] = None
    range_events: list[RangeEvent] = field(default_factory=list)
    volume: VolumeAnalysis = NEUTRAL_VOLUME
    volume_nodes: list[float] = field(default_factory=list)

    # ── Context ──────────────────────────────────────────────────────────
    killzone: Optional[str] = None
    sessions: list[str] = field(default_factory=list)
    mtf_bias: Bias = "NEUTRAL"
    fractal: Optional[FractalAlignment] = None
    enrichment: Enrichment = field(default_factory=Enrichment)

    # ── Engine outputs ───────────────────────────────────────────────────
    obligations: ObligationState = field(default_factory=ObligationState)
    probabilities: Probabilities = NEUTRAL_PROBABILITIES
    divergence: Divergence = field(default_factory=lambda: Divergence(detected=False))
    traps: TrapSummary = field(default_factory=TrapSummary)

    @property
    def trend(self) -> TrendState:
        return self.regime.trend

    @property
    def bos(self) -> list[StructureMarker]:
        return [m for m in self.markers if m.marker_type == "BOS"]

    @property
    def choch(self) -> list[StructureMarker]:
        return [m for m in self.markers if m.marker_type == "CHOCH"]

    @property
    def mtf_aligned(self) -> bool:
        return self.mtf_bias != "NEUTRAL" and self.mtf_bias == self.trend.direction


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one ``analyze`` call produces."""

    market_state: MarketState
    structures: list[StructureMarker]
    setups: list[TradeSetup]
    prediction: Prediction
    regime_transition: RegimeTransition
    trap_zones: TrapSummary
    roadmap: Roadmap
