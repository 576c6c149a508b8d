"""Analysis data models — typed representations of candles, structure and zones."""

from dataclasses import dataclass
from typing import Literal, Optional

Direction = Literal["BULLISH", "BEARISH"]
Bias = Literal["BULLISH", "BEARISH", "NEUTRAL"]
Side = Literal["BUY_SIDE", "SELL_SIDE"]
Significance = Literal["LOW", "MEDIUM", "HIGH"]
MarkerType = Literal["HH", "HL", "LH", "LL", "BOS", "CHOCH"]


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar.  ``time`` is a UTC epoch timestamp in seconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def range(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class SwingPoint:
    """A fractal pivot high or low."""

    index: int
    time: int
    price: float
    kind: Literal["HIGH", "LOW"]


@dataclass(frozen=True)
class StructureMarker:
    """A labelled structural event.

    ``index`` is the candle index at which the event is confirmed: the swing
    candle for HH/HL/LH/LL, the breaking candle for BOS, and the violating
    event for CHOCH.  ``price`` is always a pivot level, never synthetic.
    """

    marker_type: MarkerType
    price: float
    time: int
    index: int
    direction: Direction
    significance: Significance
    failed: bool = False  # BOS only: close returned beyond the pivot


@dataclass(frozen=True)
class LiquidityPool:
    """Resting stop liquidity above highs (buy-side) or below lows (sell-side)."""

    price: float
    side: Side
    strength: Significance
    pool_type: Literal["INSTITUTIONAL_POOL", "STOP_POOL", "INDUCEMENT"]
    is_equal_level: bool
    touches: int
    age: int  # candles since the first touch
    index: int  # candle index of the latest touch
    swept: bool = False
    swept_index: Optional[int] = None


@dataclass(frozen=True)
class LiquiditySweep:
    """A wick through a pool that closed back on the originating side."""

    side: Side
    level: float
    index: int
    time: int
    relative_depth: float
    volume_surge: bool


@dataclass(frozen=True)
class Imbalance:
    """A three-candle fair value gap; ``top`` is always above ``bottom``."""

    top: float
    bottom: float
    type: Direction
    index: int  # middle candle of the three
    time: int
    mitigated: bool = False
    mitigated_index: Optional[int] = None
    quality: float = 0.0

    @property
    def midpoint(self) -> float:
        return (self.top + self.bottom) / 2

    @property
    def size(self) -> float:
        return self.top - self.bottom


@dataclass(frozen=True)
class OrderBlock:
    """Last opposite-coloured candle before an impulsive displacement."""

    top: float
    bottom: float
    kind: Literal["DEMAND", "SUPPLY"]
    index: int
    time: int
    displacement: float  # move size in ATR multiples
    strength: Literal["EXCEPTIONAL", "STRONG", "MODERATE"]
    fresh: bool  # price has not returned into the block since the move
    broken_index: Optional[int] = None

    @property
    def midpoint(self) -> float:
        return (self.top + self.bottom) / 2


@dataclass(frozen=True)
class Breaker:
    """An order block closed through, expected to flip polarity on retest."""

    top: float
    bottom: float
    direction: Direction  # polarity after the flip
    index: int  # original order block candle
    break_index: int
    time: int


@dataclass(frozen=True)
class ConsolidationZone:
    """A tight sideways range."""

    top: float
    bottom: float
    start_index: int
    end_index: int
    start_time: int
    end_time: int
    classification: Literal["ACCUMULATION", "DISTRIBUTION", "PAUSE"]
    breakout_bias: Bias
    fakeout_risk: Literal["HIGH", "LOW"]
    strength: float
    active: bool = False


@dataclass(frozen=True)
class TradingRange:
    """Wyckoff trading range bounds over the recent window."""

    support: float
    resistance: float
    start_time: int
    end_time: int

    @property
    def height(self) -> float:
        return self.resistance - self.support


@dataclass(frozen=True)
class RangeEvent:
    """A Wyckoff range event: spring, UTAD, selling or buying climax."""

    kind: Literal["SPRING", "UTAD", "SELLING_CLIMAX", "BUYING_CLIMAX"]
    price: float
    index: int
    time: int
    volume: float = 0.0


@dataclass(frozen=True)
class VolumeAnalysis:
    """Relative-volume footprint of the latest candle."""

    relative_volume: float
    is_institutional: bool
    type: Literal["NORMAL", "ABOVE_AVERAGE", "SIGNIFICANT", "INSTITUTIONAL_SPIKE", "NEUTRAL"]
    sub_type: Literal["PARTICIPATION", "ABSORPTION", "CLIMAX"]
    score: int


NEUTRAL_VOLUME = VolumeAnalysis(
    relative_volume=1.0,
    is_institutional=False,
    type="NEUTRAL",
    sub_type="PARTICIPATION",
    score=0,
)
