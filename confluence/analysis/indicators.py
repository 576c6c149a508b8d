"""Technical indicators — ATR, RSI, OLS regression. Pure functions, no I/O."""

import math
from dataclasses import dataclass

import numpy as np

from confluence.analysis.models import Candle


def calculate_atr(candles: list[Candle], period: int = 14) -> float:
    """Calculate the Average True Range over *period* candles.

    Uses the standard True Range definition:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    Requires at least ``period + 1`` candles (need a previous close for TR).
    Returns the simple average of the last *period* true ranges.

    Raises ``ValueError`` if insufficient data.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for ATR({period}), "
            f"got {len(candles)}"
        )

    true_ranges: list[float] = []
    for i in range(len(candles) - period, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        tr = max(
            high - low,
            abs(high - prev_close),
            abs(low - prev_close),
        )
        true_ranges.append(tr)

    return sum(true_ranges) / len(true_ranges)


def safe_atr(candles: list[Candle], period: int = 14) -> float:
    """``calculate_atr`` that returns 0.0 instead of raising on short input."""
    if len(candles) < period + 1:
        return 0.0
    return calculate_atr(candles, period)


def calculate_range_atr(candles: list[Candle], period: int = 14) -> float:
    """Average high-low range of the last *period* candles.

    The gap-free variant used for volatility buckets and zone tolerances.
    Returns 0.0 when fewer than *period* candles are given.
    """
    if period <= 0 or len(candles) < period:
        return 0.0
    recent = candles[-period:]
    return sum(c.high - c.low for c in recent) / period


# ── RSI ──────────────────────────────────────────────────────────────────


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0 and avg_loss == 0:
        return 50.0
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(candles: list[Candle], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    A window with no movement at all reads 50.

    Requires at least ``period + 1`` candles.

    Returns a list the same length as *candles*.  Entries before the
    seed period are ``float('nan')``.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for RSI({period}), "
            f"got {len(candles)}"
        )

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [float("nan")] * len(candles)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


def latest_rsi(candles: list[Candle], period: int = 14) -> float:
    """Last RSI reading, or the neutral 50 when there is not enough data."""
    if len(candles) < period + 1:
        return 50.0
    return calculate_rsi(candles, period)[-1]


def window_rsi(closes: list[float]) -> float:
    """Unsmoothed RSI over a whole window of closes (neutral 50 when flat)."""
    gains = 0.0
    losses = 0.0
    for i in range(1, len(closes)):
        delta = closes[i] - closes[i - 1]
        if delta > 0:
            gains += delta
        else:
            losses -= delta
    return _rsi_from_avgs(gains, losses)


# ── Regression ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RegressionResult:
    """Least-squares fit of price against bar index."""

    slope: float  # price units per bar
    intercept: float
    r_squared: float
    mean: float

    @property
    def normalized_slope(self) -> float:
        """Slope as a fraction of the mean price per bar (scale-free)."""
        if self.mean == 0:
            return 0.0
        return self.slope / self.mean


def linear_regression(values: list[float]) -> RegressionResult:
    """Ordinary least-squares regression of *values* against their index.

    R² is 0.0 when the series has no variance (a perfectly flat series
    carries no trend information).  Fewer than two values give a flat fit.
    """
    n = len(values)
    if n == 0:
        return RegressionResult(slope=0.0, intercept=0.0, r_squared=0.0, mean=0.0)
    y = np.asarray(values, dtype=float)
    mean = float(y.mean())
    if n < 2:
        return RegressionResult(slope=0.0, intercept=mean, r_squared=0.0, mean=mean)

    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)

    ss_total = float(np.sum((y - mean) ** 2))
    if ss_total == 0:
        return RegressionResult(slope=0.0, intercept=mean, r_squared=0.0, mean=mean)
    predicted = slope * x + intercept
    ss_residual = float(np.sum((y - predicted) ** 2))
    r_squared = max(0.0, min(1.0, 1.0 - ss_residual / ss_total))

    return RegressionResult(
        slope=float(slope),
        intercept=float(intercept),
        r_squared=r_squared,
        mean=mean,
    )


def std_dev(values: list[float]) -> float:
    """Population standard deviation (0.0 for an empty list)."""
    if not values:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def percent_change(a: float, b: float) -> float:
    """Absolute move between two prices relative to the smaller one."""
    base = min(a, b)
    if base <= 0 or not math.isfinite(base):
        return 0.0
    return abs(a - b) / base
