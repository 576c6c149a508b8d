"""Volume footprint — relative volume, institutional participation, volume nodes."""

import numpy as np

from confluence.analysis.indicators import calculate_range_atr
from confluence.analysis.models import NEUTRAL_VOLUME, Candle, VolumeAnalysis


def analyze_volume(candles: list[Candle], period: int = 20) -> VolumeAnalysis:
    """Classify the latest candle's volume against the prior *period* bars.

    Relative volume reads 1.0 when the average is zero.  Above 1.2 is
    ABOVE_AVERAGE, above 1.8 SIGNIFICANT (institutional), above 2.5 an
    INSTITUTIONAL_SPIKE.  Heavy volume on a narrow bar is ABSORPTION, on a
    wide bar CLIMAX.
    """
    if len(candles) < period + 1:
        return NEUTRAL_VOLUME

    last = candles[-1]
    prior = candles[-period - 1 : -1]
    avg_volume = sum(c.volume for c in prior) / period
    relative = last.volume / avg_volume if avg_volume > 0 else 1.0

    if relative > 2.5:
        vtype, score = "INSTITUTIONAL_SPIKE", 100
    elif relative > 1.8:
        vtype, score = "SIGNIFICANT", 75
    elif relative > 1.2:
        vtype, score = "ABOVE_AVERAGE", 50
    else:
        vtype, score = "NORMAL", 25

    atr = calculate_range_atr(candles[:-1], 14)
    sub_type = "PARTICIPATION"
    if relative > 2 and atr > 0:
        if last.range < 0.5 * atr:
            sub_type = "ABSORPTION"
        elif last.range > 2 * atr:
            sub_type = "CLIMAX"

    return VolumeAnalysis(
        relative_volume=round(relative, 2),
        is_institutional=relative > 1.8,
        type=vtype,
        sub_type=sub_type,
        score=score,
    )


def find_volume_nodes(candles: list[Candle], bins: int = 24) -> list[float]:
    """High-volume price nodes from a close-weighted volume histogram.

    Returns the centres of bins whose volume exceeds 1.5 × the mean bin
    volume, ordered by price.
    """
    if len(candles) < 2:
        return []
    closes = np.asarray([c.close for c in candles], dtype=float)
    volumes = np.asarray([c.volume for c in candles], dtype=float)
    if volumes.sum() <= 0 or closes.max() == closes.min():
        return []

    hist, edges = np.histogram(closes, bins=bins, weights=volumes)
    mean = hist.mean()
    centres = (edges[:-1] + edges[1:]) / 2
    return [float(centres[k]) for k in range(len(hist)) if hist[k] > 1.5 * mean]
