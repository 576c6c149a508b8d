"""Asset-class detection and per-class analysis parameters."""

import re
from dataclasses import dataclass

_CRYPTO_RE = re.compile(r"BTC|ETH|SOL|ADA|XRP|DOGE|MATIC|LINK|DOT|AVAX|BNB", re.IGNORECASE)
_METALS_RE = re.compile(r"XAU|XAG|GOLD|SILVER|PAXG", re.IGNORECASE)
_FOREX_RE = re.compile(r"EUR|GBP|USD|JPY|CHF|AUD|NZD|CAD")
_INDICES_RE = re.compile(r"SPX|NDX|DJI|DAX|FTSE|US30|US500|NAS100|GER40|UK100|JP225", re.IGNORECASE)

SCALPING_TIMEFRAMES = frozenset({"1m", "5m", "15m"})


@dataclass(frozen=True)
class AssetParameters:
    """Tuning knobs that depend on the traded instrument."""

    asset_class: str
    swing_lookback: int
    min_structure_move: float  # fractional move that separates swings
    stop_loss_multiplier: float  # ATR multiple for structural stop buffers
    killzones_active: bool


# (lookback, lookback floor, min move, stop multiplier, killzones)
_BASE_PARAMETERS: dict[str, tuple[int, int, float, float, bool]] = {
    "FOREX": (5, 3, 0.002, 1.5, True),
    "CRYPTO": (3, 2, 0.015, 2.5, False),
    "INDICES": (7, 4, 0.003, 2.0, False),
    "STOCKS": (5, 3, 0.008, 2.2, False),
    "METALS": (4, 2, 0.004, 2.0, True),
}


def detect_asset_class(symbol: str) -> str:
    """Classify *symbol* as CRYPTO, METALS, FOREX, INDICES or STOCKS.

    Metals and indices are checked before currencies so ``XAU_USD`` and
    ``NAS100_USD`` are not read as currency pairs.
    """
    if _CRYPTO_RE.search(symbol):
        return "CRYPTO"
    if _METALS_RE.search(symbol):
        return "METALS"
    if _INDICES_RE.search(symbol):
        return "INDICES"
    if _FOREX_RE.search(symbol):
        return "FOREX"
    return "STOCKS"


def get_asset_parameters(asset_class: str, timeframe: str = "1h") -> AssetParameters:
    """Return the analysis parameters for *asset_class* on *timeframe*.

    Scalping timeframes shrink the swing lookback and minimum structure
    move by 40% so intraday pivots are not filtered away.  Unknown classes
    fall back to FOREX.
    """
    lookback, floor, min_move, stop_mult, killzones = _BASE_PARAMETERS.get(
        asset_class, _BASE_PARAMETERS["FOREX"]
    )
    scale = 0.6 if timeframe.lower() in SCALPING_TIMEFRAMES else 1.0
    return AssetParameters(
        asset_class=asset_class if asset_class in _BASE_PARAMETERS else "FOREX",
        swing_lookback=max(floor, round(lookback * scale)),
        min_structure_move=min_move * scale,
        stop_loss_multiplier=stop_mult,
        killzones_active=killzones,
    )
