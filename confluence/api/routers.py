"""HTTP routers — /analyze endpoint.

No analysis logic here.  Parses the request, delegates to the shared
``Analyzer`` and serialises the result.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter

from confluence.analysis.models import Candle
from confluence.config import load_config
from confluence.models.market_state import AnalysisResult
from confluence.orchestrator import AnalysisOptions, Analyzer, InsufficientDataError, build_analyzer

logger = logging.getLogger("confluence.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_analyzer: Optional[Analyzer] = None  # Set via configure_routers()


def configure_routers(analyzer: Optional[Analyzer]) -> None:
    """Inject the analyzer shared by every request (None resets it)."""
    global _analyzer  # noqa: PLW0603
    _analyzer = analyzer


def _get_analyzer() -> Analyzer:
    global _analyzer  # noqa: PLW0603
    if _analyzer is None:
        _analyzer = build_analyzer(load_config())
    return _analyzer


def parse_candles(raw: list) -> list[Candle]:
    """Build candles from ``[{"time", "open", "high", "low", "close", "volume"}]``.

    Raises ``ValueError`` when *raw* is not a list or an entry is malformed.
    """
    if not isinstance(raw, list):
        raise ValueError("candles must be a list of objects")
    candles: list[Candle] = []
    for i, item in enumerate(raw):
        try:
            candles.append(Candle(
                time=int(item["time"]),
                open=float(item["open"]),
                high=float(item["high"]),
                low=float(item["low"]),
                close=float(item["close"]),
                volume=float(item.get("volume", 0.0)),
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ValueError(f"candle {i} is malformed: {exc}") from None
    return candles


def serialize_result(result: AnalysisResult) -> dict:
    """JSON-ready view of an analysis result."""
    state = result.market_state
    return {
        "symbol": state.symbol,
        "timeframe": state.timeframe,
        "profile": state.profile,
        "asset_class": state.asset_class,
        "current_price": state.current_price,
        "regime": asdict(state.regime),
        "mtf_bias": state.mtf_bias,
        "killzone": state.killzone,
        "obligations": asdict(state.obligations),
        "probabilities": asdict(state.probabilities),
        "zones": {
            "pools": [asdict(p) for p in state.pools],
            "sweep": asdict(state.sweep) if state.sweep is not None else None,
            "imbalances": [asdict(i) for i in state.imbalances],
            "order_blocks": [asdict(b) for b in state.order_blocks],
            "breakers": [asdict(b) for b in state.breakers],
            "consolidations": [asdict(z) for z in state.consolidations],
        },
        "structures": [asdict(m) for m in result.structures],
        "setups": [asdict(s) for s in result.setups],
        "prediction": asdict(result.prediction),
        "regime_transition": asdict(result.regime_transition),
        "trap_zones": asdict(result.trap_zones),
        "roadmap": asdict(result.roadmap),
    }


@router.post("/analyze")
async def post_analyze(body: dict):
    """Analyse a candle buffer.

    Body: ``symbol``, ``timeframe``, ``candles`` and optionally
    ``context_candles``, ``evaluated_at`` and ``strategies``.
    """
    errors = []
    symbol = body.get("symbol")
    timeframe = body.get("timeframe")
    if not symbol:
        errors.append("symbol is required")
    elif not isinstance(symbol, str):
        errors.append("symbol must be a string")
    if not timeframe:
        errors.append("timeframe is required")
    elif not isinstance(timeframe, str):
        errors.append("timeframe must be a string")

    candles: list[Candle] = []
    context: Optional[list[Candle]] = None
    evaluated_at: Optional[int] = None
    try:
        candles = parse_candles(body.get("candles") or [])
        if body.get("context_candles"):
            context = parse_candles(body["context_candles"])
    except ValueError as exc:
        errors.append(str(exc))
    if body.get("evaluated_at") is not None:
        try:
            evaluated_at = int(body["evaluated_at"])
        except (TypeError, ValueError):
            errors.append("evaluated_at must be an epoch timestamp in seconds")
    strategies = body.get("strategies")
    if strategies is not None and (
        not isinstance(strategies, list) or not all(isinstance(s, str) for s in strategies)
    ):
        errors.append("strategies must be a list of strategy names")
    if errors:
        return {"status": "error", "errors": errors}

    options = AnalysisOptions(
        context_candles=context,
        evaluated_at=evaluated_at,
        strategies=strategies,
    )
    try:
        result = await _get_analyzer().analyze(candles, symbol, timeframe, options)
    except InsufficientDataError as exc:
        logger.info("Rejected analysis request: %s", exc)
        return {"status": "error", "errors": [str(exc)]}
    except KeyError as exc:
        return {"status": "error", "errors": [str(exc.args[0])]}

    return {"status": "ok", **serialize_result(result)}
