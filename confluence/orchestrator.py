"""Confluence — analysis orchestrator.

Runs the pipeline for one (symbol, timeframe) candle buffer:

    structure → regime → zones → obligations → probabilities
        → strategies → geometry guard → quant scoring → prediction

The analytic stages are synchronous and pure; only the enrichment fan-out
and the cooldown lookup await anything.  Each call builds its own
``MarketState``; the cooldown store is the only state shared between
calls.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from confluence.analysis.asset_class import detect_asset_class, get_asset_parameters
from confluence.analysis.consolidation import detect_consolidation
from confluence.analysis.imbalance import detect_imbalances
from confluence.analysis.indicators import safe_atr
from confluence.analysis.liquidity import detect_liquidity_pools, detect_liquidity_sweep
from confluence.analysis.models import Bias, Candle, RangeEvent
from confluence.analysis.order_blocks import detect_breakers, detect_order_blocks
from confluence.analysis.ranges import detect_range_formation, detect_spring, detect_utad, detect_volume_climax
from confluence.analysis.regime import detect_market_regime
from confluence.analysis.session import active_killzone, active_sessions
from confluence.analysis.structure import analyze_structure, check_fractal_alignment
from confluence.analysis.volume import analyze_volume, find_volume_nodes
from confluence.config import Config
from confluence.engine.confluence import rank_setups
from confluence.engine.obligations import calculate_obligations
from confluence.engine.prediction import predict
from confluence.engine.probability import calculate_probabilities, decay_probabilities
from confluence.engine.roadmap import build_roadmap
from confluence.engine.transition import calculate_transition_probability, detect_momentum_divergence
from confluence.engine.traps import detect_trap_patterns, summarize_trap_zones
from confluence.models.market_state import AnalysisResult, MarketState
from confluence.risk.setup_guard import enforce_setup_geometry
from confluence.services.cooldown import CooldownEntry, CooldownStore, OutcomeHistory
from confluence.services.enrichment import (
    Enrichment,
    EnrichmentSource,
    HttpEnrichmentService,
    gather_enrichment,
)
from confluence.strategy.base import StrategyProtocol
from confluence.strategy.registry import all_strategies, get_strategy
from confluence.strategy.selector import select_candidates

logger = logging.getLogger("confluence.orchestrator")

MIN_CANDLES = 50
CONTEXT_MIN_CANDLES = 20


class InsufficientDataError(ValueError):
    """The candle buffer cannot support an analysis run."""


@dataclass(frozen=True)
class AnalysisOptions:
    """Optional per-call context."""

    context_candles: Optional[list[Candle]] = None  # higher-timeframe buffer for MTF bias
    evaluated_at: Optional[int] = None  # epoch seconds; defaults to the last candle's time
    strategies: Optional[list[str]] = None  # registry keys; all when None


def trader_profile(timeframe: str) -> tuple[str, str]:
    """``(profile, context timeframe)`` for an analysis timeframe."""
    tf = timeframe.lower()
    if tf in ("1m", "5m", "15m"):
        return "SCALPER", "1h"
    if tf in ("4h", "1d", "1w"):
        return "SWING", "1w"
    return "DAY", "4h"


def validate_candles(candles: list[Candle], symbol: str) -> None:
    """Raise ``InsufficientDataError`` for a buffer the pipeline cannot use."""
    if len(candles) < MIN_CANDLES:
        raise InsufficientDataError(
            f"{symbol}: need at least {MIN_CANDLES} candles, got {len(candles)}"
        )
    last = candles[-1]
    prices = (last.open, last.high, last.low, last.close)
    if not all(math.isfinite(p) for p in prices) or last.high < last.low:
        raise InsufficientDataError(
            f"{symbol}: last candle is corrupted "
            f"(o={last.open}, h={last.high}, l={last.low}, c={last.close})"
        )
    if last.close <= 0:
        raise InsufficientDataError(f"{symbol}: current price must be positive, got {last.close}")


def _range_events(candles: list[Candle], trading_range) -> list[RangeEvent]:
    events = detect_volume_climax(candles)
    for event in (detect_spring(candles, trading_range), detect_utad(candles, trading_range)):
        if event is not None:
            events.append(event)
    return sorted(events, key=lambda e: e.index)


def build_market_state(
    candles: list[Candle],
    symbol: str,
    timeframe: str,
    context_candles: Optional[list[Candle]] = None,
    enrichment: Optional[Enrichment] = None,
    evaluated_at: Optional[int] = None,
    decay_half_life_hours: float = 4.0,
) -> MarketState:
    """Run the analytic stages and assemble the market state.

    Synchronous and side-effect free.  Raises ``InsufficientDataError``
    for unusable input.
    """
    validate_candles(candles, symbol)

    last = candles[-1]
    price = last.close
    last_index = len(candles) - 1
    asset_class = detect_asset_class(symbol)
    params = get_asset_parameters(asset_class, timeframe)
    profile, context_tf = trader_profile(timeframe)

    # ── Structure and regime ─────────────────────────────────────────────
    structure = analyze_structure(candles, params.swing_lookback, params.min_structure_move)
    regime = detect_market_regime(candles, structure.markers)
    logger.debug(
        "%s %s: %d swings, %d markers (%d BOS, %d CHOCH), regime %s",
        symbol, timeframe, len(structure.swings), len(structure.markers),
        len(structure.bos), len(structure.choch), regime.regime,
    )

    # ── Zones ────────────────────────────────────────────────────────────
    pools = detect_liquidity_pools(candles, structure.markers)
    sweep = detect_liquidity_sweep(candles, pools)
    imbalances = detect_imbalances(candles)
    order_blocks = detect_order_blocks(candles)
    breakers = detect_breakers(candles, order_blocks)
    consolidations = detect_consolidation(candles)
    trading_range = detect_range_formation(candles)
    volume = analyze_volume(candles)
    volume_nodes = find_volume_nodes(candles)
    logger.debug(
        "%s %s: %d pools, %d FVGs, %d order blocks, %d breakers, %d consolidations",
        symbol, timeframe, len(pools), len(imbalances), len(order_blocks),
        len(breakers), len(consolidations),
    )

    # ── Higher-timeframe context ─────────────────────────────────────────
    mtf_bias: Bias = "NEUTRAL"
    fractal = None
    if context_candles and len(context_candles) >= CONTEXT_MIN_CANDLES:
        htf = analyze_structure(context_candles, params.swing_lookback, params.min_structure_move)
        mtf_bias = htf.trend.direction
        fractal = check_fractal_alignment(structure.markers, htf.markers, mtf_bias)
        logger.debug("%s %s context: bias %s", symbol, context_tf, mtf_bias)

    state = MarketState(
        symbol=symbol,
        timeframe=timeframe,
        profile=profile,
        asset_class=asset_class,
        params=params,
        current_price=price,
        current_time=last.time,
        last_index=last_index,
        atr=safe_atr(candles),
        swings=structure.swings,
        markers=structure.markers,
        structure_bias=structure.trend,
        regime=regime,
        pools=pools,
        sweep=sweep,
        imbalances=imbalances,
        order_blocks=order_blocks,
        breakers=breakers,
        consolidations=consolidations,
        trading_range=trading_range,
        range_events=_range_events(candles, trading_range),
        volume=volume,
        volume_nodes=volume_nodes,
        killzone=active_killzone(last.time, params.killzones_active),
        sessions=active_sessions(last.time),
        mtf_bias=mtf_bias,
        fractal=fractal,
        enrichment=enrichment or Enrichment(),
    )

    # ── Engine ───────────────────────────────────────────────────────────
    state.obligations = calculate_obligations(
        price, pools, imbalances, state.trend.direction, last_index, volume_nodes,
    )
    state.divergence = detect_momentum_divergence(candles)
    probabilities = calculate_probabilities(
        regime.regime,
        regime.volatility.level,
        state.trend.direction,
        mtf_bias,
        structure.markers,
        price,
        pools,
        sweep,
        volume,
        state.obligations,
        divergence=state.divergence.detected,
    )
    if evaluated_at is not None:
        age_hours = (evaluated_at - last.time) / 3600
        probabilities = decay_probabilities(probabilities, age_hours, decay_half_life_hours)
    state.probabilities = probabilities
    state.traps = summarize_trap_zones(detect_trap_patterns(candles, structure.markers, imbalances))
    logger.debug(
        "%s %s: %s (%d obligations), continuation %.0f reversal %.0f, %d trap(s)",
        symbol, timeframe, state.obligations.state, len(state.obligations.obligations),
        probabilities.continuation, probabilities.reversal, state.traps.count,
    )
    return state


class Analyzer:
    """Async front door to the pipeline.

    Args:
        config: Application configuration.
        cooldowns: Process-wide cooldown store shared by every call.
        history: Optional outcome history used to start cooldowns.
        enrichment: Optional enrichment collaborators.
    """

    def __init__(
        self,
        config: Config,
        cooldowns: Optional[CooldownStore] = None,
        history: Optional[OutcomeHistory] = None,
        enrichment: Optional[EnrichmentSource] = None,
    ) -> None:
        self._config = config
        self._cooldowns = cooldowns or CooldownStore(hours=config.cooldown_hours)
        self._history = history
        self._enrichment = enrichment

    def _strategies(self, names: Optional[list[str]]) -> list[StrategyProtocol]:
        if names is None:
            return all_strategies()
        return [get_strategy(name) for name in names]

    async def _cooldown(self, symbol: str) -> Optional[CooldownEntry]:
        try:
            return await self._cooldowns.refresh(symbol, self._history)
        except Exception as exc:
            logger.warning("Outcome history for %s unavailable: %s", symbol, exc)
            return await self._cooldowns.active(symbol)

    async def analyze(
        self,
        candles: list[Candle],
        symbol: str,
        timeframe: str,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        """Analyse one candle buffer.

        Raises ``InsufficientDataError`` for unusable input and ``KeyError``
        for an unknown strategy name in *options*.
        """
        options = options or AnalysisOptions()
        validate_candles(candles, symbol)
        strategies = self._strategies(options.strategies)

        enrichment = await gather_enrichment(
            self._enrichment, symbol, self._config.enrichment_timeout_seconds,
        )
        cooldown = await self._cooldown(symbol)

        state = build_market_state(
            candles,
            symbol,
            timeframe,
            context_candles=options.context_candles,
            enrichment=enrichment,
            evaluated_at=options.evaluated_at,
            decay_half_life_hours=self._config.decay_half_life_hours,
        )

        scored = select_candidates(candles, state, strategies)
        guarded = [(enforce_setup_geometry(s.candidate), s.suitability) for s in scored]
        setups = rank_setups(guarded, state, self._config.min_quant_score, self._config.max_setups)
        logger.debug("%s %s: %d candidate(s), %d setup(s)", symbol, timeframe, len(scored), len(setups))

        prediction = predict(
            state.probabilities,
            state.trend.direction,
            state.mtf_bias,
            state.current_price,
            setups,
            state.pools,
            state.volume,
            state.traps.patterns,
            cooldown_reason=cooldown.reason if cooldown is not None else None,
        )
        transition = calculate_transition_probability(
            candles,
            state.regime.regime,
            state.markers,
            state.consolidations,
            timeframe,
            current_time=options.evaluated_at or state.current_time,
            divergence=state.divergence,
        )
        htf_bias = state.mtf_bias if state.mtf_bias != "NEUTRAL" else state.trend.direction
        roadmap = build_roadmap(state.current_price, state.pools, htf_bias, state.mtf_aligned)

        logger.info(
            "%s %s analysed: %s, %d setup(s), prediction %s",
            symbol, timeframe, state.regime.regime, len(setups), prediction.bias,
        )
        return AnalysisResult(
            market_state=state,
            structures=state.markers,
            setups=setups,
            prediction=prediction,
            regime_transition=transition,
            trap_zones=state.traps,
            roadmap=roadmap,
        )


def build_analyzer(config: Config, history: Optional[OutcomeHistory] = None) -> Analyzer:
    """Wire an ``Analyzer`` from configuration.  An unset enrichment URL
    leaves enrichment disabled."""
    enrichment = None
    if config.enrichment_url:
        enrichment = HttpEnrichmentService(config.enrichment_url, config.enrichment_timeout_seconds)
    return Analyzer(
        config,
        cooldowns=CooldownStore(hours=config.cooldown_hours),
        history=history,
        enrichment=enrichment,
    )
