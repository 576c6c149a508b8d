"""Tests for the analysis orchestrator — input validation, the full pipeline
and cooldown handling."""

import math

import pytest

from confluence.analysis.models import Candle
from confluence.config import Config
from confluence.models.market_state import AnalysisResult
from confluence.orchestrator import (
    AnalysisOptions,
    Analyzer,
    InsufficientDataError,
    build_analyzer,
    build_market_state,
    trader_profile,
    validate_candles,
)
from confluence.services.cooldown import CooldownStore


def _make_config(**overrides) -> Config:
    defaults = dict(
        market_data_url=None,
        enrichment_url=None,
        enrichment_timeout_seconds=0.5,
        cooldown_hours=4.0,
        decay_half_life_hours=4.0,
        min_quant_score=0.0,
        max_setups=4,
        log_level="INFO",
        api_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(time=1_700_000_000 + i * 3600, open=o, high=h, low=l, close=c, volume=vol)


def _rising_candles(n: int = 60) -> list[Candle]:
    candles = []
    for i in range(n):
        close = 100 + 0.5 * i
        high = close + 3 if i % 10 == 0 else close + 0.2
        low = close - 3 if i % 10 == 5 else close - 0.2
        candles.append(_make_candle(i, close - 0.1, high, low, close))
    return candles


class _History:
    def __init__(self, outcomes: list[str]) -> None:
        self.outcomes = outcomes

    async def recent_outcomes(self, symbol: str) -> list[str]:
        return self.outcomes


class _BrokenHistory:
    async def recent_outcomes(self, symbol: str) -> list[str]:
        raise RuntimeError("history store offline")


# ── Validation ───────────────────────────────────────────────────────────


class TestValidation:
    def test_too_few_candles(self):
        with pytest.raises(InsufficientDataError, match="EUR_USD"):
            validate_candles(_rising_candles(49), "EUR_USD")

    def test_non_positive_price(self):
        candles = _rising_candles()
        candles[-1] = _make_candle(59, 0.0, 0.0, 0.0, 0.0)
        with pytest.raises(InsufficientDataError, match="positive"):
            validate_candles(candles, "EUR_USD")

    def test_corrupted_last_candle(self):
        candles = _rising_candles()
        candles[-1] = _make_candle(59, 129.0, 128.0, 130.0, 129.5)
        with pytest.raises(InsufficientDataError, match="corrupted"):
            validate_candles(candles, "EUR_USD")

    def test_non_finite_last_candle(self):
        candles = _rising_candles()
        candles[-1] = _make_candle(59, 129.0, math.inf, 128.0, 129.5)
        with pytest.raises(InsufficientDataError):
            validate_candles(candles, "EUR_USD")

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_candles([], "EUR_USD")


class TestTraderProfile:
    @pytest.mark.parametrize(
        "timeframe, expected",
        [
            ("5m", ("SCALPER", "1h")),
            ("15M", ("SCALPER", "1h")),
            ("1h", ("DAY", "4h")),
            ("4h", ("SWING", "1w")),
            ("1d", ("SWING", "1w")),
        ],
    )
    def test_mapping(self, timeframe, expected):
        assert trader_profile(timeframe) == expected


# ── Market state ─────────────────────────────────────────────────────────


class TestBuildMarketState:
    def test_identity_fields(self):
        candles = _rising_candles()
        state = build_market_state(candles, "EUR_USD", "1h")
        assert state.current_price == 129.5
        assert state.last_index == 59
        assert state.asset_class == "FOREX"
        assert state.profile == "DAY"
        assert state.trend.direction == "BULLISH"

    def test_context_candles_set_mtf_bias(self):
        candles = _rising_candles()
        state = build_market_state(candles, "EUR_USD", "1h", context_candles=candles)
        assert state.mtf_bias == "BULLISH"
        assert state.fractal is not None

    def test_short_context_is_ignored(self):
        candles = _rising_candles()
        state = build_market_state(candles, "EUR_USD", "1h", context_candles=candles[:10])
        assert state.mtf_bias == "NEUTRAL"
        assert state.fractal is None

    def test_stale_evaluation_decays(self):
        candles = _rising_candles()
        fresh = build_market_state(candles, "EUR_USD", "1h")
        stale = build_market_state(candles, "EUR_USD", "1h", evaluated_at=candles[-1].time + 4 * 3600)
        assert stale.probabilities.continuation == pytest.approx(fresh.probabilities.continuation / 2)
        assert stale.probabilities.reversal == pytest.approx(fresh.probabilities.reversal / 2)

    def test_probabilities_bounded(self):
        state = build_market_state(_rising_candles(), "EUR_USD", "1h")
        probs = state.probabilities
        for value in (probs.continuation, probs.reversal, probs.liquidity_run, probs.consolidation):
            assert 0 <= value <= 100


# ── Analyzer ─────────────────────────────────────────────────────────────


class TestAnalyzer:
    @pytest.mark.asyncio
    async def test_full_run(self):
        analyzer = Analyzer(_make_config())
        result = await analyzer.analyze(_rising_candles(), "EUR_USD", "1h")
        assert isinstance(result, AnalysisResult)
        assert result.structures == result.market_state.markers
        assert len(result.setups) <= 4
        assert [s.label for s in result.setups] == ["A", "B", "C", "D"][: len(result.setups)]
        for setup in result.setups:
            assert 0 <= setup.quant_score <= 100
            entry = setup.entry_zone.optimal
            if setup.direction == "LONG":
                assert setup.stop_loss < entry
                assert all(t.price > entry for t in setup.targets)
            else:
                assert setup.stop_loss > entry
                assert all(t.price < entry for t in setup.targets)
            assert setup.targets[0].risk_reward >= 1.5
        assert 0 <= result.prediction.confidence <= 100
        assert 0 <= result.regime_transition.probability <= 100

    @pytest.mark.asyncio
    async def test_insufficient_data_raises(self):
        with pytest.raises(InsufficientDataError):
            await Analyzer(_make_config()).analyze(_rising_candles(20), "EUR_USD", "1h")

    @pytest.mark.asyncio
    async def test_unknown_strategy_raises(self):
        options = AnalysisOptions(strategies=["martingale"])
        with pytest.raises(KeyError):
            await Analyzer(_make_config()).analyze(_rising_candles(), "EUR_USD", "1h", options)

    @pytest.mark.asyncio
    async def test_strategy_subset(self):
        options = AnalysisOptions(strategies=["order_block"])
        result = await Analyzer(_make_config()).analyze(_rising_candles(), "EUR_USD", "1h", options)
        assert all(s.strategy == "order_block" for s in result.setups)

    @pytest.mark.asyncio
    async def test_failed_history_starts_cooldown(self):
        analyzer = Analyzer(_make_config(), history=_History(["FAIL", "FAIL"]))
        result = await analyzer.analyze(_rising_candles(), "EUR_USD", "1h")
        assert result.prediction.bias == "WAIT_COOLDOWN"
        assert result.prediction.confidence == 0.0

    @pytest.mark.asyncio
    async def test_cooldown_store_is_shared(self):
        store = CooldownStore(hours=4.0)
        await store.record_outcomes("EUR_USD", ["FAIL", "FAIL"])
        analyzer = Analyzer(_make_config(), cooldowns=store)
        cooled = await analyzer.analyze(_rising_candles(), "EUR_USD", "1h")
        other = await analyzer.analyze(_rising_candles(), "GBP_USD", "1h")
        assert cooled.prediction.bias == "WAIT_COOLDOWN"
        assert other.prediction.bias != "WAIT_COOLDOWN"

    @pytest.mark.asyncio
    async def test_history_failure_is_not_fatal(self):
        analyzer = Analyzer(_make_config(), history=_BrokenHistory())
        result = await analyzer.analyze(_rising_candles(), "EUR_USD", "1h")
        assert result.prediction.bias != "WAIT_COOLDOWN"

    def test_build_analyzer_without_enrichment(self):
        analyzer = build_analyzer(_make_config())
        assert analyzer._enrichment is None

    def test_build_analyzer_with_enrichment(self):
        analyzer = build_analyzer(_make_config(enrichment_url="http://enrich.local"))
        assert analyzer._enrichment is not None
