"""Tests for the engine — obligations, probabilities, decay, regime
transition, trap zones, roadmap and prediction."""

import pytest

from confluence.analysis.models import (
    NEUTRAL_VOLUME,
    Candle,
    ConsolidationZone,
    Imbalance,
    LiquidityPool,
    StructureMarker,
    VolumeAnalysis,
)
from confluence.engine.obligations import (
    OBLIGATED_URGENCY,
    Obligation,
    ObligationState,
    calculate_obligations,
    is_obligated,
    score_imbalance,
    score_pool,
)
from confluence.engine.prediction import predict
from confluence.engine.probability import (
    Probabilities,
    apply_confidence_decay,
    calculate_consolidation,
    calculate_continuation,
    calculate_probabilities,
    decay_probabilities,
    get_weights,
)
from confluence.engine.roadmap import build_roadmap, project_liquidity_targets
from confluence.engine.transition import (
    Divergence,
    calculate_range_exhaustion,
    calculate_transition_probability,
    detect_momentum_divergence,
    detect_volatility_compression,
    track_failed_patterns,
)
from confluence.engine.traps import (
    TrapPattern,
    detect_failed_breakouts,
    detect_failed_fvg,
    detect_fake_trend_continuation,
    near_trap_zone,
    summarize_trap_zones,
)
from confluence.strategy.models import EntryZone, Target, TradeSetup


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(time=1_700_000_000 + i * 3600, open=o, high=h, low=l, close=c, volume=vol)


def _pool(
    price: float,
    side: str,
    equal: bool = False,
    age: int = 10,
    swept: bool = False,
    touches: int = 1,
    strength: str = "MEDIUM",
) -> LiquidityPool:
    return LiquidityPool(
        price=price,
        side=side,
        strength=strength,
        pool_type="STOP_POOL",
        is_equal_level=equal,
        touches=touches,
        age=age,
        index=0,
        swept=swept,
        swept_index=5 if swept else None,
    )


def _gap(top: float, bottom: float, kind: str = "BULLISH", index: int = 95, mitigated: bool = False) -> Imbalance:
    return Imbalance(top=top, bottom=bottom, type=kind, index=index, time=0, mitigated=mitigated)


def _marker(kind: str, index: int, direction: str = "BULLISH", failed: bool = False, price: float = 100.0) -> StructureMarker:
    return StructureMarker(
        marker_type=kind,
        price=price,
        time=1_700_000_000 + index * 3600,
        index=index,
        direction=direction,
        significance="MEDIUM",
        failed=failed,
    )


def _obligated(direction: str = "BULLISH", urgency: float = 95.0, kind: str = "BUY_SIDE_LIQUIDITY") -> ObligationState:
    primary = Obligation(type=kind, price=101.0, urgency=urgency, source=_pool(101.0, "BUY_SIDE"), direction=direction)
    state = "OBLIGATED" if is_obligated(urgency) else "FREE_ROAMING"
    return ObligationState(state=state, obligations=[primary], primary=primary)


# ── Obligations ──────────────────────────────────────────────────────────


class TestObligations:
    def test_threshold_is_strict(self):
        assert is_obligated(OBLIGATED_URGENCY) is False
        assert is_obligated(OBLIGATED_URGENCY + 0.1) is True

    def test_engineered_pool_near_price_is_obligated(self):
        pools = [_pool(100.3, "BUY_SIDE", equal=True)]
        state = calculate_obligations(100.0, pools, [], "BULLISH", last_index=99)
        assert state.state == "OBLIGATED"
        assert state.is_obligated is True
        assert state.primary.type == "BUY_SIDE_LIQUIDITY"
        assert state.primary.direction == "BULLISH"
        assert state.primary.urgency == 100.0

    def test_far_plain_pool_is_ignored(self):
        pools = [_pool(90.0, "SELL_SIDE")]
        state = calculate_obligations(100.0, pools, [], "NEUTRAL", last_index=99)
        assert state.state == "FREE_ROAMING"
        assert state.primary is None
        assert state.obligations == []

    def test_swept_and_wrong_side_pools_are_skipped(self):
        pools = [
            _pool(100.3, "BUY_SIDE", equal=True, swept=True),
            _pool(99.7, "BUY_SIDE", equal=True),
        ]
        assert calculate_obligations(100.0, pools, [], "BULLISH", last_index=99).obligations == []

    def test_pool_score_components(self):
        pool = _pool(100.3, "SELL_SIDE", equal=False, age=60)
        # 50 base + 25 near + 5 age - 15 against trend
        assert score_pool(pool, 100.0, "BULLISH") == 65.0
        assert score_pool(pool, 100.0, "BULLISH", volume_nodes=[100.3]) == 85.0
        assert score_pool(pool, 100.0, "BULLISH", opposite_swept_recently=True) == 95.0

    def test_pool_score_is_clamped(self):
        pool = _pool(100.1, "BUY_SIDE", equal=True, age=300)
        assert score_pool(pool, 100.0, "BULLISH", True, [100.1]) == 100.0

    def test_neutral_trend_counts_against_pool(self):
        pool = _pool(101.0, "BUY_SIDE")
        # 50 base + 10 within 2% - 15 without a supporting trend
        assert score_pool(pool, 100.0, "NEUTRAL") == 45.0
        assert score_pool(pool, 100.0, "BULLISH") == 75.0
        assert calculate_obligations(100.0, [pool], [], "NEUTRAL", last_index=99).obligations == []

    def test_obligation_carries_its_zone(self):
        pool = _pool(100.3, "BUY_SIDE", equal=True)
        gap = _gap(100.4, 100.2)
        state = calculate_obligations(100.0, [pool], [gap], "BULLISH", last_index=100)
        sources = {o.type: o.source for o in state.obligations}
        assert sources["BUY_SIDE_LIQUIDITY"] is pool
        assert sources["BULLISH_IMBALANCE"] is gap

    def test_imbalance_urgency_capped_at_90(self):
        gap = _gap(100.4, 100.2)
        assert score_imbalance(gap, 100.0, "BULLISH", last_index=100) == 90.0

    def test_mitigated_imbalance_skipped(self):
        gaps = [_gap(100.4, 100.2, mitigated=True)]
        assert calculate_obligations(100.0, [], gaps, "BULLISH", last_index=100).obligations == []

    def test_sorted_by_urgency(self):
        pools = [_pool(100.3, "BUY_SIDE", equal=True), _pool(99.6, "SELL_SIDE", age=60)]
        state = calculate_obligations(100.0, pools, [_gap(100.4, 100.2)], "BULLISH", last_index=100)
        urgencies = [o.urgency for o in state.obligations]
        assert urgencies == sorted(urgencies, reverse=True)
        assert state.primary is state.obligations[0]


# ── Probabilities ────────────────────────────────────────────────────────


class TestProbabilities:
    def test_default_continuation(self):
        weights = get_weights("UNKNOWN", "MODERATE")
        # 0.5*30 + 0.5*20 + 0 structure + 0.4*20 volume
        p = calculate_continuation(weights, "BULLISH", "NEUTRAL", [], NEUTRAL_VOLUME, ObligationState())
        assert p == 33.0

    def test_trending_weights_reward_alignment(self):
        weights = get_weights("TRENDING", "MODERATE")
        markers = [_marker("BOS", i) for i in range(3)]
        p = calculate_continuation(weights, "BULLISH", "BULLISH", markers, NEUTRAL_VOLUME, ObligationState())
        # 12.5 + 35 + 18.75 + 6
        assert p == 72.0

    def test_high_volatility_adjusts_weights(self):
        weights = get_weights("TRENDING", "HIGH")
        assert weights.bayesian == 40
        assert weights.traps == 30
        assert weights.htf == 30

    def test_consolidation(self):
        assert calculate_consolidation("RANGING", "LOW") == 80.0
        assert calculate_consolidation("TRENDING", "HIGH") == 0.0

    def test_liquidity_run_uses_primary_urgency(self):
        probs = calculate_probabilities(
            "TRENDING", "MODERATE", "BULLISH", "BULLISH", [], 100.0, [], None,
            NEUTRAL_VOLUME, _obligated(urgency=92.0),
        )
        assert probs.liquidity_run == 92.0
        assert probs.liquidity_target == 101.0

    def test_liquidity_run_zero_for_imbalance(self):
        probs = calculate_probabilities(
            "TRENDING", "MODERATE", "BULLISH", "BULLISH", [], 100.0, [], None,
            NEUTRAL_VOLUME, _obligated(urgency=90.0, kind="BULLISH_IMBALANCE"),
        )
        assert probs.liquidity_run == 0.0
        assert probs.liquidity_target is None

    def test_opposing_obligation_raises_reversal(self):
        base = calculate_probabilities(
            "RANGING", "MODERATE", "BULLISH", "NEUTRAL", [], 100.0, [], None,
            NEUTRAL_VOLUME, ObligationState(),
        )
        opposed = calculate_probabilities(
            "RANGING", "MODERATE", "BULLISH", "NEUTRAL", [], 100.0, [], None,
            NEUTRAL_VOLUME, _obligated(direction="BEARISH", kind="SELL_SIDE_LIQUIDITY"),
        )
        assert opposed.reversal == base.reversal + 20

    @pytest.mark.parametrize("regime", ["TRENDING", "RANGING", "TRANSITIONAL", "UNKNOWN"])
    @pytest.mark.parametrize("vol", ["LOW", "MODERATE", "HIGH"])
    def test_bounded(self, regime, vol):
        spike = VolumeAnalysis(relative_volume=3.0, is_institutional=True, type="INSTITUTIONAL_SPIKE",
                               sub_type="CLIMAX", score=100)
        probs = calculate_probabilities(
            regime, vol, "BULLISH", "BULLISH", [_marker("BOS", i) for i in range(6)], 100.0,
            [_pool(100.05, "BUY_SIDE", touches=3)], None, spike,
            _obligated(direction="BEARISH"), divergence=True,
        )
        for value in (probs.continuation, probs.reversal, probs.liquidity_run, probs.consolidation):
            assert 0 <= value <= 100


class TestConfidenceDecay:
    def test_zero_age_is_identity(self):
        assert apply_confidence_decay(73.0, 0) == 73.0

    def test_half_life_halves(self):
        assert apply_confidence_decay(80.0, 4.0) == pytest.approx(40.0)
        assert apply_confidence_decay(80.0, 8.0, half_life_hours=8.0) == pytest.approx(40.0)

    def test_monotonically_non_increasing(self):
        ages = [0, 0.5, 1, 2, 4, 8, 16, 48]
        values = [apply_confidence_decay(90.0, t) for t in ages]
        assert all(a >= b for a, b in zip(values, values[1:]))

    def test_negative_age_unchanged(self):
        assert apply_confidence_decay(50.0, -3) == 50.0

    def test_decay_probabilities_keeps_target(self):
        probs = Probabilities(continuation=60, reversal=20, liquidity_run=80, consolidation=10, liquidity_target=1.2)
        decayed = decay_probabilities(probs, 4.0, 4.0)
        assert decayed.continuation == pytest.approx(30.0)
        assert decayed.liquidity_run == pytest.approx(40.0)
        assert decayed.liquidity_target == 1.2


# ── Regime transition ────────────────────────────────────────────────────


def _zone(start_time: int, active: bool = True) -> ConsolidationZone:
    return ConsolidationZone(
        top=101.0, bottom=99.0, start_index=0, end_index=10,
        start_time=start_time, end_time=start_time + 36_000,
        classification="PAUSE", breakout_bias="NEUTRAL", fakeout_risk="LOW",
        strength=0.5, active=active,
    )


class TestRegimeTransition:
    def test_failure_rate_needs_five_markers(self):
        stats = track_failed_patterns([_marker("BOS", 1, failed=True)])
        assert stats.total_bos == 0
        assert stats.is_anomalous is False

    def test_failed_breaks_are_anomalous(self):
        markers = [_marker("HH", 1), _marker("HL", 2), _marker("HH", 3),
                   _marker("BOS", 4, failed=True), _marker("BOS", 5, failed=True)]
        stats = track_failed_patterns(markers)
        assert stats.failed_bos == 2
        assert stats.failure_rate == 100
        assert stats.is_anomalous is True

    def test_range_exhaustion_by_timeframe(self):
        zones = [_zone(0)]
        assert calculate_range_exhaustion(zones, 50 * 3600, "1h").exhausted is True
        assert calculate_range_exhaustion(zones, 50 * 3600, "4h").exhausted is False
        assert calculate_range_exhaustion([], 50 * 3600, "1h").hours_in_range == 0.0

    def test_flat_candles_are_not_compressed(self):
        candles = [_make_candle(i, 100, 100, 100, 100) for i in range(60)]
        compression = detect_volatility_compression(candles)
        assert compression.compressed is False
        assert compression.squeeze is True

    def test_probability_and_expected_regime(self):
        candles = [_make_candle(i, 100, 100, 100, 100) for i in range(60)]
        markers = [_marker("HH", 1), _marker("HL", 2), _marker("HH", 3),
                   _marker("BOS", 4, failed=True), _marker("BOS", 5, failed=True)]
        zones = [_zone(candles[0].time)]
        quiet = calculate_transition_probability(
            candles, "RANGING", markers, zones, "1h", divergence=Divergence(detected=False),
        )
        assert quiet.probability == 45.0
        assert quiet.expected_regime == "RANGING"

        loud = calculate_transition_probability(
            candles, "RANGING", markers, zones, "1h",
            divergence=Divergence(detected=True, type="BEARISH", confidence=0.75),
        )
        assert loud.probability == 70.0
        assert loud.expected_regime == "TRENDING"
        assert loud.is_imminent is False
        assert len(loud.triggers) == 3


def _flat(n: int = 30) -> list[Candle]:
    return [_make_candle(i, 100, 101, 99, 100) for i in range(n)]


class TestMomentumDivergence:
    def test_higher_high_with_neutral_rsi_is_bearish(self):
        candles = _flat()
        candles[10] = _make_candle(10, 100, 102, 99, 100)
        candles[20] = _make_candle(20, 100, 103, 99, 100)
        div = detect_momentum_divergence(candles)
        assert div.detected is True
        assert div.type == "BEARISH"
        assert div.confidence == 0.75

    def test_lower_low_with_neutral_rsi_is_bullish(self):
        candles = _flat()
        candles[10] = _make_candle(10, 100, 101, 98, 100)
        candles[20] = _make_candle(20, 100, 101, 97, 100)
        div = detect_momentum_divergence(candles)
        assert div.detected is True
        assert div.type == "BULLISH"

    def test_higher_low_is_not_divergence(self):
        candles = _flat()
        candles[10] = _make_candle(10, 100, 101, 98, 100)
        candles[20] = _make_candle(20, 100, 101, 98.5, 100)
        assert detect_momentum_divergence(candles).detected is False

    def test_short_input(self):
        assert detect_momentum_divergence(_flat(29)) == Divergence(detected=False)


# ── Traps ────────────────────────────────────────────────────────────────


def _trap(location: float, implication: str = "BULL_TRAP", time: int = 0) -> TrapPattern:
    return TrapPattern(kind="FAILED_BREAKOUT", location=location, implication=implication,
                       confidence=0.75, time=time, reason="test")


class TestTraps:
    def test_failed_bos_is_trap(self):
        traps = detect_failed_breakouts([_marker("BOS", 4, failed=True, price=105.0), _marker("BOS", 6)])
        assert len(traps) == 1
        assert traps[0].implication == "BULL_TRAP"
        assert traps[0].location == 105.0

    def test_summary_warns_from_three(self):
        summary = summarize_trap_zones([_trap(1.0, time=1), _trap(2.0, "BEAR_TRAP", time=2), _trap(3.0, time=3)])
        assert summary.count == 3
        assert summary.bull_traps == 2
        assert summary.bear_traps == 1
        assert summary.warning is not None
        assert summary.most_recent.location == 3.0

    def test_empty_summary(self):
        summary = summarize_trap_zones([])
        assert summary.count == 0
        assert summary.warning is None

    def test_near_trap_zone(self):
        traps = [_trap(100.0)]
        assert near_trap_zone(100.1, traps) is traps[0]
        assert near_trap_zone(101.0, traps) is None

    def _gap_touch(self, closes_after: tuple) -> list[Candle]:
        candles = [_make_candle(i, 103, 103.5, 102.5, 103) for i in range(10)]
        candles.append(_make_candle(10, 101.5, 101.5, 99.8, 100.8))
        for k, c in enumerate(closes_after):
            candles.append(_make_candle(11 + k, c, c + 0.1, c - 0.1, c))
        return candles

    def test_rejected_gap_is_bull_trap(self):
        candles = self._gap_touch((100.6, 100.4, 100.2, 100.5, 100.5))
        traps = detect_failed_fvg(candles, [_gap(101.0, 99.0)])
        assert len(traps) == 1
        assert traps[0].kind == "FAILED_FVG"
        assert traps[0].implication == "BULL_TRAP"
        assert traps[0].location == 100.0
        assert traps[0].time == candles[10].time

    def test_gap_that_holds_is_not_a_trap(self):
        candles = self._gap_touch((101.0, 101.2, 101.4, 101.5))
        assert detect_failed_fvg(candles, [_gap(101.0, 99.0)]) == []

    def test_touch_needs_three_closes_after(self):
        candles = self._gap_touch((100.6, 100.4))
        assert detect_failed_fvg(candles, [_gap(101.0, 99.0)]) == []

    def test_fake_higher_high(self):
        candles = [_make_candle(i, 100, 101, 99, 100) for i in range(30)]
        candles[15] = _make_candle(15, 100.5, 105, 100, 104)
        for i in (16, 17, 18):
            candles[i] = _make_candle(i, 100, 101, 99, 99.5)
        traps = detect_fake_trend_continuation(candles)
        assert len(traps) == 1
        assert traps[0].kind == "FAKE_TREND_CONTINUATION"
        assert traps[0].implication == "BULL_TRAP"
        assert traps[0].location == 105
        assert traps[0].time == candles[15].time

    def test_sustained_high_is_not_fake(self):
        candles = [_make_candle(i, 100, 101, 99, 100) for i in range(30)]
        candles[15] = _make_candle(15, 100.5, 105, 100, 104)
        candles[16] = _make_candle(16, 104, 105.2, 99, 99.5)
        for i in (17, 18):
            candles[i] = _make_candle(i, 100, 101, 99, 99.5)
        assert [t for t in detect_fake_trend_continuation(candles) if t.location == 105] == []

    def test_fake_continuation_short_input(self):
        assert detect_fake_trend_continuation([_make_candle(i, 100, 101, 99, 100) for i in range(29)]) == []


# ── Roadmap ──────────────────────────────────────────────────────────────


class TestRoadmap:
    def _pools(self) -> list[LiquidityPool]:
        return [
            _pool(101.0, "BUY_SIDE", strength="HIGH"),
            _pool(103.0, "BUY_SIDE"),
            _pool(110.0, "BUY_SIDE", strength="HIGH"),
            _pool(98.0, "SELL_SIDE"),
            _pool(102.0, "BUY_SIDE", swept=True),
        ]

    def test_bullish_targets_in_sequence(self):
        targets = project_liquidity_targets(100.0, self._pools(), "BULLISH")
        assert [t.price for t in targets] == [101.0, 103.0, 110.0]
        assert [t.sequence for t in targets] == [1, 2, 3]
        assert [t.probability for t in targets] == [80.0, 55.0, 30.0]

    def test_neutral_takes_nearest_each_side(self):
        targets = project_liquidity_targets(100.0, self._pools(), "NEUTRAL")
        assert [t.price for t in targets] == [101.0, 98.0]

    def test_roadmap_paths_and_summary(self):
        roadmap = build_roadmap(100.0, self._pools(), "BEARISH", mtf_aligned=True)
        assert roadmap.primary.price == 98.0
        assert roadmap.primary.probability == 85.0
        assert len(roadmap.paths) == 1
        assert "sell side" in roadmap.summary

    def test_empty_roadmap(self):
        roadmap = build_roadmap(100.0, [], "BULLISH")
        assert roadmap.primary is None
        assert roadmap.paths == []


# ── Prediction ───────────────────────────────────────────────────────────


def _setup(direction: str = "LONG") -> TradeSetup:
    return TradeSetup(
        label="A", strategy="order_block", direction=direction,
        entry_zone=EntryZone(top=100.2, bottom=99.8, optimal=100.0),
        stop_loss=99.0 if direction == "LONG" else 101.0,
        targets=[Target(price=105.0 if direction == "LONG" else 95.0, risk_reward=5.0)],
        suitability=0.8, quant_score=70.0,
    )


def _probs(continuation=0.0, reversal=0.0, consolidation=0.0) -> Probabilities:
    return Probabilities(continuation=continuation, reversal=reversal, liquidity_run=0.0, consolidation=consolidation)


class TestPrediction:
    def test_cooldown_overrides(self):
        p = predict(_probs(continuation=90), "BULLISH", "BULLISH", 100.0, [_setup()], [], NEUTRAL_VOLUME, [],
                    cooldown_reason="2 consecutive failed predictions")
        assert p.bias == "WAIT_COOLDOWN"
        assert p.target is None

    def test_consolidation_is_neutral(self):
        p = predict(_probs(continuation=70, consolidation=80), "BULLISH", "NEUTRAL", 100.0, [], [], NEUTRAL_VOLUME, [])
        assert p.bias == "NEUTRAL"

    def test_continuation_uses_aligned_setup(self):
        p = predict(_probs(continuation=70), "BULLISH", "BULLISH", 100.0,
                    [_setup("SHORT"), _setup("LONG")], [], NEUTRAL_VOLUME, [])
        assert p.bias == "BULLISH"
        assert p.target == 105.0
        assert p.invalidation == 99.0
        assert p.confidence == 80.0

    def test_reversal_falls_back_to_pool(self):
        pools = [_pool(97.0, "SELL_SIDE"), _pool(98.0, "SELL_SIDE"), _pool(103.0, "BUY_SIDE")]
        p = predict(_probs(continuation=40, reversal=70), "BULLISH", "NEUTRAL", 100.0, [], pools, NEUTRAL_VOLUME, [])
        assert p.bias == "BEARISH"
        assert p.target == 98.0
        assert p.invalidation is None

    def test_no_edge(self):
        p = predict(_probs(continuation=50, reversal=50), "BULLISH", "NEUTRAL", 100.0, [], [], NEUTRAL_VOLUME, [])
        assert p.bias == "NO_EDGE"

    def test_neutral_trend_has_no_edge(self):
        p = predict(_probs(continuation=90), "NEUTRAL", "NEUTRAL", 100.0, [], [], NEUTRAL_VOLUME, [])
        assert p.bias == "NO_EDGE"

    def test_trap_penalty(self):
        clean = predict(_probs(continuation=70), "BULLISH", "NEUTRAL", 100.0, [], [], NEUTRAL_VOLUME, [])
        trapped = predict(_probs(continuation=70), "BULLISH", "NEUTRAL", 100.0, [], [], NEUTRAL_VOLUME,
                          [_trap(100.05)])
        assert trapped.confidence == clean.confidence - 15
        assert "bull trap" in trapped.reason
