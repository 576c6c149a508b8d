"""Tests for confluence.analysis.regime — trend, volatility, cycle and cycle shifts."""

import pytest

from confluence.analysis.indicators import calculate_atr, linear_regression, safe_atr
from confluence.analysis.models import Candle, StructureMarker
from confluence.analysis.regime import (
    NO_SHIFT,
    classify_cycle,
    detect_market_regime,
    detect_regime_shift,
    measure_volatility,
)
from confluence.analysis.structure import analyze_structure


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


def _flat_candles(n: int = 200, price: float = 100.0) -> list[Candle]:
    return [_make_candle(i, price, price, price, price) for i in range(n)]


class TestRegression:
    def test_perfect_line(self):
        reg = linear_regression([1.0, 2.0, 3.0, 4.0])
        assert reg.slope == pytest.approx(1.0)
        assert reg.r_squared == pytest.approx(1.0)
        assert reg.normalized_slope == pytest.approx(1.0 / 2.5)

    def test_flat_series_has_no_fit(self):
        reg = linear_regression([5.0] * 10)
        assert reg.slope == 0.0
        assert reg.r_squared == 0.0

    def test_empty_series(self):
        assert linear_regression([]).normalized_slope == 0.0


class TestATR:
    def test_requires_period_plus_one(self):
        with pytest.raises(ValueError):
            calculate_atr(_flat_candles(10), period=14)

    def test_safe_atr_is_zero_on_short_input(self):
        assert safe_atr(_flat_candles(10)) == 0.0

    def test_flat_candles_have_zero_atr(self):
        assert calculate_atr(_flat_candles(30)) == 0.0


class TestMarketRegime:
    def test_flat_sequence_is_ranging(self):
        candles = _flat_candles()
        markers = analyze_structure(candles).markers
        regime = detect_market_regime(candles, markers)
        assert regime.regime == "RANGING"
        assert regime.trend.strength == 0.0
        assert regime.trend.direction == "NEUTRAL"
        assert regime.cycle.cycle == "SIDEWAYS"
        assert [m for m in markers if m.marker_type in ("BOS", "CHOCH")] == []

    def test_rising_sequence_is_bullish_trend(self):
        candles = _rising_candles()
        markers = analyze_structure(candles, lookback=5, min_structure_move=0.005).markers
        regime = detect_market_regime(candles, markers)
        assert regime.regime == "TRENDING"
        assert regime.trend.direction == "BULLISH"
        assert regime.trend.state == "impulsive"
        assert regime.trend.r_squared == pytest.approx(1.0)
        assert regime.trend.slope == pytest.approx(0.5 / 117.25)
        assert regime.phase == "expansion"
        assert regime.cycle.cycle == "BULL"
        assert 0 <= regime.cycle.strength <= 100

    def test_rising_sequence_has_no_shift(self):
        candles = _rising_candles()
        markers = analyze_structure(candles, lookback=5, min_structure_move=0.005).markers
        shift = detect_market_regime(candles, markers).shift
        assert shift.shifted is False
        assert shift.current == "BULL"

    def test_short_input_is_unknown(self):
        regime = detect_market_regime(_rising_candles(30), [])
        assert regime.regime == "UNKNOWN"
        assert regime.trend.direction == "NEUTRAL"
        assert regime.shift.shifted is False

    def test_gentle_slope_is_transitional(self):
        candles = [_make_candle(i, 100 + 0.1 * i, 100.2 + 0.1 * i, 99.8 + 0.1 * i, 100 + 0.1 * i) for i in range(60)]
        regime = detect_market_regime(candles, [])
        assert regime.regime == "TRANSITIONAL"
        assert regime.trend.state == "corrective"
        assert regime.trend.direction == "BULLISH"


class TestVolatility:
    def test_flat_is_low(self):
        vol = measure_volatility(_flat_candles(60))
        assert vol.level == "LOW"
        assert vol.percent == 0.0

    def test_wide_ranges_are_high(self):
        candles = [_make_candle(i, 100, 102, 98, 100) for i in range(60)]
        vol = measure_volatility(candles)
        assert vol.level == "HIGH"
        assert vol.percent == pytest.approx(4.0)


class TestCycle:
    def test_short_input_is_sideways(self):
        assert classify_cycle(_flat_candles(10), []).cycle == "SIDEWAYS"

    def test_bull_needs_bullish_structure(self):
        candles = _rising_candles()
        # Same prices but no structure to back the slope
        assert classify_cycle(candles, []).cycle == "SIDEWAYS"


def _marker(index: int, direction: str) -> StructureMarker:
    return StructureMarker(marker_type="BOS", price=100.0, time=1_700_000_000 + index * 3600,
                           index=index, direction=direction, significance="MEDIUM")


class TestRegimeShift:
    def test_structure_turning_bullish_shifts_cycle(self):
        # Readings at bars 55..59: only the first sees no bullish structure
        shift = detect_regime_shift(_rising_candles(), [_marker(56, "BULLISH")])
        assert shift.shifted is True
        assert shift.previous == "SIDEWAYS"
        assert shift.current == "BULL"
        assert shift.confidence == 1.0

    def test_confidence_is_share_of_latest_three(self):
        markers = [_marker(56, "BULLISH"), _marker(58, "BEARISH"), _marker(59, "BULLISH")]
        # Readings: SIDEWAYS, BULL, BULL, SIDEWAYS, BULL
        shift = detect_regime_shift(_rising_candles(), markers)
        assert shift.shifted is True
        assert shift.current == "BULL"
        assert shift.confidence == 0.67

    def test_steady_cycle_does_not_shift(self):
        shift = detect_regime_shift(_rising_candles(), [])
        assert shift.shifted is False
        assert shift.current == "SIDEWAYS"
        assert shift.confidence == 0.0

    def test_short_input(self):
        assert detect_regime_shift(_rising_candles(23), [_marker(5, "BULLISH")]) == NO_SHIFT
