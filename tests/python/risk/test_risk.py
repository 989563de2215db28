"""
Tests for the risk calculation module.

Tests cover:
- VolatilityEstimator / VolatilityProvider: VIX scaling and fallbacks
- CorrelationAnalyzer: Aggregate and per-symbol correlation, HHI
- ValueAtRiskCalculator: Parametric VaR and Expected Shortfall
- MonteCarloSimulator: Percentile ordering, determinism, batching
- StressTestRunner: Scenario library
- PositionRiskAnalyzer: Per-position contribution
- PerformanceEstimator: Placeholders and history-based figures
- PositionSizer: Kelly sizing, market adjustment, concentration cap
- StopLossAdviser: Candidate selection and time decay
- PortfolioRiskAssessor: End-to-end report and failure handling
"""

import math

import numpy as np
import pytest

from portfolio_risk.config import (
    Config,
    MonteCarloConfig,
    PlaceholderMetrics,
    SizingPolicy,
    StressConfig,
    VaRPolicy,
)
from portfolio_risk.models import (
    InvalidInputError,
    MarketConditions,
    NumericInstabilityError,
    RiskAssessmentInput,
    RiskCalculationError,
    StopLossType,
)
from portfolio_risk.risk import (
    DEFAULT_STRESS_SCENARIOS,
    CorrelationAnalyzer,
    HistoricalVolatilityProvider,
    JitteredVolatilityProvider,
    MonteCarloSimulator,
    PerformanceEstimator,
    PortfolioRiskAssessor,
    PositionRiskAnalyzer,
    PositionSizer,
    StopLossAdviser,
    StressScenario,
    StressTestRunner,
    ValueAtRiskCalculator,
    VolatilityEstimator,
    box_muller,
    ensure_finite,
    max_drawdown,
    safe_denominator,
)


# =============================================================================
# Numerics Tests
# =============================================================================


class TestNumerics:
    """Tests for denominator and finiteness guards."""

    def test_safe_denominator_floor(self):
        """Zero and non-finite denominators use the floor."""
        assert safe_denominator(0.0) == 0.01
        assert safe_denominator(float("nan")) == 0.01
        assert safe_denominator(0.5) == 0.5
        assert safe_denominator(-0.5) == -0.5

    def test_ensure_finite(self):
        """Non-finite results raise NumericInstabilityError."""
        assert ensure_finite("x", 1.5) == 1.5
        with pytest.raises(NumericInstabilityError):
            ensure_finite("x", float("inf"))
        with pytest.raises(RiskCalculationError):
            ensure_finite("x", float("nan"))


# =============================================================================
# Volatility Tests
# =============================================================================


class TestVolatilityEstimator:
    """Tests for VolatilityEstimator."""

    @pytest.fixture
    def estimator(self):
        return VolatilityEstimator()

    def test_neutral_vix_doubles_volatility(self, estimator, neutral_conditions):
        """VIX 20 gives a scale factor of 2."""
        vol = estimator.estimate("SPY", {"SPY": 0.03}, neutral_conditions)
        assert vol == pytest.approx(0.06)

    def test_zero_vix_keeps_historical(self, estimator, calm_conditions):
        """VIX 0 leaves historical volatility unchanged."""
        assert estimator.estimate("SPY", {"SPY": 0.03}, calm_conditions) == pytest.approx(0.03)

    def test_missing_symbol_uses_default(self, estimator, calm_conditions):
        """Missing symbols fall back to the 0.02 baseline."""
        assert estimator.estimate("XYZ", {}, calm_conditions) == pytest.approx(0.02)

    def test_zero_volatility_uses_default(self, estimator, calm_conditions):
        """A zero entry is treated as missing."""
        assert estimator.estimate("SPY", {"SPY": 0.0}, calm_conditions) == pytest.approx(0.02)

    def test_estimate_all_preserves_order(self, estimator, two_asset_snapshot):
        """estimate_all returns one entry per position, in order."""
        vols = estimator.estimate_all(two_asset_snapshot)
        assert list(vols) == ["SPY", "TLT"]
        assert vols["SPY"] == pytest.approx(0.02)
        assert vols["TLT"] == pytest.approx(0.03)


class TestVolatilityProviders:
    """Tests for single-symbol volatility providers."""

    def test_historical_lookup(self, neutral_conditions):
        """Known symbols use the table, others the default, without VIX scaling."""
        provider = HistoricalVolatilityProvider({"AAPL": 0.035})
        assert provider.predict("AAPL", neutral_conditions) == 0.035
        assert provider.predict("MSFT", neutral_conditions) == 0.02
        assert provider("AAPL", neutral_conditions) == 0.035

    def test_jittered_range(self, neutral_conditions):
        """Jittered estimates lie in [base, base + spread)."""
        provider = JitteredVolatilityProvider(np.random.default_rng(1))
        values = [provider.predict("AAPL", neutral_conditions) for _ in range(200)]
        assert min(values) >= 0.02
        assert max(values) < 0.03

    def test_jittered_is_reproducible(self, neutral_conditions):
        """The same seed gives the same sequence."""
        a = JitteredVolatilityProvider(np.random.default_rng(9))
        b = JitteredVolatilityProvider(np.random.default_rng(9))
        assert [a.predict("X", neutral_conditions) for _ in range(5)] == [
            b.predict("X", neutral_conditions) for _ in range(5)
        ]


# =============================================================================
# Correlation Tests
# =============================================================================


class TestCorrelationAnalyzer:
    """Tests for CorrelationAnalyzer."""

    @pytest.fixture
    def analyzer(self):
        return CorrelationAnalyzer()

    @pytest.fixture
    def asymmetric_matrix(self):
        return {
            "A": {"A": 1.0, "B": 0.8},
            "B": {"A": -0.6},
        }

    def test_empty_matrix(self, analyzer):
        """Empty matrix gives zero correlation risk."""
        assert analyzer.correlation_risk({}) == 0.0
        assert analyzer.position_correlation_risk(["A"], {}) == {"A": 0.0}

    def test_diagonal_only(self, analyzer):
        """Diagonal entries are not pairs."""
        assert analyzer.correlation_risk({"A": {"A": 1.0}}) == 0.0

    def test_aggregate_uses_ordered_pairs(self, analyzer, asymmetric_matrix):
        """Each direction counts separately: mean(|0.8|, |-0.6|)."""
        assert analyzer.correlation_risk(asymmetric_matrix) == pytest.approx(0.7)

    def test_per_symbol_row_mean(self, analyzer, asymmetric_matrix):
        """Row mean includes the self entry; missing rows give 0."""
        risks = analyzer.position_correlation_risk(["A", "B", "C"], asymmetric_matrix)
        assert risks["A"] == pytest.approx(0.9)
        assert risks["B"] == pytest.approx(0.6)
        assert risks["C"] == 0.0
        assert list(risks) == ["A", "B", "C"]

    def test_concentration_index(self, analyzer):
        """HHI is the sum of squared weights."""
        assert analyzer.concentration_index([0.5, 0.5]) == pytest.approx(0.5)
        assert analyzer.concentration_index([1.0]) == pytest.approx(1.0)
        assert analyzer.concentration_index([]) == 0.0


# =============================================================================
# VaR Tests
# =============================================================================


class TestValueAtRiskCalculator:
    """Tests for ValueAtRiskCalculator."""

    @pytest.fixture
    def calculator(self):
        return ValueAtRiskCalculator()

    def test_two_asset_values(self, calculator, two_asset_snapshot):
        """VaR follows the inflated weighted-variance formula."""
        result = calculator.calculate(
            100_000.0, two_asset_snapshot.positions, {"SPY": 0.02, "TLT": 0.03}
        )
        sigma = math.sqrt(((0.5 * 0.02) ** 2 + (0.5 * 0.03) ** 2) * 1.2)

        assert result.portfolio_volatility == pytest.approx(sigma)
        assert result.var_95 == pytest.approx(100_000 * sigma * 1.645)
        assert result.var_99 == pytest.approx(100_000 * sigma * 2.326)
        assert result.expected_shortfall == pytest.approx(result.var_95 * 1.3)

    @pytest.mark.parametrize("seed", range(10))
    def test_var_ordering_property(self, calculator, position_factory, seed):
        """var99 >= var95 >= 0 and ES >= var95 for random portfolios."""
        gen = np.random.default_rng(seed)
        n = int(gen.integers(1, 8))
        weights = gen.dirichlet(np.ones(n))
        positions = [position_factory(f"S{i}", float(w)) for i, w in enumerate(weights)]
        vols = {p.symbol: float(gen.uniform(0.0, 0.1)) for p in positions}

        result = calculator.calculate(float(gen.uniform(1, 1e7)), positions, vols)

        assert result.var_95 >= 0
        assert result.var_99 >= result.var_95
        assert result.expected_shortfall >= result.var_95

    def test_zero_weights_give_zero_var(self, calculator, position_factory):
        """All-zero weights give zero VaR."""
        positions = [position_factory("A", 0.0)]
        result = calculator.calculate(100_000.0, positions, {"A": 0.05})
        assert result.var_95 == 0.0
        assert result.var_99 == 0.0

    def test_policy_from_confidence(self):
        """z-scores derived from the normal quantile function."""
        policy = VaRPolicy.from_confidence(0.95, 0.99)
        assert policy.z_95 == pytest.approx(1.6449, abs=1e-4)
        assert policy.z_99 == pytest.approx(2.3263, abs=1e-4)
        assert policy.correlation_inflation == 1.2


# =============================================================================
# Monte Carlo Tests
# =============================================================================


class TestMonteCarloSimulator:
    """Tests for MonteCarloSimulator."""

    @pytest.fixture
    def vols(self):
        return {"SPY": 0.02, "TLT": 0.03}

    def test_percentile_ordering(self, two_asset_snapshot, vols):
        """worst1 <= worst5 <= mean <= best95 <= best99."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=5_000))
        for seed in range(5):
            r = simulator.simulate(
                two_asset_snapshot.positions, vols, rng=np.random.default_rng(seed)
            )
            assert r.worst_case_1 <= r.worst_case_5 <= r.expected_return
            assert r.expected_return <= r.best_case_95 <= r.best_case_99

    @pytest.mark.parametrize("n", [1, 2, 3, 7, 20])
    def test_ordering_with_tiny_runs(self, two_asset_snapshot, vols, n):
        """Ordering holds even for a handful of draws."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=n))
        r = simulator.simulate(two_asset_snapshot.positions, vols, rng=np.random.default_rng(n))
        assert r.worst_case_1 <= r.worst_case_5 <= r.expected_return
        assert r.expected_return <= r.best_case_95 <= r.best_case_99
        assert r.n_simulations == n

    def test_seeded_runs_are_identical(self, two_asset_snapshot, vols):
        """Same seed, same percentiles."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=2_000))
        a = simulator.simulate(two_asset_snapshot.positions, vols, rng=np.random.default_rng(3))
        b = simulator.simulate(two_asset_snapshot.positions, vols, rng=np.random.default_rng(3))
        assert a == b

    def test_config_seed_used_without_rng(self, two_asset_snapshot, vols):
        """A configured seed makes repeated calls reproducible."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=1_000, seed=11))
        a = simulator.simulate(two_asset_snapshot.positions, vols)
        b = simulator.simulate(two_asset_snapshot.positions, vols)
        assert a == b

    def test_mean_near_daily_drift(self, two_asset_snapshot, vols):
        """Sample mean converges to 0.08 / 252 for weights summing to 1."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=50_000))
        r = simulator.simulate(two_asset_snapshot.positions, vols, rng=np.random.default_rng(0))
        assert r.expected_return == pytest.approx(0.08 / 252, abs=5e-4)

    def test_zero_weights_are_flat(self, position_factory):
        """Zero-weight portfolios return exactly zero in every draw."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=100))
        r = simulator.simulate([position_factory("A", 0.0)], {"A": 0.05}, rng=np.random.default_rng(0))
        assert r.worst_case_1 == r.best_case_99 == 0.0
        assert r.expected_return == 0.0

    def test_percentile_indices(self, position_factory, monkeypatch):
        """Percentiles are read at floor(p * N) of the sorted draws."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=200))
        draws = np.arange(200, dtype=float)[::-1]
        monkeypatch.setattr(simulator, "draw", lambda *args, **kwargs: draws.copy())

        r = simulator.simulate([position_factory("A", 1.0)], {"A": 0.02})

        assert r.worst_case_1 == 2.0
        assert r.worst_case_5 == 10.0
        assert r.best_case_95 == 190.0
        assert r.best_case_99 == 198.0
        assert r.expected_return == pytest.approx(99.5)

    def test_batched_independent_of_workers(self, two_asset_snapshot, vols):
        """Batched output depends on seed and batch count, not thread count."""
        simulator = MonteCarloSimulator(MonteCarloConfig(n_simulations=4_001, seed=5))
        a = simulator.simulate_batched(two_asset_snapshot.positions, vols, n_batches=4, max_workers=1)
        b = simulator.simulate_batched(two_asset_snapshot.positions, vols, n_batches=4, max_workers=4)
        assert a == b
        assert a.n_simulations == 4_001
        assert a.worst_case_1 <= a.worst_case_5 <= a.expected_return
        assert a.expected_return <= a.best_case_95 <= a.best_case_99

    def test_config_batches_route_to_batched(self, two_asset_snapshot, vols):
        """n_batches > 1 in config uses the batched path."""
        config = MonteCarloConfig(n_simulations=1_000, seed=2, n_batches=3)
        via_simulate = MonteCarloSimulator(config).simulate(two_asset_snapshot.positions, vols)
        direct = MonteCarloSimulator(config).simulate_batched(two_asset_snapshot.positions, vols)
        assert via_simulate == direct

    def test_invalid_simulation_count(self):
        """At least one draw is required."""
        with pytest.raises(InvalidInputError):
            MonteCarloSimulator(MonteCarloConfig(n_simulations=0))

    def test_box_muller_moments(self):
        """Box-Muller draws are approximately standard normal."""
        z = box_muller(np.random.default_rng(0), (100_000,))
        assert np.all(np.isfinite(z))
        assert float(np.mean(z)) == pytest.approx(0.0, abs=0.02)
        assert float(np.std(z)) == pytest.approx(1.0, abs=0.02)


# =============================================================================
# Stress Testing Tests
# =============================================================================


class TestStressTestRunner:
    """Tests for StressTestRunner."""

    def test_default_library(self, two_asset_snapshot):
        """Five scenarios in library order; only the crash has an impact."""
        results = StressTestRunner().run(two_asset_snapshot)

        assert [r.scenario for r in results] == [
            "Market Crash (-20%)",
            "Interest Rate Spike (+2%)",
            "High Volatility (VIX > 40)",
            "Liquidity Crisis",
            "Currency Devaluation (-15%)",
        ]
        assert [r.probability for r in results] == [0.05, 0.15, 0.10, 0.03, 0.08]
        assert results[0].portfolio_impact == pytest.approx(-20_000.0)
        assert all(r.portfolio_impact == 0.0 for r in results[1:])

    def test_library_is_immutable(self):
        """Default scenarios cannot be modified."""
        assert isinstance(DEFAULT_STRESS_SCENARIOS, tuple)
        with pytest.raises(AttributeError):
            DEFAULT_STRESS_SCENARIOS[0].market_move = -0.5

    def test_custom_scenarios_from_config(self, two_asset_snapshot):
        """Custom scenarios are appended after the defaults."""
        config = StressConfig(
            custom_scenarios=[{"name": "Flash Crash", "probability": 0.01, "market_move": -0.1}]
        )
        results = StressTestRunner.from_config(config).run(two_asset_snapshot)
        assert len(results) == 6
        assert results[-1].scenario == "Flash Crash"
        assert results[-1].portfolio_impact == pytest.approx(-10_000.0)

    def test_defaults_can_be_excluded(self, two_asset_snapshot):
        """include_defaults=False keeps only custom scenarios."""
        config = StressConfig(include_defaults=False)
        assert StressTestRunner.from_config(config).run(two_asset_snapshot) == ()

    def test_invalid_scenario(self):
        """Probabilities outside [0, 1] and unknown keys are rejected."""
        with pytest.raises(InvalidInputError):
            StressScenario("Bad", probability=1.5)
        with pytest.raises(InvalidInputError):
            StressScenario.from_dict({"name": "X", "probability": 0.1, "shock": -0.2})

    def test_summary(self, two_asset_snapshot):
        """Summary reports the worst scenario and expected impact."""
        runner = StressTestRunner()
        summary = runner.summary(runner.run(two_asset_snapshot))
        assert summary["n_scenarios"] == 5
        assert summary["worst_scenario"] == "Market Crash (-20%)"
        assert summary["expected_impact"] == pytest.approx(-20_000.0 * 0.05)


# =============================================================================
# Position Risk Tests
# =============================================================================


class TestPositionRiskAnalyzer:
    """Tests for PositionRiskAnalyzer."""

    def test_contributions(self, two_asset_snapshot):
        """individual = value * vol; contribution = individual * weight."""
        risks = PositionRiskAnalyzer().analyze(two_asset_snapshot, {"SPY": 0.02, "TLT": 0.03})

        assert [r.symbol for r in risks] == ["SPY", "TLT"]
        assert risks[0].individual_risk == pytest.approx(1_000.0)
        assert risks[0].contribution_to_risk == pytest.approx(500.0)
        assert risks[1].individual_risk == pytest.approx(1_500.0)
        assert risks[1].concentration == 0.5
        assert risks[0].correlation_risk == 0.0

    def test_correlation_from_matrix(self, position_factory):
        """Per-position correlation risk comes from the symbol's row."""
        snapshot = RiskAssessmentInput(
            portfolio_value=100_000.0,
            positions=(position_factory("A", 0.3), position_factory("B", 0.3)),
            market_conditions=MarketConditions(
                correlation_matrix={"A": {"A": 1.0, "B": 0.5}}
            ),
        )
        risks = PositionRiskAnalyzer().analyze(snapshot, {"A": 0.02, "B": 0.02})
        assert risks[0].correlation_risk == pytest.approx(0.75)
        assert risks[1].correlation_risk == 0.0


# =============================================================================
# Performance Tests
# =============================================================================


class TestPerformanceEstimator:
    """Tests for PerformanceEstimator."""

    def test_placeholders_without_history(self):
        """Short or missing history reports the configured placeholders."""
        figures = PerformanceEstimator().estimate([0.01])
        assert figures.max_drawdown == 0.05
        assert figures.sharpe_ratio == 1.2
        assert figures.sortino_ratio == 1.5
        assert figures.beta == 1.1
        assert figures.alpha == 0.02
        assert not figures.from_history

    def test_custom_placeholders(self):
        """Placeholders come from config."""
        figures = PerformanceEstimator(PlaceholderMetrics(sharpe_ratio=0.7)).estimate()
        assert figures.sharpe_ratio == 0.7

    def test_max_drawdown(self):
        """Peak 1.1 to trough 0.88 is a 20% drawdown."""
        assert max_drawdown(np.array([0.1, -0.2, 0.05])) == pytest.approx(0.2)
        assert max_drawdown(np.array([0.01, 0.02])) == 0.0

    def test_history_figures(self):
        """Sharpe matches mean / std * sqrt(252) with zero risk-free rate."""
        returns = [0.01, -0.005, 0.007, 0.002, -0.003, 0.004]
        figures = PerformanceEstimator().estimate(returns)

        r = np.array(returns)
        expected_sharpe = r.mean() / r.std(ddof=1) * np.sqrt(252)
        assert figures.from_history
        assert figures.sharpe_ratio == pytest.approx(expected_sharpe)
        assert figures.sortino_ratio > figures.sharpe_ratio
        # Beta/alpha stay placeholders without a benchmark
        assert figures.beta == 1.1

    def test_beta_against_itself(self):
        """A series regressed on itself has beta 1 and alpha 0."""
        returns = [0.01, -0.02, 0.015, 0.003, -0.007]
        figures = PerformanceEstimator().estimate(returns, returns)
        assert figures.beta == pytest.approx(1.0)
        assert figures.alpha == pytest.approx(0.0, abs=1e-12)

    def test_constant_returns_use_floor(self):
        """Zero dispersion uses the 0.01 floor instead of dividing by zero."""
        figures = PerformanceEstimator().estimate([0.25, 0.25, 0.25])
        assert figures.sharpe_ratio == pytest.approx(0.25 / 0.01 * np.sqrt(252))
        assert math.isfinite(figures.sortino_ratio)


# =============================================================================
# Position Sizer Tests
# =============================================================================


class TestPositionSizer:
    """Tests for PositionSizer."""

    @pytest.fixture
    def sizer(self):
        return PositionSizer()

    def test_kelly_fraction(self, sizer):
        """(0.55 * 0.03 - 0.45 * 0.02) / 0.03 = 0.25."""
        assert sizer.kelly_fraction() == pytest.approx(0.25)

    def test_neutral_sizing(self, sizer, neutral_conditions):
        """100k * 0.5 * 0.25 * 1.0 = 12,500."""
        sizing = sizer.size("AAPL", 100_000, 0.5, neutral_conditions)

        assert sizing.recommended_size == pytest.approx(12_500.0)
        assert sizing.max_position == pytest.approx(20_000.0)
        assert sizing.risk_budget == pytest.approx(12.5)
        assert sizing.market_adjustment == 1.0
        assert sizing.confidence_interval.lower == pytest.approx(12_450.0)
        assert sizing.confidence_interval.upper == pytest.approx(12_550.0)
        assert sizing.reasoning[0] == "Kelly fraction: 0.2500"
        assert len(sizing.reasoning) == 4

    def test_concentration_cap(self, sizer, neutral_conditions):
        """Large tolerance is capped at 20% of portfolio value."""
        sizing = sizer.size("AAPL", 100_000, 5.0, neutral_conditions)
        assert sizing.recommended_size == pytest.approx(20_000.0)
        assert any("Capped" in line for line in sizing.reasoning)

    @pytest.mark.parametrize("tolerance", [0.0, 0.1, 0.8, 1.0, 3.0, 50.0])
    @pytest.mark.parametrize("vix", [0.0, 25.0, 31.0, 80.0])
    def test_cap_property(self, sizer, tolerance, vix):
        """Recommended size never exceeds 20% of portfolio value."""
        conditions = MarketConditions(volatility_index=vix)
        sizing = sizer.size("X", 1_000_000, tolerance, conditions)
        assert 0.0 <= sizing.recommended_size <= 0.20 * 1_000_000

    def test_cap_with_huge_edge(self, neutral_conditions):
        """The cap holds for an extreme Kelly fraction."""
        sizer = PositionSizer(SizingPolicy(win_probability=0.99, avg_win=0.5, avg_loss=0.01))
        sizing = sizer.size("X", 100_000, 10.0, neutral_conditions)
        assert sizing.kelly_fraction > 0.9
        assert sizing.recommended_size == pytest.approx(20_000.0)

    def test_market_adjustments_multiply(self, sizer, stressed_conditions):
        """All three adjustments apply together: 0.8 * 0.7 * 0.6."""
        assert sizer.market_adjustment(stressed_conditions) == pytest.approx(0.336)

    def test_vix_threshold_is_strict(self, sizer):
        """VIX exactly 30 does not trigger the high-volatility cut."""
        assert sizer.market_adjustment(MarketConditions(volatility_index=30.0)) == 1.0
        assert sizer.market_adjustment(MarketConditions(volatility_index=30.1)) == pytest.approx(0.8)

    def test_adjustment_floor(self, stressed_conditions):
        """Adjustment never drops below 0.2."""
        policy = SizingPolicy(
            high_volatility_multiplier=0.1,
            bear_market_multiplier=0.1,
            low_liquidity_multiplier=0.1,
        )
        sizer = PositionSizer(policy)
        assert sizer.market_adjustment(stressed_conditions) == pytest.approx(0.2)

    def test_negative_edge_gives_negative_size(self, neutral_conditions):
        """No floor: (0.3 * 0.03 - 0.7 * 0.02) / 0.03 = -1/6 of the budget."""
        sizer = PositionSizer(SizingPolicy(win_probability=0.3))
        sizing = sizer.size("X", 100_000, 0.5, neutral_conditions)

        assert sizing.kelly_fraction == pytest.approx(-1 / 6)
        assert sizing.recommended_size == pytest.approx(-50_000 / 6)
        assert sizing.risk_budget == pytest.approx(-50 / 6)
        assert "Non-positive edge: no long position supported" in sizing.reasoning

    def test_negative_size_interval_is_ordered(self, neutral_conditions):
        sizer = PositionSizer(SizingPolicy(win_probability=0.3))
        interval = sizer.size("X", 100_000, 0.5, neutral_conditions).confidence_interval
        assert interval.lower < interval.upper
        assert interval.upper - interval.lower == pytest.approx(2 * 50_000 / 6 * 0.2 * 0.02)

    def test_zero_avg_win_uses_floor(self, neutral_conditions):
        """avg_win of 0 divides by the 0.01 floor."""
        sizer = PositionSizer(SizingPolicy(avg_win=0.0))
        assert sizer.kelly_fraction() == pytest.approx(-0.45 * 0.02 / 0.01)

    def test_interval_uses_provider_volatility(self, neutral_conditions):
        """Half-width is 20% of size times the provider's volatility."""
        sizer = PositionSizer(volatility_provider=HistoricalVolatilityProvider({"X": 0.1}))
        sizing = sizer.size("X", 100_000, 0.5, neutral_conditions)
        assert sizing.volatility == 0.1
        assert sizing.confidence_interval.upper - sizing.recommended_size == pytest.approx(250.0)

    @pytest.mark.parametrize(
        "portfolio_value,tolerance",
        [(0, 0.5), (-100, 0.5), (100_000, -0.1), (float("nan"), 0.5)],
    )
    def test_invalid_inputs(self, sizer, neutral_conditions, portfolio_value, tolerance):
        """Non-positive value or negative tolerance is rejected."""
        with pytest.raises(InvalidInputError):
            sizer.size("X", portfolio_value, tolerance, neutral_conditions)


# =============================================================================
# Stop-Loss Tests
# =============================================================================


class TestStopLossAdviser:
    """Tests for StopLossAdviser."""

    @pytest.fixture
    def adviser(self):
        return StopLossAdviser()

    def test_momentum_selected_at_entry(self, adviser, neutral_conditions):
        """ATR 96, momentum 97, volatility 96: momentum wins, no decay."""
        stop = adviser.advise("AAPL", 100.0, 100.0, 0, neutral_conditions)

        assert stop.candidates["atr"] == pytest.approx(96.0)
        assert stop.candidates["momentum"] == pytest.approx(97.0)
        assert stop.candidates["volatility"] == pytest.approx(96.0)
        assert stop.stop_loss_type is StopLossType.MOMENTUM
        assert stop.time_decay == 1.0
        assert stop.new_stop_loss == pytest.approx(97.0)
        assert stop.risk_ratio == pytest.approx(0.03)
        assert stop.current_stop_loss == pytest.approx(95.0)
        assert stop.trend_adjustment == 1.0
        assert stop.volatility_adjustment == 0.02

    def test_high_vix_multiplier(self, adviser):
        """VIX above 25 uses the 2.5 multiplier."""
        stop = adviser.advise("AAPL", 100.0, 100.0, 0, MarketConditions(volatility_index=30))
        assert stop.candidates["volatility"] == pytest.approx(95.0)

    def test_time_decay_applied(self, adviser, neutral_conditions):
        """42 hours gives decay 0.75 on the chosen stop."""
        stop = adviser.advise("AAPL", 100.0, 100.0, 42, neutral_conditions)
        assert stop.time_decay == pytest.approx(0.75)
        assert stop.new_stop_loss == pytest.approx(97.0 * 0.75)
        assert stop.risk_ratio == pytest.approx(1 - 0.7275)

    @pytest.mark.parametrize("age,expected", [(0, 1.0), (84, 0.5), (168, 0.5), (10_000, 0.5)])
    def test_time_decay_values(self, adviser, age, expected):
        assert adviser.time_decay(age) == pytest.approx(expected)

    def test_time_decay_floor_property(self, adviser):
        """Decay stays within [0.5, 1] for all non-negative ages."""
        for age in np.linspace(0, 500, 101):
            assert 0.5 <= adviser.time_decay(float(age)) <= 1.0

    def test_tie_keeps_earlier_method(self):
        """Equal candidates resolve to the earlier method."""
        levels = {StopLossType.ATR: 97.0, StopLossType.MOMENTUM: 97.0, StopLossType.VOLATILITY: 97.0}
        assert StopLossAdviser.select(levels) == (StopLossType.ATR, 97.0)
        levels = {StopLossType.ATR: 90.0, StopLossType.MOMENTUM: 95.0, StopLossType.VOLATILITY: 95.0}
        assert StopLossAdviser.select(levels) == (StopLossType.MOMENTUM, 95.0)

    def test_non_positive_candidates(self):
        """No positive candidate yields a zero ATR stop."""
        levels = {StopLossType.ATR: -5.0, StopLossType.MOMENTUM: -1.0, StopLossType.VOLATILITY: 0.0}
        assert StopLossAdviser.select(levels) == (StopLossType.ATR, 0.0)

    def test_jittered_provider_still_picks_momentum(self, neutral_conditions):
        """Volatility in [0.02, 0.03) keeps ATR at or below 96."""
        adviser = StopLossAdviser(
            volatility_provider=JitteredVolatilityProvider(np.random.default_rng(4))
        )
        stop = adviser.advise("AAPL", 100.0, 100.0, 0, neutral_conditions)
        assert stop.stop_loss_type is StopLossType.MOMENTUM
        assert 0.02 <= stop.volatility_adjustment < 0.03

    @pytest.mark.parametrize(
        "entry,current,age",
        [(0.0, 100.0, 0), (100.0, 0.0, 0), (100.0, -1.0, 0), (100.0, 100.0, -1)],
    )
    def test_invalid_inputs(self, adviser, neutral_conditions, entry, current, age):
        with pytest.raises(InvalidInputError):
            adviser.advise("AAPL", entry, current, age, neutral_conditions)


# =============================================================================
# Assessor Tests
# =============================================================================


class RecordingSink:
    """Sink that keeps every record."""

    name = "recording"

    def __init__(self):
        self.records = []

    def publish(self, record):
        self.records.append(record)


class FailingSink:
    """Sink that always raises."""

    name = "failing"

    def publish(self, record):
        raise IOError("disk full")


class TestPortfolioRiskAssessor:
    """Tests for PortfolioRiskAssessor."""

    @pytest.fixture
    def assessor(self, seeded_config):
        return PortfolioRiskAssessor(seeded_config)

    def test_two_asset_report(self, assessor, two_asset_snapshot):
        """VaR is finite and positive with var99 > var95."""
        metrics = assessor.assess(two_asset_snapshot)
        risk = metrics.portfolio_risk

        assert math.isfinite(risk.var_95) and risk.var_95 > 0
        assert risk.var_99 > risk.var_95
        assert risk.expected_shortfall >= risk.var_95
        assert [p.symbol for p in metrics.position_risks] == ["SPY", "TLT"]
        assert len(metrics.scenario_analysis.stress_test_results) == 5
        assert risk.concentration_index == pytest.approx(0.5)

    def test_monte_carlo_reproducible(self, assessor, two_asset_snapshot):
        """A fixed seed reproduces identical percentiles."""
        a = assessor.assess(two_asset_snapshot, rng=np.random.default_rng(123))
        b = assessor.assess(two_asset_snapshot, rng=np.random.default_rng(123))
        assert a.scenario_analysis.monte_carlo_results == b.scenario_analysis.monte_carlo_results

    def test_placeholder_metrics(self, assessor, two_asset_snapshot):
        """Without return history the placeholders are reported."""
        risk = assessor.assess(two_asset_snapshot).portfolio_risk
        assert (risk.max_drawdown, risk.sharpe_ratio, risk.sortino_ratio, risk.beta, risk.alpha) == (
            0.05, 1.2, 1.5, 1.1, 0.02,
        )

    def test_history_replaces_placeholders(self, assessor, two_asset_snapshot):
        """Return history drives the drawdown figure."""
        snapshot = RiskAssessmentInput(
            portfolio_value=two_asset_snapshot.portfolio_value,
            positions=two_asset_snapshot.positions,
            market_conditions=two_asset_snapshot.market_conditions,
            historical_volatility=two_asset_snapshot.historical_volatility,
            return_history=(0.1, -0.2, 0.05),
        )
        assert assessor.assess(snapshot).portfolio_risk.max_drawdown == pytest.approx(0.2)

    def test_step_failure_aborts(self, assessor, two_asset_snapshot, monkeypatch):
        """Unexpected errors are wrapped with the cause chained."""

        def boom(*args, **kwargs):
            raise ZeroDivisionError("bad math")

        monkeypatch.setattr(assessor.var_calculator, "calculate", boom)

        with pytest.raises(RiskCalculationError) as exc_info:
            assessor.assess(two_asset_snapshot)
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_engine_errors_propagate_unchanged(self, assessor, two_asset_snapshot, monkeypatch):
        """RiskCalculationError subclasses are not re-wrapped."""

        def unstable(*args, **kwargs):
            raise NumericInstabilityError("var_95 is not finite")

        monkeypatch.setattr(assessor.var_calculator, "calculate", unstable)

        with pytest.raises(NumericInstabilityError):
            assessor.assess(two_asset_snapshot)

    def test_sink_receives_record(self, seeded_config, two_asset_snapshot):
        """The finished report is published with model versions."""
        sink = RecordingSink()
        assessor = PortfolioRiskAssessor(seeded_config, sink=sink)
        metrics = assessor.assess(two_asset_snapshot)

        assert len(sink.records) == 1
        record = sink.records[0]
        assert record["metrics"] == metrics.to_dict()
        assert record["model_versions"]["var"] == "parametric-normal-1.0"
        assert record["assessment_id"]

    def test_sink_failure_is_swallowed(self, seeded_config, two_asset_snapshot):
        """A failing sink does not affect the result."""
        assessor = PortfolioRiskAssessor(seeded_config, sink=FailingSink())
        metrics = assessor.assess(two_asset_snapshot)
        assert metrics.portfolio_risk.var_95 > 0

    def test_custom_stress_library_flows_through(self, two_asset_snapshot):
        """Stress config reaches the report."""
        config = Config(
            monte_carlo=MonteCarloConfig(n_simulations=100, seed=1),
            stress=StressConfig(include_defaults=False, custom_scenarios=[
                {"name": "Rally", "probability": 0.2, "market_move": 0.1},
            ]),
        )
        metrics = PortfolioRiskAssessor(config).assess(two_asset_snapshot)
        (result,) = metrics.scenario_analysis.stress_test_results
        assert result.scenario == "Rally"
        assert result.portfolio_impact == pytest.approx(10_000.0)
