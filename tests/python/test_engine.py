"""
Tests for the RiskEngine facade.
"""

import json
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from portfolio_risk import (
    AlertType,
    Config,
    InvalidInputError,
    RiskCalculationError,
    RiskEngine,
    StopLossType,
    create_risk_engine,
)
from portfolio_risk.config import MonteCarloConfig, SinkConfig
from portfolio_risk.monitoring import NullReportSink
from portfolio_risk.monitoring.logging import get_context
from portfolio_risk.risk import HistoricalVolatilityProvider


@pytest.fixture
def engine(seeded_config):
    return RiskEngine(seeded_config, sink=NullReportSink())


class TestRiskEngine:
    """End-to-end tests through the engine."""

    def test_assess_from_dict(self, engine, snapshot_dict):
        metrics = engine.assess_portfolio_risk(snapshot_dict)

        assert [p.symbol for p in metrics.position_risks] == ["AAPL", "MSFT", "BND"]
        assert metrics.portfolio_risk.var_99 > metrics.portfolio_risk.var_95 > 0
        # Mean |rho| over the off-diagonal entries (0.7, 0.2, 0.7)
        assert metrics.portfolio_risk.correlation_risk == pytest.approx(1.6 / 3)

    def test_invalid_snapshot(self, engine, snapshot_dict):
        snapshot_dict["portfolioValue"] = 0
        with pytest.raises(InvalidInputError):
            engine.assess_portfolio_risk(snapshot_dict)

    @pytest.mark.parametrize(
        "patch",
        [
            {"economicIndicators": {"interestRates": "abc"}},
            {"economicIndicators": {"interestRates": None}},
            {"historicalVolatility": [0.02]},
            {"marketConditions": {"correlationMatrix": "oops"}},
            {"returnHistory": 5},
        ],
    )
    def test_malformed_snapshot_raises_risk_error(self, engine, snapshot_dict, patch):
        """Every operation reports bad shapes through the engine's error type."""
        snapshot_dict.update(patch)
        with pytest.raises(RiskCalculationError):
            engine.assess_portfolio_risk(snapshot_dict)
        with pytest.raises(RiskCalculationError):
            engine.monitor_risks(snapshot_dict)
        with pytest.raises(RiskCalculationError):
            engine.perform_stress_testing(snapshot_dict)

    def test_monitor(self, engine, snapshot_dict):
        """MSFT at 24% is the only concentration breach."""
        alerts = engine.monitor_risks(snapshot_dict)
        assert len(alerts) == 1
        assert alerts[0].type is AlertType.CONCENTRATION
        assert alerts[0].affected_positions == ("MSFT",)

    def test_stress(self, engine, snapshot_dict):
        results = engine.perform_stress_testing(snapshot_dict)
        assert results[0].portfolio_impact == pytest.approx(-50_000.0)
        assert len(results) == 5

    def test_size_with_dict_conditions(self, engine):
        """VIX 35 and a bear market: 0.8 * 0.7 adjustment."""
        sizing = engine.calculate_dynamic_position_size(
            "AAPL", 100_000, 0.5, {"volatilityIndex": 35, "marketTrend": "bear"}
        )
        assert sizing.market_adjustment == pytest.approx(0.56)
        assert sizing.recommended_size == pytest.approx(12_500.0 * 0.56)

    def test_size_default_conditions(self, engine):
        sizing = engine.calculate_dynamic_position_size("AAPL", 100_000, 0.5)
        assert sizing.recommended_size == pytest.approx(12_500.0)

    def test_size_invalid(self, engine):
        with pytest.raises(InvalidInputError):
            engine.calculate_dynamic_position_size("AAPL", -5, 0.5)

    def test_stop_loss(self, engine):
        stop = engine.calculate_adaptive_stop_loss("AAPL", 100.0, 100.0, 0)
        assert stop.stop_loss_type is StopLossType.MOMENTUM
        assert stop.new_stop_loss == pytest.approx(97.0)

    def test_stop_loss_invalid(self, engine):
        with pytest.raises(InvalidInputError):
            engine.calculate_adaptive_stop_loss("AAPL", 100.0, 0.0, 0)

    def test_injected_volatility_provider(self, seeded_config):
        """The provider feeds both sizing and stop-loss."""
        engine = RiskEngine(
            seeded_config,
            volatility_provider=HistoricalVolatilityProvider({"AAPL": 0.01}),
            sink=NullReportSink(),
        )
        assert engine.calculate_dynamic_position_size("AAPL", 100_000, 0.5).volatility == 0.01
        stop = engine.calculate_adaptive_stop_loss("AAPL", 100.0, 100.0, 0)
        assert stop.candidates["atr"] == pytest.approx(98.0)
        assert stop.stop_loss_type is StopLossType.ATR

    def test_symbol_bound_to_log_context(self, seeded_config):
        """Sizing and stop-loss run with the symbol in the log context."""
        seen = []

        class ContextRecordingProvider(HistoricalVolatilityProvider):
            def predict(self, symbol, market_conditions):
                seen.append(get_context())
                return super().predict(symbol, market_conditions)

        engine = RiskEngine(
            seeded_config, volatility_provider=ContextRecordingProvider(), sink=NullReportSink()
        )
        engine.calculate_dynamic_position_size("AAPL", 100_000, 0.5)
        engine.calculate_adaptive_stop_loss("MSFT", 100.0, 100.0, 0)

        assert [c.get("symbol") for c in seen] == ["AAPL", "MSFT"]
        assert "symbol" not in get_context()

    def test_concurrent_calls(self, engine, snapshot_dict):
        """One engine serves parallel assessments with identical results."""
        expected = engine.assess_portfolio_risk(snapshot_dict, rng=np.random.default_rng(1))

        def run(_):
            return engine.assess_portfolio_risk(snapshot_dict, rng=np.random.default_rng(1))

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(run, range(8)))

        assert all(r == expected for r in results)


class TestCreateRiskEngine:
    """Tests for the engine factory."""

    def test_jsonl_sink_from_config(self, tmp_path, snapshot_dict):
        path = tmp_path / "reports.jsonl"
        config = Config(
            monte_carlo=MonteCarloConfig(n_simulations=500, seed=3),
            sink=SinkConfig(kind="jsonl", path=str(path)),
        )
        engine = create_risk_engine(config=config)
        engine.assess_portfolio_risk(snapshot_dict)

        (line,) = path.read_text().splitlines()
        record = json.loads(line)
        assert record["portfolio_value"] == 250_000.0
        assert record["model_versions"]["monte_carlo"] == "box-muller-1.0"
        assert len(record["metrics"]["position_risks"]) == 3

    def test_from_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        Config(monte_carlo=MonteCarloConfig(n_simulations=123)).save(str(path))

        engine = create_risk_engine(config_file=str(path), sink=NullReportSink())
        assert engine.config.monte_carlo.n_simulations == 123
        assert engine.sink.name == "none"
