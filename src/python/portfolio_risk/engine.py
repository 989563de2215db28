"""
Risk Engine Facade.

Single entry point for the five risk operations:

    - assess_portfolio_risk
    - calculate_dynamic_position_size
    - calculate_adaptive_stop_loss
    - monitor_risks
    - perform_stress_testing

The engine owns only read-only configuration and collaborators, so one
instance can serve concurrent calls.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple, Union

import numpy as np

from .config import Config, load_config
from .models import (
    AdaptiveStopLoss,
    DynamicPositionSizing,
    MarketConditions,
    RiskAlert,
    RiskAssessmentInput,
    RiskCalculationError,
    RiskMetrics,
    StressTestResult,
)
from .monitoring.alerts import RiskMonitor
from .monitoring.logging import BoundLogger
from .monitoring.sinks import ReportSink, create_sink
from .registry import ModelRegistry
from .risk.assessor import PortfolioRiskAssessor
from .risk.position_sizer import PositionSizer
from .risk.stop_loss import StopLossAdviser
from .risk.volatility import HistoricalVolatilityProvider, VolatilityProvider

logger = logging.getLogger(__name__)

SnapshotLike = Union[RiskAssessmentInput, Mapping[str, Any]]
ConditionsLike = Union[MarketConditions, Mapping[str, Any], None]


def _as_snapshot(snapshot: SnapshotLike) -> RiskAssessmentInput:
    if isinstance(snapshot, RiskAssessmentInput):
        return snapshot
    return RiskAssessmentInput.from_dict(snapshot)


def _as_conditions(market_conditions: ConditionsLike) -> MarketConditions:
    if market_conditions is None:
        return MarketConditions()
    if isinstance(market_conditions, MarketConditions):
        return market_conditions
    return MarketConditions.from_dict(market_conditions)


class RiskEngine:
    """
    Portfolio risk engine.

    Example:
        >>> engine = RiskEngine()
        >>> metrics = engine.assess_portfolio_risk(snapshot)
        >>> alerts = engine.monitor_risks(snapshot)
        >>> stop = engine.calculate_adaptive_stop_loss('AAPL', 100.0, 100.0, 0, conditions)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        volatility_provider: Optional[VolatilityProvider] = None,
        sink: Optional[ReportSink] = None,
        registry: Optional[ModelRegistry] = None,
    ):
        self.config = config or Config()
        self.registry = registry or ModelRegistry(self.config.models)
        self.volatility_provider = volatility_provider or HistoricalVolatilityProvider(
            default_volatility=self.config.volatility.default_volatility
        )

        self.assessor = PortfolioRiskAssessor(self.config, sink=sink, registry=self.registry)
        self.sizer = PositionSizer(self.config.sizing, self.volatility_provider)
        self.stop_loss = StopLossAdviser(self.config.stop_loss, self.volatility_provider)
        self.monitor = RiskMonitor.from_config(
            self.config.monitor,
            volatility=self.config.volatility,
            var=self.config.var,
            performance=self.config.performance,
        )

        logger.info(
            f"Initialized RiskEngine (env={self.config.env}, "
            f"models={len(self.registry)}, scenarios={len(self.assessor.stress_runner.scenarios)})"
        )

    @property
    def sink(self) -> Optional[ReportSink]:
        return self.assessor.sink

    def assess_portfolio_risk(
        self,
        snapshot: SnapshotLike,
        rng: Optional[np.random.Generator] = None,
    ) -> RiskMetrics:
        """
        Full risk report for a snapshot.

        Raises:
            RiskCalculationError: On invalid input or any failed step
        """
        return self.assessor.assess(_as_snapshot(snapshot), rng=rng)

    def calculate_dynamic_position_size(
        self,
        symbol: str,
        portfolio_value: float,
        risk_tolerance: float,
        market_conditions: ConditionsLike = None,
    ) -> DynamicPositionSizing:
        """Kelly-based, market-adjusted size capped at the concentration limit."""
        with BoundLogger(symbol=symbol):
            logger.debug(f"Calculating dynamic position size for {symbol}")
            try:
                return self.sizer.size(
                    symbol, portfolio_value, risk_tolerance, _as_conditions(market_conditions)
                )
            except RiskCalculationError as e:
                logger.error(f"Position sizing failed for {symbol}: {e}")
                raise

    def calculate_adaptive_stop_loss(
        self,
        symbol: str,
        entry_price: float,
        current_price: float,
        position_age_hours: float,
        market_conditions: ConditionsLike = None,
    ) -> AdaptiveStopLoss:
        """Highest of the ATR, momentum and volatility stops, time-decayed."""
        with BoundLogger(symbol=symbol):
            logger.debug(f"Calculating adaptive stop-loss for {symbol}")
            try:
                return self.stop_loss.advise(
                    symbol,
                    entry_price,
                    current_price,
                    position_age_hours,
                    _as_conditions(market_conditions),
                )
            except RiskCalculationError as e:
                logger.error(f"Stop-loss calculation failed for {symbol}: {e}")
                raise

    def monitor_risks(self, snapshot: SnapshotLike) -> Tuple[RiskAlert, ...]:
        """Alerts ranked by descending severity (possibly empty)."""
        return self.monitor.monitor(_as_snapshot(snapshot))

    def perform_stress_testing(self, snapshot: SnapshotLike) -> Tuple[StressTestResult, ...]:
        """Scenario library results in library order."""
        logger.info("Performing stress testing scenarios")
        return self.assessor.stress_runner.run(_as_snapshot(snapshot))


def create_risk_engine(
    config_file: Optional[str] = None,
    config: Optional[Config] = None,
    volatility_provider: Optional[VolatilityProvider] = None,
    sink: Optional[ReportSink] = None,
) -> RiskEngine:
    """
    Build an engine from config.

    Args:
        config_file: Optional JSON/YAML config (ignored when config is given)
        config: Ready-made config
        volatility_provider: Single-symbol volatility estimator
        sink: Report sink; defaults to the one named in config

    Returns:
        RiskEngine
    """
    config = config or load_config(config_file)
    if sink is None:
        sink = create_sink(config.sink)
    return RiskEngine(config, volatility_provider=volatility_provider, sink=sink)
