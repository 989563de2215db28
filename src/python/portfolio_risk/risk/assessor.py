"""
Portfolio Risk Assessment.

Sequences the risk components into a single report:

    1. Volatility per position (VIX-scaled historical)
    2. Parametric VaR / Expected Shortfall
    3. Per-position risk and correlation
    4. Stress scenarios
    5. Monte Carlo percentiles
    6. Performance figures (placeholders without a return history)

A report is all-or-nothing: any failure aborts the call with a
RiskCalculationError. Publishing to the report sink happens after the
report is complete and never fails the call.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

import numpy as np

from ..config import Config
from ..models import (
    PortfolioRisk,
    RiskAssessmentInput,
    RiskCalculationError,
    RiskMetrics,
    ScenarioAnalysis,
)
from ..monitoring.logging import BoundLogger
from ..monitoring.sinks import ReportSink, build_record, publish_safely
from ..registry import ModelRegistry
from .correlation import CorrelationAnalyzer
from .monte_carlo import MonteCarloSimulator
from .performance import PerformanceEstimator
from .position_risk import PositionRiskAnalyzer
from .stress_testing import StressTestRunner
from .var_calculator import ValueAtRiskCalculator
from .volatility import VolatilityEstimator

logger = logging.getLogger(__name__)


class PortfolioRiskAssessor:
    """
    Orchestrate a full portfolio risk assessment.

    Example:
        >>> assessor = PortfolioRiskAssessor(Config())
        >>> metrics = assessor.assess(snapshot, rng=np.random.default_rng(42))
        >>> print(f"95% VaR: ${metrics.portfolio_risk.var_95:,.0f}")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        sink: Optional[ReportSink] = None,
        registry: Optional[ModelRegistry] = None,
    ):
        self.config = config or Config()
        self.sink = sink
        self.registry = registry or ModelRegistry(self.config.models)

        self.volatility_estimator = VolatilityEstimator(self.config.volatility)
        self.correlation_analyzer = CorrelationAnalyzer()
        self.var_calculator = ValueAtRiskCalculator(self.config.var)
        self.monte_carlo = MonteCarloSimulator(self.config.monte_carlo)
        self.stress_runner = StressTestRunner.from_config(self.config.stress)
        self.position_analyzer = PositionRiskAnalyzer(self.correlation_analyzer)
        self.performance = PerformanceEstimator(self.config.performance)

    def _compute(
        self,
        snapshot: RiskAssessmentInput,
        rng: Optional[np.random.Generator],
    ) -> RiskMetrics:
        volatilities = self.volatility_estimator.estimate_all(snapshot)
        var = self.var_calculator.calculate(
            snapshot.portfolio_value, snapshot.positions, volatilities
        )
        position_risks = self.position_analyzer.analyze(snapshot, volatilities)
        stress_results = self.stress_runner.run(snapshot)
        monte_carlo = self.monte_carlo.simulate(snapshot.positions, volatilities, rng=rng)
        figures = self.performance.estimate(snapshot.return_history, snapshot.benchmark_returns)

        portfolio_risk = PortfolioRisk(
            var_95=var.var_95,
            var_99=var.var_99,
            expected_shortfall=var.expected_shortfall,
            max_drawdown=figures.max_drawdown,
            sharpe_ratio=figures.sharpe_ratio,
            sortino_ratio=figures.sortino_ratio,
            beta=figures.beta,
            alpha=figures.alpha,
            correlation_risk=self.correlation_analyzer.correlation_risk(
                snapshot.market_conditions.correlation_matrix
            ),
            concentration_index=self.correlation_analyzer.concentration_index(
                p.weight for p in snapshot.positions
            ),
        )

        return RiskMetrics(
            portfolio_risk=portfolio_risk,
            position_risks=position_risks,
            scenario_analysis=ScenarioAnalysis(
                stress_test_results=stress_results,
                monte_carlo_results=monte_carlo,
            ),
        )

    def assess(
        self,
        snapshot: RiskAssessmentInput,
        rng: Optional[np.random.Generator] = None,
    ) -> RiskMetrics:
        """
        Assess portfolio risk.

        Args:
            snapshot: Validated portfolio snapshot
            rng: Random source for Monte Carlo; defaults to one seeded from config

        Returns:
            RiskMetrics

        Raises:
            RiskCalculationError: If any step fails (no partial report)
        """
        assessment_id = uuid.uuid4().hex

        with BoundLogger(assessment_id=assessment_id):
            logger.info(
                f"Assessing portfolio risk: {len(snapshot.positions)} positions, "
                f"value={snapshot.portfolio_value:,.2f}"
            )

            try:
                metrics = self._compute(snapshot, rng)
            except RiskCalculationError as e:
                logger.error(f"Risk assessment failed: {e}")
                raise
            except Exception as e:
                logger.error(f"Risk assessment failed: {e}", exc_info=True)
                raise RiskCalculationError(f"Risk assessment failed: {e}") from e

            publish_safely(
                self.sink,
                build_record(
                    assessment_id,
                    snapshot.portfolio_value,
                    metrics.to_dict(),
                    self.registry.versions,
                ),
            )

            logger.info(
                f"Risk assessment complete: VaR95={metrics.portfolio_risk.var_95:,.2f}, "
                f"VaR99={metrics.portfolio_risk.var_99:,.2f}"
            )

        return metrics
