"""
Risk Alerting.

Threshold rules evaluated against a portfolio snapshot:
- Concentration: any position weight strictly above the limit (default 20%)
- Correlation: mean |rho| of a position's row above a limit
- Volatility: market volatility index above a limit
- VaR breach: parametric VaR95 above a fraction of portfolio value
- Liquidity: low market liquidity
- Drawdown: realised max drawdown above a limit

Only the concentration rule is active by default; the others emit nothing
until their threshold is configured in ``MonitorPolicy``. Alerts from all
rules are returned sorted by descending severity, keeping detection order
among equal severities.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from ..config import MonitorPolicy, PlaceholderMetrics, VaRPolicy, VolatilityPolicy
from ..models import (
    AlertSeverity,
    AlertType,
    LiquidityConditions,
    RiskAlert,
    RiskAssessmentInput,
)
from ..risk.correlation import CorrelationAnalyzer
from ..risk.performance import PerformanceEstimator
from ..risk.var_calculator import ValueAtRiskCalculator
from ..risk.volatility import VolatilityEstimator

logger = logging.getLogger(__name__)


def sort_alerts(alerts: Iterable[RiskAlert]) -> List[RiskAlert]:
    """Sort by descending severity rank; equal ranks keep their order."""
    # sorted() is stable
    return sorted(alerts, key=lambda a: a.severity.rank, reverse=True)


def make_alert(
    alert_type: AlertType,
    severity: AlertSeverity,
    message: str,
    recommendations: Sequence[str] = (),
    affected_positions: Sequence[str] = (),
    requires_action: bool = False,
    **metadata,
) -> RiskAlert:
    """Build an alert with a fresh id and UTC timestamp."""
    scope = "_".join(affected_positions) or "portfolio"
    return RiskAlert(
        alert_id=f"{alert_type.value}_{scope}_{uuid.uuid4().hex[:12]}",
        severity=severity,
        type=alert_type,
        message=message,
        recommendations=tuple(recommendations),
        affected_positions=tuple(affected_positions),
        timestamp=datetime.now(timezone.utc),
        requires_action=requires_action,
        metadata=metadata or None,
    )


# =============================================================================
# Rules
# =============================================================================


class AlertRule(ABC):
    """A single threshold check producing zero or more alerts."""

    name: str = "rule"

    @abstractmethod
    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        """Return the alerts triggered by snapshot, in detection order."""
        pass


class ConcentrationRule(AlertRule):
    """One high-severity alert per position whose weight exceeds the limit."""

    name = "concentration"

    def __init__(self, limit: float = 0.20):
        self.limit = limit

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        alerts = []
        for position in snapshot.positions:
            if position.weight > self.limit:
                alerts.append(
                    make_alert(
                        AlertType.CONCENTRATION,
                        AlertSeverity.HIGH,
                        f"Position in {position.symbol} exceeds concentration limit "
                        f"({position.weight * 100:.1f}% > {self.limit * 100:g}%)",
                        recommendations=[
                            "Consider reducing position size",
                            "Diversify into other assets",
                        ],
                        affected_positions=[position.symbol],
                        requires_action=True,
                        weight=position.weight,
                        limit=self.limit,
                    )
                )
        return alerts


class CorrelationRule(AlertRule):
    """Medium-severity alert per position whose mean |rho| exceeds the limit."""

    name = "correlation"

    def __init__(
        self,
        limit: Optional[float] = None,
        analyzer: Optional[CorrelationAnalyzer] = None,
    ):
        self.limit = limit
        self.analyzer = analyzer or CorrelationAnalyzer()

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        if self.limit is None:
            return []

        risks = self.analyzer.position_correlation_risk(
            snapshot.symbols, snapshot.market_conditions.correlation_matrix
        )
        return [
            make_alert(
                AlertType.CORRELATION,
                AlertSeverity.MEDIUM,
                f"{symbol} mean absolute correlation {corr:.2f} exceeds {self.limit:.2f}",
                recommendations=["Add less correlated assets", "Review hedges"],
                affected_positions=[symbol],
                correlation=corr,
                limit=self.limit,
            )
            for symbol, corr in risks.items()
            if corr > self.limit
        ]


class VolatilityRule(AlertRule):
    """High-severity alert when the volatility index exceeds the limit."""

    name = "volatility"

    def __init__(self, limit: Optional[float] = None):
        self.limit = limit

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        vix = snapshot.market_conditions.volatility_index
        if self.limit is None or vix <= self.limit:
            return []

        return [
            make_alert(
                AlertType.VOLATILITY,
                AlertSeverity.HIGH,
                f"Volatility index {vix:.1f} above limit {self.limit:.1f}",
                recommendations=["Tighten stop-losses", "Reduce gross exposure"],
                affected_positions=snapshot.symbols,
                requires_action=True,
                volatility_index=vix,
                limit=self.limit,
            )
        ]


class VaRBreachRule(AlertRule):
    """Critical alert when VaR95 exceeds a fraction of portfolio value."""

    name = "var_breach"

    def __init__(
        self,
        limit_pct: Optional[float] = None,
        calculator: Optional[ValueAtRiskCalculator] = None,
        estimator: Optional[VolatilityEstimator] = None,
    ):
        self.limit_pct = limit_pct
        self.calculator = calculator or ValueAtRiskCalculator()
        self.estimator = estimator or VolatilityEstimator()

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        if self.limit_pct is None:
            return []

        volatilities = self.estimator.estimate_all(snapshot)
        result = self.calculator.calculate(snapshot.portfolio_value, snapshot.positions, volatilities)
        var_pct = result.var_95 / snapshot.portfolio_value
        if var_pct <= self.limit_pct:
            return []

        return [
            make_alert(
                AlertType.VAR_BREACH,
                AlertSeverity.CRITICAL,
                f"95% VaR {var_pct:.2%} of portfolio exceeds limit {self.limit_pct:.2%}",
                recommendations=["Reduce position sizes", "Hedge largest contributors"],
                affected_positions=snapshot.symbols,
                requires_action=True,
                var_95=result.var_95,
                limit_pct=self.limit_pct,
            )
        ]


class LiquidityRule(AlertRule):
    """Medium-severity alert when market liquidity is low."""

    name = "liquidity"

    def __init__(self, enabled: bool = False):
        self.enabled = enabled

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        if not self.enabled:
            return []
        if snapshot.market_conditions.liquidity_conditions is not LiquidityConditions.LOW:
            return []

        return [
            make_alert(
                AlertType.LIQUIDITY,
                AlertSeverity.MEDIUM,
                "Market liquidity is low",
                recommendations=["Use limit orders", "Stagger large exits"],
                affected_positions=snapshot.symbols,
            )
        ]


class DrawdownRule(AlertRule):
    """Critical alert when realised max drawdown exceeds the limit."""

    name = "drawdown"

    def __init__(
        self,
        limit: Optional[float] = None,
        estimator: Optional[PerformanceEstimator] = None,
    ):
        self.limit = limit
        self.estimator = estimator or PerformanceEstimator()

    def evaluate(self, snapshot: RiskAssessmentInput) -> List[RiskAlert]:
        # Placeholder figures are not evidence of a drawdown
        if self.limit is None or len(snapshot.return_history) < 2:
            return []

        figures = self.estimator.estimate(snapshot.return_history, snapshot.benchmark_returns)
        if figures.max_drawdown <= self.limit:
            return []

        return [
            make_alert(
                AlertType.DRAWDOWN,
                AlertSeverity.CRITICAL,
                f"Max drawdown {figures.max_drawdown:.2%} exceeds limit {self.limit:.2%}",
                recommendations=["De-risk the portfolio", "Review strategy allocation"],
                affected_positions=snapshot.symbols,
                requires_action=True,
                max_drawdown=figures.max_drawdown,
                limit=self.limit,
            )
        ]


# =============================================================================
# Monitor
# =============================================================================


class RiskMonitor:
    """
    Run an ordered set of alert rules and rank the results.

    Example:
        >>> monitor = RiskMonitor()
        >>> for alert in monitor.monitor(snapshot):
        ...     print(alert.severity.value, alert.message)
    """

    def __init__(self, rules: Optional[Sequence[AlertRule]] = None):
        self.rules: Tuple[AlertRule, ...] = tuple(
            rules if rules is not None else (ConcentrationRule(),)
        )

    @classmethod
    def from_config(
        cls,
        policy: MonitorPolicy,
        volatility: Optional[VolatilityPolicy] = None,
        var: Optional[VaRPolicy] = None,
        performance: Optional[PlaceholderMetrics] = None,
    ) -> "RiskMonitor":
        """Build the standard rule set from config."""
        return cls(
            [
                ConcentrationRule(policy.concentration_limit),
                CorrelationRule(policy.correlation_limit),
                VolatilityRule(policy.volatility_index_limit),
                VaRBreachRule(
                    policy.var_limit_pct,
                    calculator=ValueAtRiskCalculator(var),
                    estimator=VolatilityEstimator(volatility),
                ),
                LiquidityRule(policy.low_liquidity_alerts),
                DrawdownRule(policy.drawdown_limit, estimator=PerformanceEstimator(performance)),
            ]
        )

    def monitor(self, snapshot: RiskAssessmentInput) -> Tuple[RiskAlert, ...]:
        """Evaluate every rule and return alerts ranked by severity."""
        detected: List[RiskAlert] = []
        for rule in self.rules:
            detected.extend(rule.evaluate(snapshot))

        alerts = sort_alerts(detected)
        for alert in alerts:
            logger.warning(f"ALERT [{alert.severity.value}] [{alert.type.value}] {alert.message}")

        logger.debug(f"Risk monitor evaluated {len(self.rules)} rules, {len(alerts)} alerts")
        return tuple(alerts)
