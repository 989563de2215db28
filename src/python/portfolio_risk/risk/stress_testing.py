"""
Stress Testing with a Named Scenario Library.

Scenarios are immutable records carrying optional shocks. Only the market
move is priced today:

    portfolio_impact = portfolio_value * market_move

Scenarios without a market move (rate, volatility, liquidity and currency
shocks) report zero impact. Probabilities are static metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..config import StressConfig
from ..models import InvalidInputError, RiskAssessmentInput, StressTestResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StressScenario:
    """
    A named stress scenario.

    Attributes:
        name: Display name
        probability: Static likelihood estimate (0..1)
        market_move: Fractional move applied to portfolio value
        interest_rate_change: Rate shock (absolute)
        volatility_spike: Volatility multiplier
        liquidity_shock: Fractional liquidity change
        currency_move: Fractional currency move
    """

    name: str
    probability: float
    market_move: Optional[float] = None
    interest_rate_change: Optional[float] = None
    volatility_spike: Optional[float] = None
    liquidity_shock: Optional[float] = None
    currency_move: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise InvalidInputError("Stress scenario needs a name")
        if not 0.0 <= self.probability <= 1.0:
            raise InvalidInputError(
                f"Stress scenario '{self.name}' probability {self.probability} outside [0, 1]"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StressScenario":
        """Create a scenario from a dictionary (config entry)."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidInputError(f"Unknown stress scenario keys: {sorted(unknown)}")
        return cls(**data)

    def impact(self, portfolio_value: float) -> float:
        """Currency impact on a portfolio of the given value."""
        if self.market_move is None:
            return 0.0
        return portfolio_value * self.market_move


DEFAULT_STRESS_SCENARIOS: Tuple[StressScenario, ...] = (
    StressScenario("Market Crash (-20%)", probability=0.05, market_move=-0.20),
    StressScenario("Interest Rate Spike (+2%)", probability=0.15, interest_rate_change=0.02),
    StressScenario("High Volatility (VIX > 40)", probability=0.10, volatility_spike=2.0),
    StressScenario("Liquidity Crisis", probability=0.03, liquidity_shock=-0.5),
    StressScenario("Currency Devaluation (-15%)", probability=0.08, currency_move=-0.15),
)


class StressTestRunner:
    """
    Apply an ordered scenario library to a portfolio snapshot.

    Example:
        >>> runner = StressTestRunner()
        >>> for result in runner.run(snapshot):
        ...     print(f"{result.scenario}: ${result.portfolio_impact:,.0f}")
    """

    def __init__(self, scenarios: Optional[Iterable[StressScenario]] = None):
        self.scenarios: Tuple[StressScenario, ...] = tuple(
            DEFAULT_STRESS_SCENARIOS if scenarios is None else scenarios
        )
        logger.debug(f"Initialized StressTestRunner with {len(self.scenarios)} scenarios")

    @classmethod
    def from_config(cls, config: StressConfig) -> "StressTestRunner":
        """Build the library from config: defaults first, then custom scenarios."""
        scenarios = list(DEFAULT_STRESS_SCENARIOS) if config.include_defaults else []
        scenarios.extend(StressScenario.from_dict(s) for s in config.custom_scenarios)
        return cls(scenarios)

    def apply(self, scenario: StressScenario, portfolio_value: float) -> StressTestResult:
        """Apply one scenario."""
        return StressTestResult(
            scenario=scenario.name,
            portfolio_impact=scenario.impact(portfolio_value),
            probability=scenario.probability,
        )

    def run(self, snapshot: RiskAssessmentInput) -> Tuple[StressTestResult, ...]:
        """Run every scenario, preserving library order."""
        results = tuple(self.apply(s, snapshot.portfolio_value) for s in self.scenarios)
        worst = min((r.portfolio_impact for r in results), default=0.0)
        logger.debug(f"Ran {len(results)} stress scenarios, worst impact {worst:,.2f}")
        return results

    def summary(self, results: Iterable[StressTestResult]) -> Dict[str, Any]:
        """Probability-weighted loss and worst scenario."""
        results = list(results)
        if not results:
            return {"n_scenarios": 0, "expected_impact": 0.0, "worst_scenario": None}
        worst = min(results, key=lambda r: r.portfolio_impact)
        return {
            "n_scenarios": len(results),
            "expected_impact": sum(r.portfolio_impact * r.probability for r in results),
            "worst_scenario": worst.scenario,
            "worst_impact": worst.portfolio_impact,
        }
