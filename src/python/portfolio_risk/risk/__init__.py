"""
Risk Calculation Module.

Provides the numerical components of the portfolio risk engine:

- **Volatility**: VIX-scaled historical estimates and pluggable single-symbol providers
- **Correlation**: Mean absolute correlation and Herfindahl concentration
- **VaR/ES**: Parametric Value at Risk with correlation inflation
- **Monte Carlo**: Box-Muller return simulation with a batched, threaded entry point
- **Stress Testing**: Named scenario library
- **Position Risk**: Per-position risk contribution
- **Performance**: Drawdown, Sharpe, Sortino, beta and alpha from return history
- **Position Sizing**: Kelly fraction with market adjustment and concentration cap
- **Stop-Loss**: ATR, momentum and volatility stops with time decay

Example:
    >>> from portfolio_risk.risk import PortfolioRiskAssessor, PositionSizer, StopLossAdviser
    >>>
    >>> metrics = PortfolioRiskAssessor().assess(snapshot)
    >>> print(f"95% VaR: ${metrics.portfolio_risk.var_95:,.0f}")
    >>>
    >>> sizing = PositionSizer().size('AAPL', 100_000, 0.5, conditions)
    >>> stop = StopLossAdviser().advise('AAPL', 100.0, 104.0, 24, conditions)

References:
    - Jorion (2007) "Value at Risk"
    - Kelly (1956) "A New Interpretation of Information Rate"
    - RiskMetrics Technical Document (1996)
"""

from .assessor import PortfolioRiskAssessor
from .correlation import CorrelationAnalyzer
from .monte_carlo import MonteCarloSimulator, box_muller
from .numerics import ensure_finite, safe_denominator
from .performance import PerformanceEstimator, PerformanceFigures, max_drawdown
from .position_risk import PositionRiskAnalyzer
from .position_sizer import PositionSizer
from .stop_loss import StopLossAdviser
from .stress_testing import DEFAULT_STRESS_SCENARIOS, StressScenario, StressTestRunner
from .var_calculator import ValueAtRiskCalculator, VaRResult
from .volatility import (
    HistoricalVolatilityProvider,
    JitteredVolatilityProvider,
    VolatilityEstimator,
    VolatilityProvider,
)

__all__ = [
    # Orchestration
    "PortfolioRiskAssessor",
    # Volatility
    "VolatilityEstimator",
    "VolatilityProvider",
    "HistoricalVolatilityProvider",
    "JitteredVolatilityProvider",
    # Correlation
    "CorrelationAnalyzer",
    # VaR
    "ValueAtRiskCalculator",
    "VaRResult",
    # Simulation and stress
    "MonteCarloSimulator",
    "box_muller",
    "StressScenario",
    "StressTestRunner",
    "DEFAULT_STRESS_SCENARIOS",
    # Position level
    "PositionRiskAnalyzer",
    "PositionSizer",
    "StopLossAdviser",
    # Performance
    "PerformanceEstimator",
    "PerformanceFigures",
    "max_drawdown",
    # Numerics
    "safe_denominator",
    "ensure_finite",
]
