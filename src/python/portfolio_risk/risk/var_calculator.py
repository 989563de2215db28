"""
Parametric Value at Risk (VaR) and Expected Shortfall.

Single-period, delta-normal approximation:

    sigma_p^2 = k * sum_i (w_i * sigma_i)^2     (k = correlation inflation)
    VaR_95    = PV * sigma_p * z_95
    VaR_99    = PV * sigma_p * z_99
    ES_95     = VaR_95 * m                        (m = shortfall multiplier)

Cross terms are not taken from the correlation matrix; the inflation factor
stands in for them. All constants come from ``VaRPolicy``.

Reference:
    - Jorion, P. (2007). "Value at Risk: The New Benchmark for Managing Financial Risk"
    - RiskMetrics Technical Document (1996)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from ..config import VaRPolicy
from ..models import Position
from .numerics import ensure_finite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaRResult:
    """
    Parametric VaR figures.

    Attributes:
        portfolio_volatility: sqrt of the inflated weighted variance
        var_95: 95% Value at Risk (positive currency amount)
        var_99: 99% Value at Risk
        expected_shortfall: 95% Expected Shortfall approximation
    """

    portfolio_volatility: float
    var_95: float
    var_99: float
    expected_shortfall: float

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "portfolio_volatility": self.portfolio_volatility,
            "var_95": self.var_95,
            "var_99": self.var_99,
            "expected_shortfall": self.expected_shortfall,
        }


class ValueAtRiskCalculator:
    """
    Calculate parametric VaR and Expected Shortfall.

    Example:
        >>> calculator = ValueAtRiskCalculator()
        >>> result = calculator.calculate(100_000, positions, {'SPY': 0.02, 'TLT': 0.03})
        >>> print(f"95% VaR: ${result.var_95:,.0f}")
    """

    def __init__(self, policy: Optional[VaRPolicy] = None):
        self.policy = policy or VaRPolicy()

    def portfolio_volatility(
        self,
        positions: Sequence[Position],
        volatilities: Mapping[str, float],
    ) -> float:
        """Inflated weighted portfolio volatility."""
        weights = np.array([p.weight for p in positions], dtype=float)
        vols = np.array([volatilities[p.symbol] for p in positions], dtype=float)

        variance = float(np.sum((weights * vols) ** 2)) * self.policy.correlation_inflation
        return math.sqrt(max(variance, 0.0))

    def calculate(
        self,
        portfolio_value: float,
        positions: Sequence[Position],
        volatilities: Mapping[str, float],
    ) -> VaRResult:
        """
        Calculate VaR at both confidence levels plus Expected Shortfall.

        Args:
            portfolio_value: Total portfolio value
            positions: Portfolio positions
            volatilities: Symbol -> volatility for every position

        Returns:
            VaRResult
        """
        sigma = self.portfolio_volatility(positions, volatilities)

        var_95 = ensure_finite("var_95", portfolio_value * sigma * self.policy.z_95)
        var_99 = ensure_finite("var_99", portfolio_value * sigma * self.policy.z_99)
        expected_shortfall = ensure_finite(
            "expected_shortfall", var_95 * self.policy.expected_shortfall_multiplier
        )

        logger.debug(
            f"Parametric VaR: sigma={sigma:.6f}, VaR95={var_95:,.2f}, VaR99={var_99:,.2f}"
        )

        return VaRResult(
            portfolio_volatility=sigma,
            var_95=var_95,
            var_99=var_99,
            expected_shortfall=expected_shortfall,
        )
