"""
Performance Statistics.

Computes drawdown and risk-adjusted return figures from an optional return
history. Without one (fewer than two points) the configured placeholder
figures are reported unchanged:

    max_drawdown 0.05, sharpe 1.2, sortino 1.5, beta 1.1, alpha 0.02

With a history:
    - Max drawdown: largest peak-to-trough fall of the compounded equity curve
    - Sharpe: mean(excess) / std(excess) * sqrt(periods_per_year)
    - Sortino: mean(excess) / downside_deviation * sqrt(periods_per_year)
    - Beta/alpha: regression on the benchmark (when one is supplied), alpha
      annualized

Zero denominators use the 0.01 floor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from ..config import PlaceholderMetrics
from .numerics import ensure_finite, safe_denominator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceFigures:
    """Drawdown and risk-adjusted return figures."""

    max_drawdown: float
    sharpe_ratio: float
    sortino_ratio: float
    beta: float
    alpha: float
    from_history: bool = False

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "beta": self.beta,
            "alpha": self.alpha,
            "from_history": self.from_history,
        }


def max_drawdown(returns: np.ndarray) -> float:
    """Maximum drawdown of compounded returns, starting from equity 1.0."""
    if len(returns) == 0:
        return 0.0
    equity = np.concatenate([[1.0], np.cumprod(1.0 + returns)])
    running_max = np.maximum.accumulate(equity)
    drawdowns = (running_max - equity) / running_max
    return float(np.max(drawdowns))


class PerformanceEstimator:
    """
    Estimate performance statistics, falling back to placeholders.

    Example:
        >>> estimator = PerformanceEstimator()
        >>> figures = estimator.estimate(daily_returns, benchmark_returns)
        >>> print(f"Sharpe: {figures.sharpe_ratio:.2f}")
    """

    def __init__(self, config: Optional[PlaceholderMetrics] = None):
        self.config = config or PlaceholderMetrics()

    def placeholders(self) -> PerformanceFigures:
        """Configured stand-in figures."""
        return PerformanceFigures(
            max_drawdown=self.config.max_drawdown,
            sharpe_ratio=self.config.sharpe_ratio,
            sortino_ratio=self.config.sortino_ratio,
            beta=self.config.beta,
            alpha=self.config.alpha,
        )

    def estimate(
        self,
        return_history: Sequence[float] = (),
        benchmark_returns: Sequence[float] = (),
    ) -> PerformanceFigures:
        """
        Compute performance figures.

        Args:
            return_history: Periodic portfolio returns
            benchmark_returns: Benchmark returns aligned with return_history

        Returns:
            PerformanceFigures (placeholders when history is too short)
        """
        if len(return_history) < 2:
            return self.placeholders()

        periods = self.config.periods_per_year
        returns = np.asarray(return_history, dtype=float)
        excess = returns - self.config.risk_free_rate / periods
        annualizer = np.sqrt(periods)

        sharpe = np.mean(excess) / safe_denominator(float(np.std(excess, ddof=1))) * annualizer

        downside_dev = float(np.sqrt(np.mean(np.minimum(excess, 0.0) ** 2)))
        sortino = np.mean(excess) / safe_denominator(downside_dev) * annualizer

        beta, alpha = self.config.beta, self.config.alpha
        if len(benchmark_returns) == len(returns):
            bench = np.asarray(benchmark_returns, dtype=float)
            bench_excess = bench - self.config.risk_free_rate / periods
            covariance = float(np.cov(excess, bench_excess, ddof=1)[0, 1])
            beta = covariance / safe_denominator(float(np.var(bench_excess, ddof=1)))
            alpha = (np.mean(excess) - beta * np.mean(bench_excess)) * periods

        figures = PerformanceFigures(
            max_drawdown=ensure_finite("max_drawdown", max_drawdown(returns)),
            sharpe_ratio=ensure_finite("sharpe_ratio", sharpe),
            sortino_ratio=ensure_finite("sortino_ratio", sortino),
            beta=ensure_finite("beta", beta),
            alpha=ensure_finite("alpha", alpha),
            from_history=True,
        )
        logger.debug(
            f"Performance from {len(returns)} returns: sharpe={figures.sharpe_ratio:.3f}, "
            f"max_dd={figures.max_drawdown:.2%}"
        )
        return figures
