"""
Monte Carlo Portfolio Return Simulation.

Each draw samples one return per position with the Box-Muller transform

    r = mu + sigma * sqrt(-2 ln u1) * cos(2 pi u2),   u1, u2 ~ U(0, 1)

where mu is the daily mean (annual_return / trading_days) and sigma the
symbol's volatility, and sums the weighted returns. Percentiles are read by
index from the ascending-sorted draws:

    worst_case_1 = draws[floor(0.01 N)]    best_case_95 = draws[floor(0.95 N)]
    worst_case_5 = draws[floor(0.05 N)]    best_case_99 = draws[floor(0.99 N)]

Randomness always comes from an explicit ``numpy.random.Generator``. The
batched entry point splits draws across child generators spawned from one
``SeedSequence``, so its output depends on the seed and batch count but not
on the number of worker threads.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import MonteCarloConfig
from ..models import InvalidInputError, MonteCarloResult, Position
from .numerics import ensure_finite

logger = logging.getLogger(__name__)

PERCENTILES = {
    "worst_case_1": 0.01,
    "worst_case_5": 0.05,
    "best_case_95": 0.95,
    "best_case_99": 0.99,
}


def box_muller(rng: np.random.Generator, size: Tuple[int, ...]) -> np.ndarray:
    """Standard normal draws via Box-Muller, one uniform pair per value."""
    # 1 - U[0, 1) lies in (0, 1], keeping the log finite
    u1 = 1.0 - rng.random(size)
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


class MonteCarloSimulator:
    """
    Simulate single-period portfolio returns.

    Example:
        >>> simulator = MonteCarloSimulator(MonteCarloConfig(seed=42))
        >>> result = simulator.simulate(positions, {'SPY': 0.02, 'TLT': 0.03})
        >>> print(f"1% worst case: {result.worst_case_1:.2%}")
    """

    def __init__(self, config: Optional[MonteCarloConfig] = None):
        self.config = config or MonteCarloConfig()
        if self.config.n_simulations < 1:
            raise InvalidInputError(
                f"n_simulations must be at least 1, got {self.config.n_simulations}"
            )
        if self.config.n_batches < 1:
            raise InvalidInputError(f"n_batches must be at least 1, got {self.config.n_batches}")

    def _make_rng(self, rng: Optional[np.random.Generator]) -> np.random.Generator:
        if rng is not None:
            return rng
        return np.random.default_rng(self.config.seed)

    @staticmethod
    def _arrays(
        positions: Sequence[Position],
        volatilities: Mapping[str, float],
    ) -> Tuple[np.ndarray, np.ndarray]:
        weights = np.array([p.weight for p in positions], dtype=float)
        vols = np.array([volatilities[p.symbol] for p in positions], dtype=float)
        return weights, vols

    def draw(
        self,
        weights: np.ndarray,
        vols: np.ndarray,
        n_draws: int,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """Weighted portfolio return for each of n_draws draws."""
        z = box_muller(rng, (n_draws, len(weights)))
        returns = self.config.daily_mean_return + vols * z
        return returns @ weights

    def _summarize(self, draws: np.ndarray, total: float) -> MonteCarloResult:
        n = len(draws)
        ordered = np.sort(draws)
        picks = {name: float(ordered[math.floor(p * n)]) for name, p in PERCENTILES.items()}

        mean = ensure_finite("expected_return", total / n)
        # Keeps worst_5 <= mean <= best_95 when N is tiny
        mean = min(max(mean, picks["worst_case_5"]), picks["best_case_95"])

        return MonteCarloResult(
            expected_return=mean,
            worst_case_5=picks["worst_case_5"],
            worst_case_1=picks["worst_case_1"],
            best_case_95=picks["best_case_95"],
            best_case_99=picks["best_case_99"],
            n_simulations=n,
        )

    def simulate(
        self,
        positions: Sequence[Position],
        volatilities: Mapping[str, float],
        rng: Optional[np.random.Generator] = None,
    ) -> MonteCarloResult:
        """
        Run the simulation in a single pass.

        Args:
            positions: Portfolio positions (weights are used)
            volatilities: Symbol -> volatility for every position
            rng: Random source; defaults to a generator seeded from config

        Returns:
            MonteCarloResult with ordered percentile outcomes
        """
        if self.config.n_batches > 1:
            return self.simulate_batched(positions, volatilities, rng=rng)

        weights, vols = self._arrays(positions, volatilities)
        draws = self.draw(weights, vols, self.config.n_simulations, self._make_rng(rng))

        result = self._summarize(draws, float(np.sum(draws)))
        logger.debug(
            f"Monte Carlo ({result.n_simulations} draws): mean={result.expected_return:.6f}, "
            f"p1={result.worst_case_1:.6f}, p99={result.best_case_99:.6f}"
        )
        return result

    def simulate_batched(
        self,
        positions: Sequence[Position],
        volatilities: Mapping[str, float],
        rng: Optional[np.random.Generator] = None,
        n_batches: Optional[int] = None,
        max_workers: Optional[int] = None,
    ) -> MonteCarloResult:
        """
        Run the simulation in independent batches on a thread pool.

        Each batch has its own child generator and returns its draws and
        partial sum; nothing is shared between batches. Results are merged
        in batch order.
        """
        n_batches = n_batches or self.config.n_batches
        max_workers = max_workers or self.config.max_workers
        n_total = self.config.n_simulations
        n_batches = max(1, min(n_batches, n_total))

        if rng is not None:
            root = np.random.SeedSequence(int(rng.integers(0, 2**63)))
        else:
            root = np.random.SeedSequence(self.config.seed)
        children = [np.random.default_rng(s) for s in root.spawn(n_batches)]

        base, extra = divmod(n_total, n_batches)
        sizes = [base + (1 if i < extra else 0) for i in range(n_batches)]
        weights, vols = self._arrays(positions, volatilities)

        def run_batch(index: int) -> Tuple[np.ndarray, float]:
            draws = self.draw(weights, vols, sizes[index], children[index])
            return draws, float(np.sum(draws))

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            partials: List[Tuple[np.ndarray, float]] = list(
                executor.map(run_batch, range(n_batches))
            )

        draws = np.concatenate([d for d, _ in partials])
        total = sum(s for _, s in partials)

        logger.debug(f"Merged {n_batches} Monte Carlo batches ({n_total} draws)")
        return self._summarize(draws, total)
