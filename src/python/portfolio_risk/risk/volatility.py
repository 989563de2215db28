"""
Volatility Estimation.

Two capabilities live here:

    - VolatilityEstimator: portfolio-wide estimates from a snapshot's
      historical volatility, scaled by the market volatility index
      (sigma = sigma_hist * (1 + VIX / 20)).
    - VolatilityProvider: the pluggable single-symbol estimator used by
      position sizing and stop-loss advice. Implementations can wrap a real
      model; the bundled ones are a historical lookup and a seeded stand-in.

Missing data never raises: it degrades to the default baseline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

import numpy as np

from ..config import VolatilityPolicy
from ..models import MarketConditions, RiskAssessmentInput

logger = logging.getLogger(__name__)


class VolatilityEstimator:
    """
    Estimate per-symbol volatility from a portfolio snapshot.

    Example:
        >>> estimator = VolatilityEstimator()
        >>> vols = estimator.estimate_all(snapshot)
        >>> print(f"SPY vol: {vols['SPY']:.2%}")
    """

    def __init__(self, policy: Optional[VolatilityPolicy] = None):
        self.policy = policy or VolatilityPolicy()

    def market_scale(self, market_conditions: MarketConditions) -> float:
        """Linear VIX scaling factor around the neutral level."""
        return 1.0 + market_conditions.volatility_index / self.policy.neutral_volatility_index

    def estimate(
        self,
        symbol: str,
        historical_volatility: Mapping[str, float],
        market_conditions: MarketConditions,
    ) -> float:
        """
        Estimate volatility for one symbol.

        Args:
            symbol: Asset identifier
            historical_volatility: Symbol -> historical volatility
            market_conditions: Current market state

        Returns:
            Non-negative volatility estimate
        """
        # A zero entry is treated like a missing one
        base = historical_volatility.get(symbol) or self.policy.default_volatility
        return base * self.market_scale(market_conditions)

    def estimate_all(self, snapshot: RiskAssessmentInput) -> Dict[str, float]:
        """Estimate volatility for every position, in position order."""
        volatilities = {
            position.symbol: self.estimate(
                position.symbol,
                snapshot.historical_volatility,
                snapshot.market_conditions,
            )
            for position in snapshot.positions
        }
        logger.debug(f"Estimated volatilities for {len(volatilities)} symbols")
        return volatilities


class VolatilityProvider(ABC):
    """Single-symbol volatility capability: (symbol, conditions) -> volatility."""

    @abstractmethod
    def predict(self, symbol: str, market_conditions: MarketConditions) -> float:
        """Return a non-negative volatility estimate for symbol."""
        pass

    def __call__(self, symbol: str, market_conditions: MarketConditions) -> float:
        return self.predict(symbol, market_conditions)


class HistoricalVolatilityProvider(VolatilityProvider):
    """Look up a fixed volatility table, falling back to a default."""

    def __init__(
        self,
        volatilities: Optional[Mapping[str, float]] = None,
        default_volatility: float = 0.02,
    ):
        self.volatilities = dict(volatilities or {})
        self.default_volatility = default_volatility

    def predict(self, symbol: str, market_conditions: MarketConditions) -> float:
        return self.volatilities.get(symbol) or self.default_volatility


class JitteredVolatilityProvider(VolatilityProvider):
    """
    Stand-in estimator: base + U(0, 1) * spread.

    Draws from an injected generator so results are reproducible. Calls
    sharing one provider advance the same generator; pass a fresh provider
    per call when calls must be independent.
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        base: float = 0.02,
        spread: float = 0.01,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.base = base
        self.spread = spread

    def predict(self, symbol: str, market_conditions: MarketConditions) -> float:
        return self.base + float(self.rng.random()) * self.spread
