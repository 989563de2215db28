"""
Kelly-based Position Sizing with Market Adjustment.

    kelly      = (p * avg_win - (1 - p) * avg_loss) / avg_win
    adjustment = 1.0 * 0.8 [VIX > 30] * 0.7 [bear] * 0.6 [low liquidity],
                 floored at 0.2
    size       = min(PV * risk_tolerance * kelly * adjustment, PV * 0.20)

The 20% concentration cap always binds last, so no recommendation exceeds
it. A negative edge gives a negative size, signalling that the book should
not hold the symbol.

The confidence interval is centred on the recommendation with half-width
``0.2 * size * volatility``, where volatility stands for one minus the
estimate confidence.

Reference:
    Kelly, J. L. (1956). "A New Interpretation of Information Rate"
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import SizingPolicy
from ..models import (
    ConfidenceInterval,
    DynamicPositionSizing,
    InvalidInputError,
    LiquidityConditions,
    MarketConditions,
    MarketTrend,
    require_finite,
)
from .numerics import ensure_finite, safe_denominator
from .volatility import HistoricalVolatilityProvider, VolatilityProvider

logger = logging.getLogger(__name__)


class PositionSizer:
    """
    Risk-adjusted position sizing for a single symbol.

    Example:
        >>> sizer = PositionSizer()
        >>> sizing = sizer.size('AAPL', 100_000, 0.5, MarketConditions())
        >>> print(f"Buy ${sizing.recommended_size:,.0f} ({sizing.risk_budget:.1f}% of book)")
    """

    def __init__(
        self,
        policy: Optional[SizingPolicy] = None,
        volatility_provider: Optional[VolatilityProvider] = None,
    ):
        self.policy = policy or SizingPolicy()
        self.volatility_provider = volatility_provider or HistoricalVolatilityProvider()

    def kelly_fraction(self) -> float:
        """Full Kelly fraction from the configured edge estimate."""
        p = self.policy.win_probability
        edge = p * self.policy.avg_win - (1.0 - p) * self.policy.avg_loss
        return edge / safe_denominator(self.policy.avg_win)

    def market_adjustment(self, market_conditions: MarketConditions) -> float:
        """Multiplicative regime adjustment, never below the floor."""
        adjustment = 1.0

        if market_conditions.volatility_index > self.policy.high_volatility_threshold:
            adjustment *= self.policy.high_volatility_multiplier
        if market_conditions.market_trend is MarketTrend.BEAR:
            adjustment *= self.policy.bear_market_multiplier
        if market_conditions.liquidity_conditions is LiquidityConditions.LOW:
            adjustment *= self.policy.low_liquidity_multiplier

        return max(self.policy.min_adjustment, adjustment)

    def confidence_interval(self, recommended_size: float, volatility: float) -> ConfidenceInterval:
        """Interval of half-width range * volatility around the recommendation."""
        size_range = recommended_size * self.policy.confidence_range_pct
        half_width = abs(size_range * volatility)
        return ConfidenceInterval(
            lower=recommended_size - half_width,
            upper=recommended_size + half_width,
        )

    def size(
        self,
        symbol: str,
        portfolio_value: float,
        risk_tolerance: float,
        market_conditions: MarketConditions,
    ) -> DynamicPositionSizing:
        """
        Recommend a position size.

        Args:
            symbol: Asset identifier
            portfolio_value: Total portfolio value (> 0)
            risk_tolerance: Fraction of the book the caller is willing to risk (>= 0)
            market_conditions: Current market state

        Returns:
            DynamicPositionSizing

        Raises:
            InvalidInputError: On empty symbol, non-positive portfolio value
                or negative risk tolerance
        """
        if not symbol:
            raise InvalidInputError("symbol must be a non-empty string")
        portfolio_value = require_finite("portfolio_value", portfolio_value)
        if portfolio_value <= 0:
            raise InvalidInputError(f"portfolio_value must be positive, got {portfolio_value}")
        risk_tolerance = require_finite("risk_tolerance", risk_tolerance)
        if risk_tolerance < 0:
            raise InvalidInputError(f"risk_tolerance must be non-negative, got {risk_tolerance}")

        volatility = self.volatility_provider.predict(symbol, market_conditions)
        kelly = self.kelly_fraction()
        adjustment = self.market_adjustment(market_conditions)

        base_size = portfolio_value * risk_tolerance * kelly * adjustment
        max_position = portfolio_value * self.policy.max_position_pct
        recommended = ensure_finite("recommended_size", min(base_size, max_position))

        reasoning = [
            f"Kelly fraction: {kelly:.4f}",
            f"Market adjustment: {adjustment:.4f}",
            f"Volatility prediction: {volatility:.4f}",
            f"Risk tolerance: {risk_tolerance:.4f}",
        ]
        if base_size > max_position:
            reasoning.append(
                f"Capped at {self.policy.max_position_pct:.0%} concentration limit"
            )
        elif base_size <= 0:
            reasoning.append("Non-positive edge: no long position supported")

        logger.debug(
            f"Sized {symbol}: {recommended:,.2f} (kelly={kelly:.4f}, adjustment={adjustment:.4f})"
        )

        return DynamicPositionSizing(
            symbol=symbol,
            recommended_size=recommended,
            max_position=max_position,
            risk_budget=recommended / portfolio_value * 100.0,
            kelly_fraction=kelly,
            confidence_interval=self.confidence_interval(recommended, volatility),
            reasoning=tuple(reasoning),
            market_adjustment=adjustment,
            volatility=volatility,
        )
