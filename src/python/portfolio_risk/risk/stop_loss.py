"""
Adaptive Stop-Loss Levels for Long Positions.

Three candidate stops are computed at the current price P with volatility s:

    atr        = P - P * s * 2.0
    momentum   = P * 0.97
    volatility = P * (1 - s * m),   m = 2.5 if VIX > 25 else 2.0

The highest candidate (the tightest cut) is selected; ties go to the
earlier method in the order above. The stop is then scaled by a time decay

    decay = max(0.5, 1 - age_hours / 168)

which moves it down toward half its level over one week.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Optional, Tuple

from ..config import StopLossPolicy
from ..models import (
    AdaptiveStopLoss,
    InvalidInputError,
    MarketConditions,
    StopLossType,
    require_finite,
)
from .numerics import ensure_finite
from .volatility import HistoricalVolatilityProvider, VolatilityProvider

logger = logging.getLogger(__name__)

# Candidate order doubles as the tie-break order
CANDIDATE_ORDER: Tuple[StopLossType, ...] = (
    StopLossType.ATR,
    StopLossType.MOMENTUM,
    StopLossType.VOLATILITY,
)


class StopLossAdviser:
    """
    Multi-signal stop-loss recommendation.

    Example:
        >>> adviser = StopLossAdviser()
        >>> stop = adviser.advise('AAPL', 100.0, 100.0, 0, MarketConditions())
        >>> print(f"{stop.stop_loss_type.value} stop at {stop.new_stop_loss:.2f}")
        momentum stop at 97.00
    """

    def __init__(
        self,
        policy: Optional[StopLossPolicy] = None,
        volatility_provider: Optional[VolatilityProvider] = None,
    ):
        self.policy = policy or StopLossPolicy()
        self.volatility_provider = volatility_provider or HistoricalVolatilityProvider()

    def candidates(
        self,
        current_price: float,
        volatility: float,
        market_conditions: MarketConditions,
    ) -> Dict[StopLossType, float]:
        """Candidate stop levels keyed by method, in tie-break order."""
        if market_conditions.volatility_index > self.policy.high_volatility_threshold:
            multiplier = self.policy.high_volatility_multiplier
        else:
            multiplier = self.policy.volatility_multiplier

        return {
            StopLossType.ATR: current_price - current_price * volatility * self.policy.atr_multiplier,
            StopLossType.MOMENTUM: current_price * (1.0 - self.policy.momentum_stop_pct),
            StopLossType.VOLATILITY: current_price * (1.0 - volatility * multiplier),
        }

    @staticmethod
    def select(candidates: Dict[StopLossType, float]) -> Tuple[StopLossType, float]:
        """
        Pick the highest candidate.

        Only a strictly higher value replaces the running best, so ties keep
        the earlier method. If no candidate is positive the result is a zero
        stop labelled ATR.
        """
        best_type, best_level = StopLossType.ATR, 0.0
        for stop_type in CANDIDATE_ORDER:
            level = candidates[stop_type]
            if level > best_level:
                best_type, best_level = stop_type, level
        return best_type, best_level

    def time_decay(self, position_age_hours: float) -> float:
        """Linear decay from 1.0 at entry to the floor after one decay period."""
        decay = 1.0 - position_age_hours / self.policy.decay_period_hours
        return max(self.policy.min_time_decay, decay)

    def advise(
        self,
        symbol: str,
        entry_price: float,
        current_price: float,
        position_age_hours: float,
        market_conditions: MarketConditions,
    ) -> AdaptiveStopLoss:
        """
        Recommend a stop-loss level.

        Args:
            symbol: Asset identifier
            entry_price: Average entry price (> 0)
            current_price: Latest price (> 0)
            position_age_hours: Hours since entry (>= 0)
            market_conditions: Current market state

        Returns:
            AdaptiveStopLoss

        Raises:
            InvalidInputError: On non-positive prices or negative age
        """
        if not symbol:
            raise InvalidInputError("symbol must be a non-empty string")
        entry_price = require_finite("entry_price", entry_price)
        current_price = require_finite("current_price", current_price)
        position_age_hours = require_finite("position_age_hours", position_age_hours)
        if entry_price <= 0 or current_price <= 0:
            raise InvalidInputError(
                f"{symbol}: prices must be positive (entry={entry_price}, current={current_price})"
            )
        if position_age_hours < 0:
            raise InvalidInputError(f"{symbol}: position_age_hours must be non-negative")

        volatility = self.volatility_provider.predict(symbol, market_conditions)
        levels = self.candidates(current_price, volatility, market_conditions)
        stop_type, level = self.select(levels)

        decay = self.time_decay(position_age_hours)
        new_stop = ensure_finite("new_stop_loss", level * decay)
        risk_ratio = abs(current_price - new_stop) / current_price

        logger.debug(
            f"Stop-loss for {symbol}: {stop_type.value} {level:.4f} x decay {decay:.3f} "
            f"= {new_stop:.4f}"
        )

        return AdaptiveStopLoss(
            symbol=symbol,
            current_stop_loss=entry_price * (1.0 - self.policy.placeholder_stop_pct),
            new_stop_loss=new_stop,
            stop_loss_type=stop_type,
            risk_ratio=risk_ratio,
            time_decay=decay,
            volatility_adjustment=volatility,
            trend_adjustment=1.0,
            candidates=MappingProxyType({t.value: v for t, v in levels.items()}),
        )
