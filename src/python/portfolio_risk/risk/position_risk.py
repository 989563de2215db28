"""Per-position risk contribution."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Tuple

from ..models import PositionRisk, RiskAssessmentInput
from .correlation import CorrelationAnalyzer

logger = logging.getLogger(__name__)


class PositionRiskAnalyzer:
    """
    Break portfolio risk down by position.

    For each position:
        individual_risk      = position_value * volatility
        contribution_to_risk = individual_risk * weight
        concentration        = weight
        correlation_risk     = mean |rho| of the symbol's correlation row
    """

    def __init__(self, correlation_analyzer: Optional[CorrelationAnalyzer] = None):
        self.correlation_analyzer = correlation_analyzer or CorrelationAnalyzer()

    def analyze(
        self,
        snapshot: RiskAssessmentInput,
        volatilities: Mapping[str, float],
    ) -> Tuple[PositionRisk, ...]:
        """Position risks in input order."""
        correlation = self.correlation_analyzer.position_correlation_risk(
            snapshot.symbols, snapshot.market_conditions.correlation_matrix
        )

        risks = []
        for position in snapshot.positions:
            individual = position.position_value * volatilities[position.symbol]
            risks.append(
                PositionRisk(
                    symbol=position.symbol,
                    individual_risk=individual,
                    contribution_to_risk=individual * position.weight,
                    concentration=position.weight,
                    correlation_risk=correlation[position.symbol],
                )
            )

        logger.debug(f"Computed risk for {len(risks)} positions")
        return tuple(risks)
