"""
Correlation and Concentration Analysis.

Summarises a (possibly sparse, possibly asymmetric) correlation matrix:

    - Aggregate correlation risk: mean |rho| over every ordered pair
      (symbol1 != symbol2) present in the matrix
    - Per-symbol correlation risk: mean |rho| over the symbol's own row,
      self entry included when present
    - Herfindahl concentration index of position weights

The matrix is never symmetrised; each direction counts as its own pair.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class CorrelationAnalyzer:
    """
    Correlation risk statistics from a nested symbol -> symbol mapping.

    Example:
        >>> analyzer = CorrelationAnalyzer()
        >>> matrix = {'SPY': {'SPY': 1.0, 'QQQ': 0.8}, 'QQQ': {'SPY': 0.8}}
        >>> analyzer.correlation_risk(matrix)
        0.8
    """

    @staticmethod
    def to_frame(correlation_matrix: Mapping[str, Mapping[str, float]]) -> pd.DataFrame:
        """Flatten the matrix into (symbol1, symbol2, correlation) rows."""
        records = [
            (symbol1, symbol2, float(corr))
            for symbol1, row in correlation_matrix.items()
            for symbol2, corr in row.items()
        ]
        return pd.DataFrame.from_records(records, columns=["symbol1", "symbol2", "correlation"])

    def correlation_risk(self, correlation_matrix: Mapping[str, Mapping[str, float]]) -> float:
        """
        Mean absolute off-diagonal correlation.

        Returns:
            Value in [0, 1]; 0 when no off-diagonal pair is present
        """
        frame = self.to_frame(correlation_matrix)
        if frame.empty:
            return 0.0

        pairs = frame[frame["symbol1"] != frame["symbol2"]]
        if pairs.empty:
            return 0.0

        return float(pairs["correlation"].abs().mean())

    def position_correlation_risk(
        self,
        symbols: Iterable[str],
        correlation_matrix: Mapping[str, Mapping[str, float]],
    ) -> Dict[str, float]:
        """
        Mean absolute correlation of each symbol's row.

        Args:
            symbols: Symbols to report, in output order
            correlation_matrix: Nested correlation mapping

        Returns:
            Symbol -> mean |rho| (0 for symbols without a row)
        """
        frame = self.to_frame(correlation_matrix)
        if frame.empty:
            row_means: Dict[str, float] = {}
        else:
            row_means = frame.assign(abs_corr=frame["correlation"].abs()).groupby(
                "symbol1", sort=False
            )["abs_corr"].mean().to_dict()

        return {symbol: float(row_means.get(symbol, 0.0)) for symbol in symbols}

    @staticmethod
    def concentration_index(weights: Iterable[float]) -> float:
        """
        Herfindahl-Hirschman index of weights: sum(w_i^2).

        1.0 for a single fully-weighted position, 1/N for N equal weights.
        """
        w = np.asarray(list(weights), dtype=float)
        if w.size == 0:
            return 0.0
        return float(np.sum(w ** 2))
