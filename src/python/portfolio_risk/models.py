"""
Value objects for the portfolio risk engine.

Every entity here is immutable: inputs are validated once at construction
and results are created fresh on each engine call. Input entities accept
both snake_case keys and the camelCase keys used by upstream JSON snapshots
in ``from_dict``.

Error taxonomy:
    - RiskCalculationError: base error raised by the engine
    - InvalidInputError: bad snapshot, fails before any computation
    - NumericInstabilityError: a computation produced a non-finite result
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple


class RiskCalculationError(Exception):
    """Raised when a risk calculation cannot be completed."""

    pass


class InvalidInputError(RiskCalculationError, ValueError):
    """Raised when an input snapshot violates a precondition."""

    pass


class NumericInstabilityError(RiskCalculationError, ArithmeticError):
    """Raised when a calculation produces NaN or infinity."""

    pass


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in data."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def require_finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(value):
        raise InvalidInputError(f"{name} must be finite, got {value}")
    return value


def _parse_enum(enum_cls, value: Any, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInputError(f"{name} must be one of [{allowed}], got {value!r}") from e


def _require_mapping(name: str, value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidInputError(f"{name} must be a mapping, got {type(value).__name__}")
    return value


def _require_series(name: str, values: Any) -> Tuple[float, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
        raise InvalidInputError(f"{name} must be a sequence of numbers, got {type(values).__name__}")
    return tuple(require_finite(name, v) for v in values)


# =============================================================================
# Enumerations
# =============================================================================


class MarketTrend(Enum):
    """Qualitative market regime."""

    BULL = "bull"
    BEAR = "bear"
    SIDEWAYS = "sideways"


class LiquidityConditions(Enum):
    """Market liquidity level."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StopLossType(Enum):
    """Stop-loss methods."""

    FIXED = "fixed"
    TRAILING = "trailing"
    VOLATILITY = "volatility"
    ATR = "atr"
    MOMENTUM = "momentum"


class AlertSeverity(Enum):
    """Alert severity levels, totally ordered by rank."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank for ordering (higher = more severe)."""
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


class AlertType(Enum):
    """Risk alert categories."""

    CONCENTRATION = "concentration"
    CORRELATION = "correlation"
    VOLATILITY = "volatility"
    DRAWDOWN = "drawdown"
    VAR_BREACH = "var_breach"
    LIQUIDITY = "liquidity"


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class Position:
    """
    A single holding in a portfolio snapshot.

    Attributes:
        symbol: Asset identifier
        quantity: Units held
        current_price: Latest market price
        entry_price: Average entry price
        position_value: quantity * current_price
        weight: Fraction of portfolio value (0..1)
    """

    symbol: str
    quantity: float
    current_price: float
    entry_price: float
    position_value: float
    weight: float

    def __post_init__(self):
        if not isinstance(self.symbol, str) or not self.symbol:
            raise InvalidInputError(f"Position symbol must be a non-empty string, got {self.symbol!r}")
        for name in ("quantity", "current_price", "entry_price", "position_value", "weight"):
            object.__setattr__(self, name, require_finite(f"{self.symbol}.{name}", getattr(self, name)))
        if self.current_price < 0 or self.entry_price < 0:
            raise InvalidInputError(f"{self.symbol}: prices must be non-negative")
        if not 0.0 <= self.weight <= 1.0:
            raise InvalidInputError(f"{self.symbol}: weight {self.weight} outside [0, 1]")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        """Create a position from a dictionary."""
        if not isinstance(data, Mapping):
            raise InvalidInputError(f"malformed position entry: {data!r}")
        quantity = _pick(data, "quantity", default=0.0)
        current_price = _pick(data, "current_price", "currentPrice", default=0.0)
        position_value = _pick(data, "position_value", "positionValue")
        if position_value is None:
            position_value = require_finite("quantity", quantity) * require_finite(
                "current_price", current_price
            )
        return cls(
            symbol=_pick(data, "symbol"),
            quantity=quantity,
            current_price=current_price,
            entry_price=_pick(data, "entry_price", "entryPrice", default=current_price),
            position_value=position_value,
            weight=_pick(data, "weight", default=0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "current_price": self.current_price,
            "entry_price": self.entry_price,
            "position_value": self.position_value,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class MarketConditions:
    """
    Market state at snapshot time.

    The correlation matrix is copied into read-only mappings and is never
    assumed to be symmetric or complete.
    """

    volatility_index: float = 20.0
    market_trend: MarketTrend = MarketTrend.SIDEWAYS
    liquidity_conditions: LiquidityConditions = LiquidityConditions.MEDIUM
    correlation_matrix: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def __post_init__(self):
        vix = require_finite("volatility_index", self.volatility_index)
        if vix < 0:
            raise InvalidInputError(f"volatility_index must be non-negative, got {vix}")
        object.__setattr__(self, "volatility_index", vix)
        object.__setattr__(
            self, "market_trend", _parse_enum(MarketTrend, self.market_trend, "market_trend")
        )
        object.__setattr__(
            self,
            "liquidity_conditions",
            _parse_enum(LiquidityConditions, self.liquidity_conditions, "liquidity_conditions"),
        )

        matrix = {}
        rows = _require_mapping("correlation_matrix", self.correlation_matrix)
        for symbol1, row in rows.items():
            if not isinstance(row, Mapping):
                raise InvalidInputError(f"correlation row for {symbol1} must be a mapping")
            clean_row = {}
            for symbol2, corr in row.items():
                corr = require_finite(f"correlation[{symbol1}][{symbol2}]", corr)
                if not -1.0 <= corr <= 1.0:
                    raise InvalidInputError(
                        f"correlation[{symbol1}][{symbol2}] = {corr} outside [-1, 1]"
                    )
                clean_row[str(symbol2)] = corr
            matrix[str(symbol1)] = MappingProxyType(clean_row)
        object.__setattr__(self, "correlation_matrix", MappingProxyType(matrix))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MarketConditions":
        """Create market conditions from a dictionary."""
        data = _require_mapping("market_conditions", data)
        return cls(
            volatility_index=_pick(data, "volatility_index", "volatilityIndex", default=20.0),
            market_trend=_pick(data, "market_trend", "marketTrend", default="sideways"),
            liquidity_conditions=_pick(
                data, "liquidity_conditions", "liquidityConditions", default="medium"
            ),
            correlation_matrix=_pick(data, "correlation_matrix", "correlationMatrix", default={}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "volatility_index": self.volatility_index,
            "market_trend": self.market_trend.value,
            "liquidity_conditions": self.liquidity_conditions.value,
            "correlation_matrix": {k: dict(v) for k, v in self.correlation_matrix.items()},
        }


@dataclass(frozen=True)
class EconomicIndicators:
    """Macro indicators. Informational only."""

    interest_rates: float = 0.0
    inflation_rate: float = 0.0
    gdp_growth: float = 0.0
    unemployment_rate: float = 0.0

    def __post_init__(self):
        for name in ("interest_rates", "inflation_rate", "gdp_growth", "unemployment_rate"):
            object.__setattr__(self, name, require_finite(name, getattr(self, name)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EconomicIndicators":
        """Create indicators from a dictionary."""
        data = _require_mapping("economic_indicators", data)
        return cls(
            interest_rates=_pick(data, "interest_rates", "interestRates", default=0.0),
            inflation_rate=_pick(data, "inflation_rate", "inflationRate", default=0.0),
            gdp_growth=_pick(data, "gdp_growth", "gdpGrowth", default=0.0),
            unemployment_rate=_pick(data, "unemployment_rate", "unemploymentRate", default=0.0),
        )

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "interest_rates": self.interest_rates,
            "inflation_rate": self.inflation_rate,
            "gdp_growth": self.gdp_growth,
            "unemployment_rate": self.unemployment_rate,
        }


@dataclass(frozen=True)
class RiskAssessmentInput:
    """
    Portfolio snapshot consumed by the engine.

    Attributes:
        portfolio_value: Total portfolio value (> 0)
        positions: Ordered, non-empty positions
        market_conditions: Market state
        historical_volatility: Symbol -> volatility (may miss symbols)
        economic_indicators: Macro indicators (informational)
        return_history: Optional periodic portfolio returns
        benchmark_returns: Optional benchmark returns aligned with return_history
    """

    portfolio_value: float
    positions: Tuple[Position, ...]
    market_conditions: MarketConditions = field(default_factory=MarketConditions)
    historical_volatility: Mapping[str, float] = field(default_factory=dict)
    economic_indicators: EconomicIndicators = field(default_factory=EconomicIndicators)
    return_history: Tuple[float, ...] = ()
    benchmark_returns: Tuple[float, ...] = ()

    def __post_init__(self):
        value = require_finite("portfolio_value", self.portfolio_value)
        if value <= 0:
            raise InvalidInputError(f"portfolio_value must be positive, got {value}")
        object.__setattr__(self, "portfolio_value", value)

        positions = tuple(self.positions or ())
        if not positions:
            raise InvalidInputError("positions must not be empty")
        for position in positions:
            if not isinstance(position, Position):
                raise InvalidInputError(f"malformed position entry: {position!r}")
        object.__setattr__(self, "positions", positions)

        volatility = {}
        historical = _require_mapping("historical_volatility", self.historical_volatility)
        for symbol, vol in historical.items():
            vol = require_finite(f"historical_volatility[{symbol}]", vol)
            if vol < 0:
                raise InvalidInputError(f"historical_volatility[{symbol}] must be non-negative")
            volatility[str(symbol)] = vol
        object.__setattr__(self, "historical_volatility", MappingProxyType(volatility))

        object.__setattr__(
            self, "return_history", _require_series("return_history", self.return_history)
        )
        object.__setattr__(
            self, "benchmark_returns", _require_series("benchmark_returns", self.benchmark_returns)
        )
        if self.benchmark_returns and len(self.benchmark_returns) != len(self.return_history):
            raise InvalidInputError(
                f"benchmark_returns has {len(self.benchmark_returns)} points, "
                f"return_history has {len(self.return_history)}"
            )

    @property
    def symbols(self) -> Tuple[str, ...]:
        """Position symbols in input order."""
        return tuple(p.symbol for p in self.positions)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RiskAssessmentInput":
        """Create a snapshot from a (JSON-decoded) dictionary."""
        data = _require_mapping("snapshot", data)
        positions = _pick(data, "positions", default=[])
        if not isinstance(positions, Sequence) or isinstance(positions, (str, bytes)):
            raise InvalidInputError("positions must be a list")
        return cls(
            portfolio_value=_pick(data, "portfolio_value", "portfolioValue"),
            positions=tuple(Position.from_dict(p) for p in positions),
            market_conditions=MarketConditions.from_dict(
                _pick(data, "market_conditions", "marketConditions", default={})
            ),
            historical_volatility=_pick(
                data, "historical_volatility", "historicalVolatility", default={}
            ),
            economic_indicators=EconomicIndicators.from_dict(
                _pick(data, "economic_indicators", "economicIndicators", default={})
            ),
            return_history=_pick(data, "return_history", "returnHistory", default=()),
            benchmark_returns=_pick(data, "benchmark_returns", "benchmarkReturns", default=()),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "portfolio_value": self.portfolio_value,
            "positions": [p.to_dict() for p in self.positions],
            "market_conditions": self.market_conditions.to_dict(),
            "historical_volatility": dict(self.historical_volatility),
            "economic_indicators": self.economic_indicators.to_dict(),
            "return_history": list(self.return_history),
            "benchmark_returns": list(self.benchmark_returns),
        }


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class PortfolioRisk:
    """Portfolio-level risk figures."""

    var_95: float
    var_99: float
    expected_shortfall: float
    max_drawdown: float
    sharpe_ratio: float
    sortino_ratio: float
    beta: float
    alpha: float
    correlation_risk: float = 0.0
    concentration_index: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "var_95": self.var_95,
            "var_99": self.var_99,
            "expected_shortfall": self.expected_shortfall,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "beta": self.beta,
            "alpha": self.alpha,
            "correlation_risk": self.correlation_risk,
            "concentration_index": self.concentration_index,
        }


@dataclass(frozen=True)
class PositionRisk:
    """Risk contribution of a single position."""

    symbol: str
    individual_risk: float
    contribution_to_risk: float
    concentration: float
    correlation_risk: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol,
            "individual_risk": self.individual_risk,
            "contribution_to_risk": self.contribution_to_risk,
            "concentration": self.concentration,
            "correlation_risk": self.correlation_risk,
        }


@dataclass(frozen=True)
class StressTestResult:
    """Impact of one named stress scenario."""

    scenario: str
    portfolio_impact: float
    probability: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "scenario": self.scenario,
            "portfolio_impact": self.portfolio_impact,
            "probability": self.probability,
        }


@dataclass(frozen=True)
class MonteCarloResult:
    """Percentile outcomes of a Monte Carlo return simulation."""

    expected_return: float
    worst_case_5: float
    worst_case_1: float
    best_case_95: float
    best_case_99: float
    n_simulations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "expected_return": self.expected_return,
            "worst_case_5": self.worst_case_5,
            "worst_case_1": self.worst_case_1,
            "best_case_95": self.best_case_95,
            "best_case_99": self.best_case_99,
            "n_simulations": self.n_simulations,
        }


@dataclass(frozen=True)
class ScenarioAnalysis:
    """Stress and Monte Carlo results."""

    stress_test_results: Tuple[StressTestResult, ...]
    monte_carlo_results: MonteCarloResult

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "stress_test_results": [r.to_dict() for r in self.stress_test_results],
            "monte_carlo_results": self.monte_carlo_results.to_dict(),
        }


@dataclass(frozen=True)
class RiskMetrics:
    """Complete risk report for a portfolio snapshot."""

    portfolio_risk: PortfolioRisk
    position_risks: Tuple[PositionRisk, ...]
    scenario_analysis: ScenarioAnalysis

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "portfolio_risk": self.portfolio_risk.to_dict(),
            "position_risks": [p.to_dict() for p in self.position_risks],
            "scenario_analysis": self.scenario_analysis.to_dict(),
        }


@dataclass(frozen=True)
class ConfidenceInterval:
    """Lower/upper bounds around a point estimate."""

    lower: float
    upper: float

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {"lower": self.lower, "upper": self.upper}


@dataclass(frozen=True)
class DynamicPositionSizing:
    """Risk-adjusted size recommendation for one symbol."""

    symbol: str
    recommended_size: float
    max_position: float
    risk_budget: float
    kelly_fraction: float
    confidence_interval: ConfidenceInterval
    reasoning: Tuple[str, ...]
    market_adjustment: float = 1.0
    volatility: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol,
            "recommended_size": self.recommended_size,
            "max_position": self.max_position,
            "risk_budget": self.risk_budget,
            "kelly_fraction": self.kelly_fraction,
            "confidence_interval": self.confidence_interval.to_dict(),
            "reasoning": list(self.reasoning),
            "market_adjustment": self.market_adjustment,
            "volatility": self.volatility,
        }


@dataclass(frozen=True)
class AdaptiveStopLoss:
    """Stop-loss recommendation for a long position."""

    symbol: str
    current_stop_loss: float
    new_stop_loss: float
    stop_loss_type: StopLossType
    risk_ratio: float
    time_decay: float
    volatility_adjustment: float
    trend_adjustment: float
    candidates: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol,
            "current_stop_loss": self.current_stop_loss,
            "new_stop_loss": self.new_stop_loss,
            "stop_loss_type": self.stop_loss_type.value,
            "risk_ratio": self.risk_ratio,
            "time_decay": self.time_decay,
            "volatility_adjustment": self.volatility_adjustment,
            "trend_adjustment": self.trend_adjustment,
            "candidates": dict(self.candidates),
        }


@dataclass(frozen=True)
class RiskAlert:
    """
    A threshold breach detected by the risk monitor.

    Attributes:
        alert_id: Unique per emission
        severity: Alert severity
        type: Alert category
        message: Human-readable description
        recommendations: Suggested remediations
        affected_positions: Symbols involved
        timestamp: Detection time (UTC)
        requires_action: Whether a human/automated action is expected
    """

    alert_id: str
    severity: AlertSeverity
    type: AlertType
    message: str
    recommendations: Tuple[str, ...] = ()
    affected_positions: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    requires_action: bool = False
    metadata: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "alert_id": self.alert_id,
            "severity": self.severity.value,
            "type": self.type.value,
            "message": self.message,
            "recommendations": list(self.recommendations),
            "affected_positions": list(self.affected_positions),
            "timestamp": self.timestamp.isoformat(),
            "requires_action": self.requires_action,
            "metadata": dict(self.metadata or {}),
        }
