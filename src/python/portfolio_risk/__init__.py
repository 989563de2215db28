"""
Portfolio Risk Engine

Quantitative risk analysis for a portfolio snapshot: parametric VaR and
Expected Shortfall, Monte Carlo return percentiles, stress scenarios,
per-position risk, Kelly-based position sizing, adaptive stop-losses and
ranked risk alerts.

Usage:
    # As a library
    from portfolio_risk import RiskAssessmentInput, create_risk_engine
    engine = create_risk_engine()
    metrics = engine.assess_portfolio_risk(RiskAssessmentInput.from_dict(data))

    # As a CLI
    $ portfolio-risk assess --input portfolio.json --seed 42
    $ portfolio-risk monitor --input portfolio.json
"""

__version__ = "1.0.0"
__author__ = "Quantitative Research Team"

from .config import Config, load_config, setup_logging
from .engine import RiskEngine, create_risk_engine
from .models import (
    AdaptiveStopLoss,
    AlertSeverity,
    AlertType,
    DynamicPositionSizing,
    EconomicIndicators,
    InvalidInputError,
    LiquidityConditions,
    MarketConditions,
    MarketTrend,
    NumericInstabilityError,
    Position,
    RiskAlert,
    RiskAssessmentInput,
    RiskCalculationError,
    RiskMetrics,
    StopLossType,
    StressTestResult,
)
from .registry import ModelRegistry

__all__ = [
    "__version__",
    # Engine
    "RiskEngine",
    "create_risk_engine",
    "ModelRegistry",
    # Config
    "Config",
    "load_config",
    "setup_logging",
    # Inputs
    "Position",
    "MarketConditions",
    "EconomicIndicators",
    "RiskAssessmentInput",
    "MarketTrend",
    "LiquidityConditions",
    # Results
    "RiskMetrics",
    "StressTestResult",
    "DynamicPositionSizing",
    "AdaptiveStopLoss",
    "StopLossType",
    "RiskAlert",
    "AlertSeverity",
    "AlertType",
    # Errors
    "RiskCalculationError",
    "InvalidInputError",
    "NumericInstabilityError",
]
