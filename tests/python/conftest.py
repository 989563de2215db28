"""
Pytest configuration for portfolio_risk tests.
"""

import pytest

from portfolio_risk.config import Config, MonteCarloConfig
from portfolio_risk.models import MarketConditions, Position, RiskAssessmentInput


@pytest.fixture
def neutral_conditions():
    """Market conditions that trigger no adjustment (VIX 20, sideways, medium)."""
    return MarketConditions()


@pytest.fixture
def calm_conditions():
    """Zero volatility index so estimates equal historical volatility."""
    return MarketConditions(volatility_index=0.0)


@pytest.fixture
def stressed_conditions():
    """High VIX, bear market and low liquidity at once."""
    return MarketConditions(volatility_index=45.0, market_trend="bear", liquidity_conditions="low")


def make_position(symbol, weight, portfolio_value=100_000.0, price=100.0, entry_price=None):
    """Position worth weight * portfolio_value at the given price."""
    value = weight * portfolio_value
    return Position(
        symbol=symbol,
        quantity=value / price,
        current_price=price,
        entry_price=entry_price if entry_price is not None else price,
        position_value=value,
        weight=weight,
    )


@pytest.fixture
def position_factory():
    """Build positions by symbol and weight."""
    return make_position


@pytest.fixture
def two_asset_snapshot(calm_conditions):
    """PV 100k, two half-weight positions with volatility 0.02 and 0.03."""
    return RiskAssessmentInput(
        portfolio_value=100_000.0,
        positions=(make_position("SPY", 0.5), make_position("TLT", 0.5)),
        market_conditions=calm_conditions,
        historical_volatility={"SPY": 0.02, "TLT": 0.03},
    )


@pytest.fixture
def concentrated_snapshot():
    """Single position above the 20% concentration limit."""
    return RiskAssessmentInput(
        portfolio_value=100_000.0,
        positions=(make_position("NVDA", 0.25),),
        historical_volatility={"NVDA": 0.04},
    )


@pytest.fixture
def snapshot_dict():
    """Snapshot in the camelCase form used by upstream JSON payloads."""
    return {
        "portfolioValue": 250_000,
        "positions": [
            {"symbol": "AAPL", "quantity": 300, "currentPrice": 150.0, "entryPrice": 140.0,
             "weight": 0.18},
            {"symbol": "MSFT", "quantity": 200, "currentPrice": 300.0, "entryPrice": 310.0,
             "weight": 0.24},
            {"symbol": "BND", "quantity": 500, "currentPrice": 75.0, "weight": 0.15},
        ],
        "marketConditions": {
            "volatilityIndex": 22.5,
            "marketTrend": "bull",
            "liquidityConditions": "high",
            "correlationMatrix": {
                "AAPL": {"AAPL": 1.0, "MSFT": 0.7, "BND": -0.2},
                "MSFT": {"MSFT": 1.0, "AAPL": 0.7},
            },
        },
        "historicalVolatility": {"AAPL": 0.025, "MSFT": 0.022},
        "economicIndicators": {"interestRates": 0.05, "inflationRate": 0.03},
    }


@pytest.fixture
def seeded_config():
    """Default config with a fixed Monte Carlo seed and fewer draws."""
    return Config(monte_carlo=MonteCarloConfig(n_simulations=2_000, seed=7))
