"""
Configuration management for the Portfolio Risk Engine.

Supports loading from:
- Environment variables
- YAML/JSON config files
- Command-line arguments

Every policy constant used by the engine lives here so that a deployment
can tune it without touching the math. Policies are frozen once loaded.
"""

import os
import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Dict, Any, List, Mapping, Tuple

import yaml
from scipy import stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolatilityPolicy:
    """Volatility estimation policy."""
    default_volatility: float = 0.02
    neutral_volatility_index: float = 20.0  # VIX level treated as "normal"


@dataclass(frozen=True)
class VaRPolicy:
    """Parametric VaR constants (one-sided normal quantiles)."""
    z_95: float = 1.645
    z_99: float = 2.326
    correlation_inflation: float = 1.2  # Assumed 20% variance uplift
    expected_shortfall_multiplier: float = 1.3

    @classmethod
    def from_confidence(
        cls,
        low: float = 0.95,
        high: float = 0.99,
        **overrides: float,
    ) -> "VaRPolicy":
        """Build a policy with z-scores derived from confidence levels."""
        return cls(
            z_95=float(stats.norm.ppf(low)),
            z_99=float(stats.norm.ppf(high)),
            **overrides,
        )


@dataclass(frozen=True)
class MonteCarloConfig:
    """Monte Carlo simulation settings."""
    n_simulations: int = 10_000
    annual_return: float = 0.08
    trading_days: int = 252
    seed: Optional[int] = None  # None = fresh entropy per call
    n_batches: int = 1  # >1 uses the batched/threaded path
    max_workers: Optional[int] = None

    @property
    def daily_mean_return(self) -> float:
        return self.annual_return / self.trading_days


@dataclass(frozen=True)
class StressConfig:
    """
    Stress scenario library settings.

    Custom scenarios are mappings with a ``name``, a ``probability`` and any
    of the shock fields of ``StressScenario`` (market_move, ...).
    """
    include_defaults: bool = True
    custom_scenarios: Tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self,
            "custom_scenarios",
            tuple(MappingProxyType(dict(s)) for s in self.custom_scenarios or ()),
        )


@dataclass(frozen=True)
class SizingPolicy:
    """Kelly sizing and market-adjustment policy."""
    win_probability: float = 0.55
    avg_win: float = 0.03
    avg_loss: float = 0.02
    max_position_pct: float = 0.20  # Concentration cap
    high_volatility_threshold: float = 30.0
    high_volatility_multiplier: float = 0.8
    bear_market_multiplier: float = 0.7
    low_liquidity_multiplier: float = 0.6
    min_adjustment: float = 0.2
    confidence_range_pct: float = 0.20


@dataclass(frozen=True)
class StopLossPolicy:
    """Stop-loss policy constants."""
    atr_multiplier: float = 2.0
    momentum_stop_pct: float = 0.03
    volatility_multiplier: float = 2.0
    high_volatility_multiplier: float = 2.5
    high_volatility_threshold: float = 25.0
    decay_period_hours: float = 24.0 * 7
    min_time_decay: float = 0.5
    placeholder_stop_pct: float = 0.05  # current stop = entry * (1 - pct)


@dataclass(frozen=True)
class MonitorPolicy:
    """
    Alert thresholds.

    Only the concentration limit is active by default; the other checks emit
    nothing until their threshold is set.
    """
    concentration_limit: float = 0.20
    correlation_limit: Optional[float] = None  # Mean |corr| per position
    volatility_index_limit: Optional[float] = None
    var_limit_pct: Optional[float] = None  # VaR95 as fraction of portfolio value
    drawdown_limit: Optional[float] = None
    low_liquidity_alerts: bool = False


@dataclass(frozen=True)
class PlaceholderMetrics:
    """Stand-in performance figures used when no return history is supplied."""
    max_drawdown: float = 0.05
    sharpe_ratio: float = 1.2
    sortino_ratio: float = 1.5
    beta: float = 1.1
    alpha: float = 0.02
    risk_free_rate: float = 0.0  # Annual, used when history is present
    periods_per_year: int = 252


@dataclass(frozen=True)
class SinkConfig:
    """Risk report sink settings."""
    kind: str = "log"  # log, jsonl, none
    path: Optional[str] = None


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False
    file: Optional[str] = None
    max_bytes: int = 10_000_000  # 10MB
    backup_count: int = 5


DEFAULT_MODEL_VERSIONS: Dict[str, str] = {
    "volatility": "historical-vix-scaled-1.0",
    "var": "parametric-normal-1.0",
    "monte_carlo": "box-muller-1.0",
    "position_sizing": "kelly-market-adjusted-1.0",
    "stop_loss": "multi-signal-1.0",
}


_SECTIONS = {
    "volatility": VolatilityPolicy,
    "var": VaRPolicy,
    "monte_carlo": MonteCarloConfig,
    "stress": StressConfig,
    "sizing": SizingPolicy,
    "stop_loss": StopLossPolicy,
    "monitor": MonitorPolicy,
    "performance": PlaceholderMetrics,
    "sink": SinkConfig,
    "logging": LoggingConfig,
}


@dataclass(frozen=True)
class Config:
    """Main configuration container."""
    volatility: VolatilityPolicy = field(default_factory=VolatilityPolicy)
    var: VaRPolicy = field(default_factory=VaRPolicy)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)
    stress: StressConfig = field(default_factory=StressConfig)
    sizing: SizingPolicy = field(default_factory=SizingPolicy)
    stop_loss: StopLossPolicy = field(default_factory=StopLossPolicy)
    monitor: MonitorPolicy = field(default_factory=MonitorPolicy)
    performance: PlaceholderMetrics = field(default_factory=PlaceholderMetrics)
    sink: SinkConfig = field(default_factory=SinkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    models: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_VERSIONS))

    # Environment
    env: str = "development"  # development, staging, production
    debug: bool = False

    def __post_init__(self):
        object.__setattr__(self, "models", MappingProxyType(dict(self.models)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        kwargs: Dict[str, Any] = {}

        for name, section_cls in _SECTIONS.items():
            if name in data:
                known = {f.name for f in fields(section_cls)}
                unknown = set(data[name]) - known
                if unknown:
                    raise ValueError(f"Unknown keys in config section '{name}': {sorted(unknown)}")
                kwargs[name] = section_cls(**data[name])

        if "models" in data:
            kwargs["models"] = {**DEFAULT_MODEL_VERSIONS, **data["models"]}
        if "env" in data:
            kwargs["env"] = data["env"]
        if "debug" in data:
            kwargs["debug"] = bool(data["debug"])

        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str) -> "Config":
        """Load config from JSON or YAML file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        return cls.from_dict(data)

    def with_env_overrides(self) -> "Config":
        """Return a copy with PR_* environment variables applied."""
        config = self

        if n_sims := os.getenv("PR_MC_SIMULATIONS"):
            config = replace(config, monte_carlo=replace(config.monte_carlo, n_simulations=int(n_sims)))
        if seed := os.getenv("PR_MC_SEED"):
            config = replace(config, monte_carlo=replace(config.monte_carlo, seed=int(seed)))
        if max_pos := os.getenv("PR_MAX_POSITION_PCT"):
            config = replace(config, sizing=replace(config.sizing, max_position_pct=float(max_pos)))
        if limit := os.getenv("PR_CONCENTRATION_LIMIT"):
            config = replace(config, monitor=replace(config.monitor, concentration_limit=float(limit)))

        if sink_path := os.getenv("PR_SINK_PATH"):
            config = replace(config, sink=SinkConfig(kind="jsonl", path=sink_path))

        # Logging
        log_updates: Dict[str, Any] = {}
        if log_level := os.getenv("PR_LOG_LEVEL"):
            log_updates["level"] = log_level
        if log_file := os.getenv("PR_LOG_FILE"):
            log_updates["file"] = log_file
        if os.getenv("PR_LOG_JSON", "").lower() in ("1", "true", "yes"):
            log_updates["json"] = True
        if log_updates:
            config = replace(config, logging=replace(config.logging, **log_updates))

        # Environment
        if env := os.getenv("PR_ENV"):
            config = replace(config, env=env)
        if os.getenv("PR_DEBUG", "").lower() in ("1", "true", "yes"):
            config = replace(config, debug=True)

        return config

    @classmethod
    def from_env(cls) -> "Config":
        """Load config from environment variables."""
        return cls().with_env_overrides()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        data: Dict[str, Any] = {}
        for name in _SECTIONS:
            section = getattr(self, name)
            data[name] = {f.name: getattr(section, f.name) for f in fields(section)}
        data["stress"]["custom_scenarios"] = [dict(s) for s in self.stress.custom_scenarios]
        data["models"] = dict(self.models)
        data["env"] = self.env
        data["debug"] = self.debug
        return data

    def save(self, path: str) -> None:
        """Save config to JSON or YAML file."""
        path = Path(path)
        with open(path, "w") as f:
            if path.suffix in (".yaml", ".yml"):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)


def load_config(
    config_file: Optional[str] = None,
    use_env: bool = True
) -> Config:
    """
    Load configuration with precedence:
    1. Environment variables (if use_env=True)
    2. Config file (if provided)
    3. Defaults
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_file:
        try:
            config = Config.from_file(config_file)
            logger.info(f"Loaded config from {config_file}")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {config_file}, using defaults")

    # Override with environment variables
    if use_env:
        config = config.with_env_overrides()

    return config


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging based on config."""
    from .monitoring.logging import ConsoleFormatter, JsonFormatter

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count
        )
        handlers.append(file_handler)

    for handler in handlers:
        if config.json:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(ConsoleFormatter(fmt=config.format))

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        handlers=handlers,
        force=True,
    )
