"""
Monitoring for the Portfolio Risk Engine.

- Risk alert rules and severity ranking
- Report sinks (log, JSON lines)
- Structured logging with per-thread context
"""

from .alerts import (
    AlertRule,
    ConcentrationRule,
    CorrelationRule,
    DrawdownRule,
    LiquidityRule,
    RiskMonitor,
    VaRBreachRule,
    VolatilityRule,
    sort_alerts,
)
from .logging import BoundLogger, ConsoleFormatter, JsonFormatter, bind, clear_context, unbind
from .sinks import (
    JsonLinesReportSink,
    LoggingReportSink,
    NullReportSink,
    ReportSink,
    create_sink,
    publish_safely,
)

__all__ = [
    # Alerts
    "RiskMonitor",
    "AlertRule",
    "ConcentrationRule",
    "CorrelationRule",
    "VolatilityRule",
    "VaRBreachRule",
    "LiquidityRule",
    "DrawdownRule",
    "sort_alerts",
    # Sinks
    "ReportSink",
    "LoggingReportSink",
    "JsonLinesReportSink",
    "NullReportSink",
    "create_sink",
    "publish_safely",
    # Logging
    "JsonFormatter",
    "ConsoleFormatter",
    "BoundLogger",
    "bind",
    "unbind",
    "clear_context",
]
