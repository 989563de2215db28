"""
Report Sinks.

A sink receives each computed risk report after the calculation finishes.
Delivery is fire-and-forget: ``publish_safely`` logs a sink failure and
returns, so the caller still receives its report.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..config import SinkConfig

logger = logging.getLogger(__name__)


class ReportSink(ABC):
    """Abstract destination for computed risk reports."""

    @abstractmethod
    def publish(self, record: Mapping[str, Any]) -> None:
        """
        Deliver one report record.

        Args:
            record: JSON-serialisable report payload
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Sink name."""
        pass


class NullReportSink(ReportSink):
    """Discard every report."""

    @property
    def name(self) -> str:
        return "none"

    def publish(self, record: Mapping[str, Any]) -> None:
        pass


class LoggingReportSink(ReportSink):
    """Log a one-line summary of each report."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    @property
    def name(self) -> str:
        return "log"

    def publish(self, record: Mapping[str, Any]) -> None:
        portfolio = record.get("metrics", {}).get("portfolio_risk", {})
        logger.log(
            self.level,
            f"Risk assessment {record.get('assessment_id')}: "
            f"portfolio_value={record.get('portfolio_value', 0):,.2f}, "
            f"var_95={portfolio.get('var_95', 0):,.2f}, "
            f"var_99={portfolio.get('var_99', 0):,.2f}",
        )


class JsonLinesReportSink(ReportSink):
    """Append each report as one JSON line to a file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "jsonl"

    def publish(self, record: Mapping[str, Any]) -> None:
        line = json.dumps(dict(record), default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(line + "\n")


def create_sink(config: SinkConfig) -> ReportSink:
    """Build the sink named in config."""
    if config.kind == "log":
        return LoggingReportSink()
    if config.kind == "jsonl":
        if not config.path:
            raise ValueError("jsonl sink requires a path")
        return JsonLinesReportSink(config.path)
    if config.kind == "none":
        return NullReportSink()
    raise ValueError(f"Unknown sink kind: {config.kind}")


def build_record(
    assessment_id: str,
    portfolio_value: float,
    metrics: Dict[str, Any],
    model_versions: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Assemble the payload handed to a sink."""
    return {
        "assessment_id": assessment_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "portfolio_value": portfolio_value,
        "model_versions": dict(model_versions or {}),
        "metrics": metrics,
    }


def publish_safely(sink: Optional[ReportSink], record: Mapping[str, Any]) -> bool:
    """
    Publish a record, logging and swallowing any sink failure.

    Returns:
        True if the sink accepted the record
    """
    if sink is None:
        return False
    try:
        sink.publish(record)
        return True
    except Exception as e:
        logger.warning(f"Report sink '{sink.name}' failed: {e}", exc_info=True)
        return False
