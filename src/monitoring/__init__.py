"""Monitoring utilities."""

from src.monitoring.logging import configure_logging
from src.monitoring.metrics import Metrics
from src.monitoring.event_console import EventConsoleLogger
from src.monitoring.trade_log import TradeLogger

__all__ = [
    "configure_logging",
    "Metrics",
    "TradeLogger",
    "EventConsoleLogger",
]
