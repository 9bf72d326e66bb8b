"""Structured logging configuration for the share market."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

import structlog

from src.config.settings import MonitoringConfig

# Logger namespaces whose records belong in the market activity log.
MARKET_LOGGERS = ("src.market", "market_events")


def _rotating_handler(path: Path, level: int, monitoring: MonitoringConfig | None) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=monitoring.error_log_max_bytes if monitoring else 5_000_000,
        backupCount=monitoring.error_log_backup_count if monitoring else 3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    log_level: str = "INFO",
    logs_path: str | None = None,
    monitoring: MonitoringConfig | None = None,
) -> None:
    """Send JSON lines to stdout, and to rotating files under ``logs_path``.

    ``errors.log`` collects every ERROR record. ``market.log`` keeps the
    engine's own trail (trades, rejections, admin calls) apart from API noise.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    if logs_path:
        log_dir = Path(logs_path)
        log_dir.mkdir(parents=True, exist_ok=True)
        logging.getLogger().addHandler(_rotating_handler(log_dir / "errors.log", logging.ERROR, monitoring))
        market_handler = _rotating_handler(log_dir / "market.log", level, monitoring)
        for name in MARKET_LOGGERS:
            logging.getLogger(name).addHandler(market_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
