"""Run the share market with its operator API."""

from __future__ import annotations

import argparse

import structlog
import uvicorn

from src.api.operator import create_app
from src.config.settings import load_settings
from src.ledger import EventBus, EventLedger
from src.market.loader import load_market
from src.monitoring import EventConsoleLogger, Metrics, TradeLogger, configure_logging

log = structlog.get_logger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the share market operator API.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args()

    settings = load_settings(args.config)
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)

    ledger = EventLedger(settings.storage.ledger_path)
    event_bus = EventBus(ledger)

    event_console = EventConsoleLogger()
    for event_type in event_console.include:
        event_bus.register(event_type, event_console.handle_event)

    trade_logger = TradeLogger(settings.trade_log_path)
    event_bus.register_all(trade_logger.handle_event)

    metrics = Metrics()
    event_bus.register_all(metrics.handle_event)
    if settings.monitoring.metrics_enabled:
        metrics.start_server(settings.monitoring.metrics_port)

    market, admin_cap = load_market(settings, ledger, event_bus)
    if admin_cap is not None:
        log.info("admin_cap_ready", holder=admin_cap.holder)

    log.info(
        "operator_api_starting",
        host=settings.monitoring.api_host,
        port=settings.monitoring.api_port,
        last_event_sequence=ledger.last_sequence(),
    )
    uvicorn.run(
        create_app(market=market, ledger=ledger, settings=settings),
        host=settings.monitoring.api_host,
        port=settings.monitoring.api_port,
        log_level=settings.monitoring.log_level.lower(),
    )


if __name__ == "__main__":
    main()
