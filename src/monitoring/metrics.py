"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY, start_http_server

from src.ledger.events import Event, EventType


class Metrics:
    """Market counters fed from published events."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        registry = registry or REGISTRY
        self._registry = registry
        self.trades_total = Counter(
            "market_trades_total", "Committed trades", ["direction"], registry=registry
        )
        self.shares_traded_total = Counter(
            "market_shares_traded_total", "Shares bought or sold", ["direction"], registry=registry
        )
        self.base_volume_total = Counter(
            "market_base_volume_total", "Curve value traded before fees", ["direction"], registry=registry
        )
        self.protocol_fees_total = Counter(
            "market_protocol_fees_total", "Protocol fees accrued", registry=registry
        )
        self.subject_fees_total = Counter(
            "market_subject_fees_total", "Subject fees paid out", registry=registry
        )
        self.liquidity_added_total = Counter(
            "market_liquidity_added_total", "Value deposited as liquidity", registry=registry
        )
        self.protocol_fees_withdrawn_total = Counter(
            "market_protocol_fees_withdrawn_total", "Protocol fees withdrawn", registry=registry
        )
        self.last_event_sequence = Gauge(
            "market_last_event_sequence", "Last observed event sequence number", registry=registry
        )

    def start_server(self, port: int) -> None:
        start_http_server(port, registry=self._registry)

    def handle_event(self, event: Event) -> None:
        payload = event.payload
        self.last_event_sequence.set(event.sequence_num)
        if event.event_type == EventType.SHARES_TRADED:
            direction = payload.get("direction", "unknown")
            self.trades_total.labels(direction=direction).inc()
            self.shares_traded_total.labels(direction=direction).inc(int(payload.get("quantity", 0)))
            self.base_volume_total.labels(direction=direction).inc(int(payload.get("base_price", 0)))
            self.protocol_fees_total.inc(int(payload.get("protocol_fee", 0)))
            self.subject_fees_total.inc(int(payload.get("subject_fee", 0)))
        elif event.event_type == EventType.LIQUIDITY_ADDED:
            self.liquidity_added_total.inc(int(payload.get("amount", 0)))
        elif event.event_type == EventType.PROTOCOL_FEES_WITHDRAWN:
            self.protocol_fees_withdrawn_total.inc(int(payload.get("amount", 0)))
