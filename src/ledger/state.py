"""Rebuild market state from the event log."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from src.ledger.events import Event, EventType
from src.market.fees import DEFAULT_PROTOCOL_FEE_BPS, DEFAULT_SUBJECT_FEE_BPS

log = structlog.get_logger(__name__)


@dataclass
class MarketSnapshot:
    """Everything needed to restore a ``Market``."""

    admin: str | None = None
    admin_key_hash: str | None = None
    protocol_fee_destination: str | None = None
    protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS
    subject_fee_bps: int = DEFAULT_SUBJECT_FEE_BPS
    supplies: dict[str, int] = field(default_factory=dict)
    balances: dict[str, dict[str, int]] = field(default_factory=dict)
    pool_balance: int = 0
    protocol_fee_balance: int = 0
    trade_count: int = 0
    last_event_sequence: int = 0

    @property
    def initialized(self) -> bool:
        return self.admin_key_hash is not None

    @property
    def custody(self) -> int:
        """Value the payment medium must hold for this market."""
        return self.pool_balance + self.protocol_fee_balance

    def conservation_breaks(self) -> list[str]:
        """Subjects whose holder balances do not sum to their supply."""
        return [
            subject
            for subject, supply in self.supplies.items()
            if sum(self.balances.get(subject, {}).values()) != supply
        ]


class MarketStateManager:
    """Applies events, in sequence order, to a ``MarketSnapshot``."""

    def __init__(self) -> None:
        self.snapshot = MarketSnapshot()

    def rebuild(self, events: list[Event]) -> MarketSnapshot:
        self.snapshot = MarketSnapshot()
        for event in sorted(events, key=lambda e: e.sequence_num):
            self.apply_event(event)
        return self.snapshot

    def apply_event(self, event: Event) -> None:
        if event.sequence_num and event.sequence_num <= self.snapshot.last_event_sequence:
            log.warning(
                "event_out_of_order",
                sequence_num=event.sequence_num,
                last_event_sequence=self.snapshot.last_event_sequence,
            )
            return
        self.snapshot.last_event_sequence = event.sequence_num
        handler = {
            EventType.MARKET_CREATED: self._handle_market_created,
            EventType.SHARES_TRADED: self._handle_shares_traded,
            EventType.LIQUIDITY_ADDED: self._handle_liquidity_added,
            EventType.PROTOCOL_FEES_WITHDRAWN: self._handle_fees_withdrawn,
            EventType.FEE_DESTINATION_UPDATED: self._handle_destination_updated,
        }.get(event.event_type)
        if handler:
            handler(event.payload)

    def _handle_market_created(self, payload: dict[str, Any]) -> None:
        snap = self.snapshot
        snap.admin = payload.get("admin")
        snap.admin_key_hash = payload.get("admin_key_hash")
        snap.protocol_fee_destination = payload.get("protocol_fee_destination")
        snap.protocol_fee_bps = int(payload.get("protocol_fee_bps", DEFAULT_PROTOCOL_FEE_BPS))
        snap.subject_fee_bps = int(payload.get("subject_fee_bps", DEFAULT_SUBJECT_FEE_BPS))

    def _handle_shares_traded(self, payload: dict[str, Any]) -> None:
        snap = self.snapshot
        subject = payload["subject"]
        trader = payload["trader"]
        quantity = int(payload["quantity"])
        base_price = int(payload["base_price"])
        holders = snap.balances.setdefault(subject, {})
        if payload["direction"] == "buy":
            holders[trader] = holders.get(trader, 0) + quantity
            snap.supplies[subject] = snap.supplies.get(subject, 0) + quantity
            snap.pool_balance += base_price
        else:
            holders[trader] = holders.get(trader, 0) - quantity
            snap.supplies[subject] = snap.supplies.get(subject, 0) - quantity
            snap.pool_balance -= base_price
        snap.protocol_fee_balance += int(payload["protocol_fee"])
        snap.trade_count += 1

    def _handle_liquidity_added(self, payload: dict[str, Any]) -> None:
        self.snapshot.pool_balance += int(payload["amount"])

    def _handle_fees_withdrawn(self, payload: dict[str, Any]) -> None:
        self.snapshot.protocol_fee_balance -= int(payload["amount"])

    def _handle_destination_updated(self, payload: dict[str, Any]) -> None:
        self.snapshot.protocol_fee_destination = payload["destination"]
