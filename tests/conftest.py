from __future__ import annotations

from pathlib import Path

import pytest

from src.ledger import Event, EventBus, EventLedger
from src.market import AdminCap, InMemoryPaymentMedium, Market, TradeRecord


class Recorder:
    """Collects every event published on a bus."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)


def buy(
    market: Market,
    payments: InMemoryPaymentMedium,
    subject: str,
    buyer: str,
    quantity: int,
    budget: int | None = None,
) -> TradeRecord:
    """Fund ``buyer`` and buy, paying the exact quoted total unless ``budget`` is given."""
    if budget is None:
        budget = market.get_buy_price_after_fee(subject, quantity)
    payments.fund(buyer, budget)
    handle = payments.issue(buyer, budget)
    return market.buy_shares(subject, quantity, handle, buyer)


@pytest.fixture
def payments() -> InMemoryPaymentMedium:
    return InMemoryPaymentMedium()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def bus(recorder: Recorder) -> EventBus:
    event_bus = EventBus()
    event_bus.register_all(recorder)
    return event_bus


@pytest.fixture
def market_and_cap(payments: InMemoryPaymentMedium, bus: EventBus) -> tuple[Market, AdminCap]:
    return Market.create(
        admin="admin",
        payments=payments,
        protocol_fee_destination="treasury",
        sink=bus,
    )


@pytest.fixture
def market(market_and_cap: tuple[Market, AdminCap]) -> Market:
    return market_and_cap[0]


@pytest.fixture
def admin_cap(market_and_cap: tuple[Market, AdminCap]) -> AdminCap:
    return market_and_cap[1]


@pytest.fixture
def ledger(tmp_path: Path) -> EventLedger:
    return EventLedger(tmp_path / "ledger")
