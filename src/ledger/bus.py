"""Event bus that persists market events before notifying subscribers."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Protocol

import structlog

from src.ledger.events import Event, EventType
from src.ledger.store import EventLedger

EventHandler = Callable[[Event], None]


class TradeSink(Protocol):
    """Destination for market events, in two phases.

    ``record`` runs before the market changes state and must raise if the
    event cannot be made durable; the market then aborts the operation.
    ``deliver`` runs after the commit and is fire-and-forget.
    """

    def record(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event: ...

    def deliver(self, event: Event) -> None: ...


class EventBus:
    """Record events to the ledger (when one is attached) and fan out to handlers.

    A failing handler is logged and skipped; it never reaches the publisher.
    """

    def __init__(self, ledger: EventLedger | None = None) -> None:
        self._ledger = ledger
        self._handlers: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._sequence = ledger.last_sequence() if ledger else 0
        self._log = structlog.get_logger(__name__)

    def register(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def register_all(self, handler: EventHandler) -> None:
        for event_type in EventType:
            self.register(event_type, handler)

    def record(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        if self._ledger is not None:
            return self._ledger.append(event_type, payload, metadata)
        self._sequence += 1
        return Event.create(event_type, payload, self._sequence, metadata)

    def publish(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        event = self.record(event_type, payload, metadata)
        self.deliver(event)
        return event

    def deliver(self, event: Event) -> None:
        for handler in self._handlers.get(event.event_type, []):
            try:
                handler(event)
            except Exception:
                self._log.exception(
                    "event_handler_failed",
                    event_id=event.event_id,
                    event_type=event.event_type.value,
                    handler=getattr(handler, "__name__", repr(handler)),
                )
