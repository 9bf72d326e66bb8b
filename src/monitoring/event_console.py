"""Console echo of market events that are not trades."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.ledger.events import ADMIN_EVENT_TYPES, Event, EventType


class EventConsoleLogger:
    """Log selected events under ``market_events``; trades have their own journal."""

    def __init__(self, include: Iterable[EventType] | None = None) -> None:
        self.include = frozenset(include) if include is not None else ADMIN_EVENT_TYPES
        self.log = structlog.get_logger("market_events")

    def handle_event(self, event: Event) -> None:
        if event.event_type not in self.include:
            return
        self.log.info(
            event.event_type.value,
            sequence_num=event.sequence_num,
            **event.payload,
        )
