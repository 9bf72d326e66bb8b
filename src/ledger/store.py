"""Append-only JSONL store for market events."""

from __future__ import annotations

import os
from collections import deque
from pathlib import Path
from typing import Any, Iterator

import orjson
import structlog

from src.ledger.events import Event, EventType

log = structlog.get_logger(__name__)


class EventLedger:
    """Append-only event log with monotonically increasing sequence numbers.

    The sequence survives restarts: on open it resumes from the last event in
    ``events.jsonl``.
    """

    def __init__(self, ledger_path: str | Path) -> None:
        self.ledger_path = Path(ledger_path)
        self.ledger_path.mkdir(parents=True, exist_ok=True)
        self.events_file = self.ledger_path / "events.jsonl"
        self._sequence = self._read_last_sequence()

    def _read_last_sequence(self) -> int:
        if not self.events_file.exists():
            return 0
        try:
            with open(self.events_file, "rb") as handle:
                handle.seek(0, os.SEEK_END)
                size = handle.tell()
                if size == 0:
                    return 0
                offset = min(size, 8192)
                handle.seek(-offset, os.SEEK_END)
                chunk = handle.read(offset)
        except OSError:
            log.warning("ledger_sequence_unreadable", path=str(self.events_file))
            return 0
        lines = [line for line in chunk.splitlines() if line.strip()]
        if not lines:
            return 0
        try:
            return int(orjson.loads(lines[-1]).get("sequence_num", 0))
        except orjson.JSONDecodeError:
            log.warning("ledger_tail_corrupt", path=str(self.events_file))
            return 0

    def last_sequence(self) -> int:
        return self._sequence

    def append(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """Create, persist and return the next event."""
        event = Event.create(event_type, payload, self._sequence + 1, metadata)
        self.append_event(event)
        return event

    def append_event(self, event: Event) -> None:
        with open(self.events_file, "ab") as handle:
            handle.write(orjson.dumps(event.to_dict()) + b"\n")
        self._sequence = max(self._sequence, event.sequence_num)

    def iter_events(self) -> Iterator[Event]:
        if not self.events_file.exists():
            return
        with open(self.events_file, "rb") as handle:
            for line in handle:
                if line.strip():
                    yield Event.from_dict(orjson.loads(line))

    def iter_events_tail(self, limit: int) -> list[Event]:
        """The last ``limit`` events, oldest first."""
        if limit <= 0:
            return []
        return list(deque(self.iter_events(), maxlen=limit))

    def load_all(self) -> list[Event]:
        return list(self.iter_events())
