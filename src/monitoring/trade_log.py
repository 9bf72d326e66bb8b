"""Trade CSV journal."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

from src.ledger.events import Event, EventType

FIELDNAMES = [
    "sequence_num",
    "timestamp",
    "trader",
    "subject",
    "direction",
    "quantity",
    "base_price",
    "protocol_fee",
    "subject_fee",
    "value",
    "supply",
]


class TradeLogger:
    """
    Append one CSV row per `SharesTraded` event.

    Events at or below the last logged sequence number are skipped, so
    replaying the ledger into an existing journal does not duplicate rows.
    """

    def __init__(self, log_path: str | Path) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_header()
        self._last_sequence = self._read_last_sequence()

    def handle_event(self, event: Event) -> None:
        if event.event_type != EventType.SHARES_TRADED:
            return
        if event.sequence_num <= self._last_sequence:
            return
        payload = event.payload
        self._append_row(
            {
                "sequence_num": event.sequence_num,
                "timestamp": event.timestamp_iso,
                "trader": payload.get("trader", ""),
                "subject": payload.get("subject", ""),
                "direction": payload.get("direction", ""),
                "quantity": int(payload.get("quantity", 0)),
                "base_price": int(payload.get("base_price", 0)),
                "protocol_fee": int(payload.get("protocol_fee", 0)),
                "subject_fee": int(payload.get("subject_fee", 0)),
                "value": int(payload.get("value", 0)),
                "supply": int(payload.get("supply", 0)),
            }
        )
        self._last_sequence = event.sequence_num

    def _read_last_sequence(self) -> int:
        with open(self.log_path, newline="") as handle:
            rows = list(csv.DictReader(handle))
        last = 0
        for row in rows:
            try:
                last = max(last, int(row.get("sequence_num") or 0))
            except ValueError:
                continue
        return last

    def _ensure_header(self) -> None:
        if self.log_path.exists():
            return
        with open(self.log_path, "w", newline="") as handle:
            csv.DictWriter(handle, fieldnames=FIELDNAMES).writeheader()

    def _append_row(self, row: dict[str, Any]) -> None:
        with open(self.log_path, "a", newline="") as handle:
            csv.DictWriter(handle, fieldnames=FIELDNAMES).writerow(row)
