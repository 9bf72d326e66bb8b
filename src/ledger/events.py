"""Market event definitions and serialization helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


class EventType(str, Enum):
    """Facts the market publishes after a committed state change."""

    MARKET_CREATED = "MarketCreated"
    SHARES_TRADED = "SharesTraded"
    LIQUIDITY_ADDED = "LiquidityAdded"
    PROTOCOL_FEES_WITHDRAWN = "ProtocolFeesWithdrawn"
    FEE_DESTINATION_UPDATED = "FeeDestinationUpdated"


# Events that change who controls the market or its reserves, as opposed to trades.
ADMIN_EVENT_TYPES = frozenset(
    {
        EventType.MARKET_CREATED,
        EventType.LIQUIDITY_ADDED,
        EventType.PROTOCOL_FEES_WITHDRAWN,
        EventType.FEE_DESTINATION_UPDATED,
    }
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """Write-once record of a market fact, ordered by ``sequence_num``."""

    event_id: str
    event_type: EventType
    timestamp: datetime
    sequence_num: int
    payload: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: EventType,
        payload: dict[str, Any],
        sequence_num: int,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        return cls(uuid4().hex, event_type, utc_now(), sequence_num, payload, metadata or {})

    @property
    def timestamp_iso(self) -> str:
        """UTC, millisecond precision, ``Z`` suffix."""
        return self.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp"] = self.timestamp_iso
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        values = dict(data)
        values["event_type"] = EventType(values["event_type"])
        values["timestamp"] = datetime.fromisoformat(values["timestamp"].replace("Z", "+00:00"))
        values.setdefault("metadata", {})
        return cls(**values)
