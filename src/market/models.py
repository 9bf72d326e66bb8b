"""Trade records emitted by the market."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TradeDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class TradeRecord:
    """Immutable fact describing one committed trade.

    ``value`` is what actually changed hands with the trader: the buyer's
    total cost on a buy, the seller's net proceeds on a sell.
    """

    trader: str
    subject: str
    direction: TradeDirection
    quantity: int
    base_price: int
    protocol_fee: int
    subject_fee: int
    value: int
    supply: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_buy(self) -> bool:
        return self.direction == TradeDirection.BUY

    def to_payload(self) -> dict[str, Any]:
        return {
            "trader": self.trader,
            "subject": self.subject,
            "direction": self.direction.value,
            "quantity": self.quantity,
            "base_price": self.base_price,
            "protocol_fee": self.protocol_fee,
            "subject_fee": self.subject_fee,
            "value": self.value,
            "supply": self.supply,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any], timestamp: datetime | None = None) -> TradeRecord:
        return cls(
            trader=payload["trader"],
            subject=payload["subject"],
            direction=TradeDirection(payload["direction"]),
            quantity=int(payload["quantity"]),
            base_price=int(payload["base_price"]),
            protocol_fee=int(payload["protocol_fee"]),
            subject_fee=int(payload["subject_fee"]),
            value=int(payload["value"]),
            supply=int(payload["supply"]),
            timestamp=timestamp or datetime.now(timezone.utc),
        )
