"""Market event log, bus and state replay."""

from src.ledger.bus import EventBus, TradeSink
from src.ledger.events import Event, EventType
from src.ledger.state import MarketSnapshot, MarketStateManager
from src.ledger.store import EventLedger

__all__ = [
    "Event",
    "EventType",
    "EventLedger",
    "EventBus",
    "TradeSink",
    "MarketSnapshot",
    "MarketStateManager",
]
