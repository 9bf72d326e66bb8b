"""Bonding-curve share market.

``Market`` is the only component callers talk to. It owns the share ledger,
the liquidity pool and the protocol fee accumulator, and changes them only
under its lock, after every precondition of an operation has been checked
and the operation's event has been recorded. A failed operation therefore
leaves no trace, and a recorded event always matches a committed change.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Mapping

import structlog

from src.ledger.events import EventType
from src.market.capability import AdminCap
from src.market.errors import (
    CannotSellLastShare,
    FirstShareRestricted,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientShares,
    LedgerWriteError,
    MarketError,
    Unauthorized,
)
from src.market.fees import FeeBreakdown, FeePolicy
from src.market.models import TradeDirection, TradeRecord
from src.market.payment import Payment, PaymentMedium
from src.market.pool import FeeAccumulator, LiquidityPool
from src.market.pricing import ensure_u64, price
from src.market.shares import ShareLedger

if TYPE_CHECKING:
    from src.ledger.bus import TradeSink
    from src.ledger.events import Event
    from src.ledger.state import MarketSnapshot

log = structlog.get_logger(__name__)


def _require_positive_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")


class Market:
    """Buy and sell shares of any subject along a linear bonding curve."""

    def __init__(
        self,
        payments: PaymentMedium,
        admin_key_hash: str,
        protocol_fee_destination: str,
        fee_policy: FeePolicy | None = None,
        sink: TradeSink | None = None,
    ) -> None:
        self._payments = payments
        self._admin_key_hash = admin_key_hash
        self._fee_destination = protocol_fee_destination
        self.fee_policy = fee_policy or FeePolicy()
        self._sink = sink
        self._shares = ShareLedger()
        self._pool = LiquidityPool()
        self._fees = FeeAccumulator()
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        admin: str,
        payments: PaymentMedium,
        fee_policy: FeePolicy | None = None,
        protocol_fee_destination: str | None = None,
        sink: TradeSink | None = None,
        admin_secret: str | None = None,
    ) -> tuple[Market, AdminCap]:
        """Open a new market and hand its admin capability to ``admin``.

        ``admin_secret`` pins the capability's secret, so the same cap can be
        presented again after a restart; by default a random one is drawn.
        """
        cap = AdminCap(holder=admin, secret=admin_secret) if admin_secret else AdminCap(holder=admin)
        market = cls(
            payments=payments,
            admin_key_hash=cap.fingerprint,
            protocol_fee_destination=protocol_fee_destination or admin,
            fee_policy=fee_policy,
            sink=sink,
        )
        event = market._record_event(
            EventType.MARKET_CREATED,
            {
                "admin": admin,
                "admin_key_hash": cap.fingerprint,
                "protocol_fee_destination": market._fee_destination,
                "protocol_fee_bps": market.fee_policy.protocol_fee_bps,
                "subject_fee_bps": market.fee_policy.subject_fee_bps,
            },
        )
        log.info("market_created", admin=admin, fee_destination=market._fee_destination)
        market._deliver(event)
        return market, cap

    @classmethod
    def from_snapshot(
        cls,
        snapshot: MarketSnapshot,
        payments: PaymentMedium,
        sink: TradeSink | None = None,
    ) -> Market:
        """Restore a market replayed from its event log.

        ``payments`` must already hold ``snapshot.custody`` on the market's behalf.
        """
        if snapshot.admin_key_hash is None or snapshot.protocol_fee_destination is None:
            raise ValueError("Snapshot has no MarketCreated event to restore from")
        breaks = snapshot.conservation_breaks()
        if breaks:
            raise ValueError(f"Snapshot balances do not match supply for: {', '.join(breaks)}")
        market = cls(
            payments=payments,
            admin_key_hash=snapshot.admin_key_hash,
            protocol_fee_destination=snapshot.protocol_fee_destination,
            fee_policy=FeePolicy(snapshot.protocol_fee_bps, snapshot.subject_fee_bps),
            sink=sink,
        )
        market._shares.load(snapshot.balances)
        market._pool.deposit(snapshot.pool_balance)
        market._fees.accrue(snapshot.protocol_fee_balance)
        log.info(
            "market_restored",
            subjects=len(snapshot.supplies),
            pool_balance=snapshot.pool_balance,
            last_event_sequence=snapshot.last_event_sequence,
        )
        return market

    def recognises(self, admin_cap: AdminCap) -> bool:
        """Whether ``admin_cap`` is this market's admin capability."""
        return admin_cap.matches(self._admin_key_hash)

    # Trading

    def buy_shares(
        self,
        subject: str,
        quantity: int,
        payment: Payment,
        buyer: str,
    ) -> TradeRecord:
        """Buy ``quantity`` shares of ``subject``, paying from ``payment``.

        Any value in ``payment`` beyond the total cost goes back to ``buyer``.
        """
        _require_positive_quantity(quantity)
        with self._lock:
            try:
                supply = self._shares.get_supply(subject)
                if supply == 0 and buyer != subject:
                    raise FirstShareRestricted(subject, buyer)
                base = price(supply, quantity)
                fees = self.fee_policy.fees(base)
                total = ensure_u64(base + fees.total)
                provided = self._payments.value(payment)
                if provided < total:
                    raise InsufficientPayment(total, provided)
            except MarketError as exc:
                self._log_rejection("buy", exc, subject=subject, trader=buyer, quantity=quantity)
                raise

            record = self._trade(
                buyer, subject, TradeDirection.BUY, quantity, base, fees, total, supply + quantity
            )
            event = self._record_event(EventType.SHARES_TRADED, record.to_payload())

            cost, change = self._payments.split(payment, total)
            self._payments.deposit(cost)
            self._payments.transfer(buyer, change)
            self._shares.credit(subject, buyer, quantity)
            self._fees.accrue(fees.protocol_fee)
            self._payments.pay(subject, fees.subject_fee)
            self._pool.deposit(base)

            log.info(
                "shares_bought",
                subject=subject,
                buyer=buyer,
                quantity=quantity,
                base_price=base,
                total=total,
                supply=record.supply,
            )
            self._deliver(event)
        return record

    def sell_shares(self, subject: str, quantity: int, seller: str) -> TradeRecord:
        """Sell ``quantity`` of ``seller``'s shares back to the pool.

        The last outstanding share of a subject can never be sold.
        """
        _require_positive_quantity(quantity)
        with self._lock:
            try:
                if not self._shares.has_subject(subject):
                    raise InsufficientShares(subject, quantity, 0)
                supply = self._shares.get_supply(subject)
                if supply <= quantity:
                    raise CannotSellLastShare(subject, supply, quantity)
                held = self._shares.get_balance(subject, seller)
                if held < quantity:
                    raise InsufficientShares(subject, quantity, held, holder=seller)
                base = price(supply - quantity, quantity)
                fees = self.fee_policy.fees(base)
                if self._pool.balance < base:
                    raise InsufficientLiquidity(self._pool.balance, base)
            except MarketError as exc:
                self._log_rejection("sell", exc, subject=subject, trader=seller, quantity=quantity)
                raise

            proceeds = base - fees.total
            record = self._trade(
                seller, subject, TradeDirection.SELL, quantity, base, fees, proceeds, supply - quantity
            )
            event = self._record_event(EventType.SHARES_TRADED, record.to_payload())

            self._shares.debit(subject, seller, quantity)
            self._pool.withdraw(base)
            self._payments.pay(seller, proceeds)
            self._fees.accrue(fees.protocol_fee)
            self._payments.pay(subject, fees.subject_fee)

            log.info(
                "shares_sold",
                subject=subject,
                seller=seller,
                quantity=quantity,
                base_price=base,
                proceeds=proceeds,
                supply=record.supply,
            )
            self._deliver(event)
        return record

    # Liquidity and admin

    def add_liquidity(self, payment: Payment, provider: str | None = None) -> int:
        """Deposit the full value of ``payment`` into the pool; open to anyone."""
        with self._lock:
            amount = self._payments.value(payment)
            pool_after = self._pool.balance + amount
            event = self._record_event(
                EventType.LIQUIDITY_ADDED,
                {"amount": amount, "provider": provider, "pool_balance": pool_after},
            )
            self._payments.deposit(payment)
            self._pool.deposit(amount)
            log.info("liquidity_added", amount=amount, provider=provider, pool_balance=pool_after)
            self._deliver(event)
        return amount

    def withdraw_protocol_fees(self, admin_cap: AdminCap) -> int:
        """Pay every accrued protocol fee to the fee destination."""
        with self._lock:
            self._authorize(admin_cap, "withdraw_protocol_fees")
            amount = self._fees.balance
            destination = self._fee_destination
            event = self._record_event(
                EventType.PROTOCOL_FEES_WITHDRAWN,
                {"amount": amount, "destination": destination},
            )
            self._fees.drain()
            self._payments.pay(destination, amount)
            log.info("protocol_fees_withdrawn", amount=amount, destination=destination)
            self._deliver(event)
        return amount

    def update_protocol_fee_destination(self, admin_cap: AdminCap, new_destination: str) -> None:
        if not new_destination:
            raise ValueError("new_destination must be a non-empty identity")
        with self._lock:
            self._authorize(admin_cap, "update_protocol_fee_destination")
            previous = self._fee_destination
            event = self._record_event(
                EventType.FEE_DESTINATION_UPDATED,
                {"previous": previous, "destination": new_destination},
            )
            self._fee_destination = new_destination
            log.info("fee_destination_updated", previous=previous, destination=new_destination)
            self._deliver(event)

    # Read-only queries

    def get_current_supply(self, subject: str) -> int:
        with self._lock:
            return self._shares.get_supply(subject)

    def get_balance(self, subject: str, holder: str) -> int:
        with self._lock:
            return self._shares.get_balance(subject, holder)

    def get_holders(self, subject: str) -> Mapping[str, int]:
        with self._lock:
            return self._shares.holders(subject)

    def subjects(self) -> list[str]:
        with self._lock:
            return self._shares.subjects()

    def get_buy_price(self, subject: str, quantity: int) -> int:
        with self._lock:
            return price(self._shares.get_supply(subject), quantity)

    def get_buy_price_after_fee(self, subject: str, quantity: int) -> int:
        base = self.get_buy_price(subject, quantity)
        return ensure_u64(self.fee_policy.buyer_total(base))

    def get_sell_price(self, subject: str, quantity: int) -> int:
        with self._lock:
            supply = self._shares.get_supply(subject)
            if quantity > supply:
                raise InsufficientShares(subject, quantity, supply)
            return price(supply - quantity, quantity)

    def get_sell_price_after_fee(self, subject: str, quantity: int) -> int:
        return self.fee_policy.seller_net(self.get_sell_price(subject, quantity))

    @property
    def payments(self) -> PaymentMedium:
        """The payment medium holding this market's custody."""
        return self._payments

    @property
    def pool_balance(self) -> int:
        with self._lock:
            return self._pool.balance

    @property
    def protocol_fee_balance(self) -> int:
        with self._lock:
            return self._fees.balance

    @property
    def protocol_fee_destination(self) -> str:
        with self._lock:
            return self._fee_destination

    def is_conserved(self) -> bool:
        with self._lock:
            return self._shares.is_conserved()

    # Internals

    def _authorize(self, admin_cap: AdminCap, action: str) -> None:
        if not self.recognises(admin_cap):
            log.warning("unauthorized_admin_call", action=action, holder=admin_cap.holder)
            raise Unauthorized(action)

    @staticmethod
    def _trade(
        trader: str,
        subject: str,
        direction: TradeDirection,
        quantity: int,
        base: int,
        fees: FeeBreakdown,
        value: int,
        supply: int,
    ) -> TradeRecord:
        return TradeRecord(
            trader=trader,
            subject=subject,
            direction=direction,
            quantity=quantity,
            base_price=base,
            protocol_fee=fees.protocol_fee,
            subject_fee=fees.subject_fee,
            value=value,
            supply=supply,
        )

    def _record_event(self, event_type: EventType, payload: dict[str, Any]) -> Event | None:
        # Called before any state changes; raising here abandons the operation.
        if self._sink is None:
            return None
        try:
            return self._sink.record(event_type, payload, {"source": "market"})
        except Exception as exc:
            log.exception("event_record_failed", event_type=event_type.value)
            raise LedgerWriteError(event_type.value, str(exc)) from exc

    def _deliver(self, event: Event | None) -> None:
        # Runs after the commit; subscribers cannot undo it.
        if self._sink is None or event is None:
            return
        try:
            self._sink.deliver(event)
        except Exception:
            log.exception("event_delivery_failed", event_type=event.event_type.value)

    @staticmethod
    def _log_rejection(side: str, exc: MarketError, **fields: Any) -> None:
        log.warning("trade_rejected", side=side, reason=type(exc).__name__, detail=str(exc), **fields)
