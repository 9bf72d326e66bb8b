"""Payment medium interface and an in-process implementation.

The market never sees currency, only amounts and opaque ``Payment`` handles.
Value taken in by the market sits in the medium's custody until it is paid
out again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from src.market.errors import PaymentError


@dataclass(frozen=True)
class Payment:
    """Opaque handle to an amount of value held by a payment medium."""

    handle_id: str


class PaymentMedium(Protocol):
    def value(self, handle: Payment) -> int: ...

    def split(self, handle: Payment, amount: int) -> tuple[Payment, Payment]: ...

    def merge(self, first: Payment, second: Payment) -> Payment: ...

    def deposit(self, handle: Payment) -> int: ...

    def transfer(self, destination: str, handle: Payment) -> None: ...

    def pay(self, destination: str, amount: int) -> None: ...


class InMemoryPaymentMedium:
    """Account-based payment medium for a single process.

    Handles are single use: ``split``, ``merge``, ``deposit`` and ``transfer``
    consume the handles they are given.
    """

    def __init__(self, custody: int = 0) -> None:
        if custody < 0:
            raise ValueError(f"custody must be non-negative, got {custody}")
        self._accounts: dict[str, int] = {}
        self._handles: dict[str, int] = {}
        self._custody = custody

    @property
    def custody(self) -> int:
        """Value currently held on behalf of the market."""
        return self._custody

    def balance_of(self, account: str) -> int:
        return self._accounts.get(account, 0)

    def fund(self, account: str, amount: int) -> None:
        """Credit ``account`` with new value (faucet for setup and tests)."""
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        self._accounts[account] = self.balance_of(account) + amount

    def issue(self, account: str, amount: int) -> Payment:
        """Move ``amount`` out of ``account`` into a new handle."""
        available = self.balance_of(account)
        if amount < 0 or amount > available:
            raise PaymentError(f"{account} cannot issue {amount} (balance {available})")
        self._accounts[account] = available - amount
        return self._new_handle(amount)

    def total_value(self) -> int:
        """Value across accounts, live handles, and custody."""
        return sum(self._accounts.values()) + sum(self._handles.values()) + self._custody

    def value(self, handle: Payment) -> int:
        return self._live(handle)

    def split(self, handle: Payment, amount: int) -> tuple[Payment, Payment]:
        available = self._live(handle)
        if amount < 0 or amount > available:
            raise PaymentError(f"Cannot split {amount} from a payment of {available}")
        self._consume(handle)
        return self._new_handle(amount), self._new_handle(available - amount)

    def merge(self, first: Payment, second: Payment) -> Payment:
        if first == second:
            raise PaymentError("Cannot merge a payment with itself")
        total = self._live(first) + self._live(second)
        self._consume(first)
        self._consume(second)
        return self._new_handle(total)

    def deposit(self, handle: Payment) -> int:
        amount = self._consume(handle)
        self._custody += amount
        return amount

    def transfer(self, destination: str, handle: Payment) -> None:
        amount = self._consume(handle)
        self._accounts[destination] = self.balance_of(destination) + amount

    def pay(self, destination: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        if amount > self._custody:
            raise PaymentError(f"Custody holds {self._custody}, cannot pay {amount}")
        self._custody -= amount
        self._accounts[destination] = self.balance_of(destination) + amount

    def _new_handle(self, amount: int) -> Payment:
        handle = Payment(handle_id=uuid4().hex)
        self._handles[handle.handle_id] = amount
        return handle

    def _live(self, handle: Payment) -> int:
        try:
            return self._handles[handle.handle_id]
        except KeyError:
            raise PaymentError(f"Payment {handle.handle_id} is spent or unknown") from None

    def _consume(self, handle: Payment) -> int:
        amount = self._live(handle)
        del self._handles[handle.handle_id]
        return amount
