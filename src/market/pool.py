"""Liquidity pool and protocol fee accumulator."""

from __future__ import annotations

from src.market.errors import InsufficientLiquidity


class LiquidityPool:
    """Shared reserve backing sell payouts."""

    def __init__(self, balance: int = 0) -> None:
        if balance < 0:
            raise ValueError(f"pool balance must be non-negative, got {balance}")
        self._balance = balance

    @property
    def balance(self) -> int:
        return self._balance

    def deposit(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"deposit amount must be non-negative, got {amount}")
        self._balance += amount

    def withdraw(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"withdraw amount must be non-negative, got {amount}")
        if amount > self._balance:
            raise InsufficientLiquidity(self._balance, amount)
        self._balance -= amount


class FeeAccumulator:
    """Protocol fees awaiting withdrawal by the admin."""

    def __init__(self, balance: int = 0) -> None:
        if balance < 0:
            raise ValueError(f"fee balance must be non-negative, got {balance}")
        self._balance = balance

    @property
    def balance(self) -> int:
        return self._balance

    def accrue(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"fee amount must be non-negative, got {amount}")
        self._balance += amount

    def drain(self) -> int:
        """Return the accumulated balance and reset it to zero."""
        amount = self._balance
        self._balance = 0
        return amount
