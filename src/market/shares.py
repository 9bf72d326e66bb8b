"""Share supply and holder balances."""

from __future__ import annotations

from collections.abc import Mapping

from src.market.errors import InsufficientShares


class ShareLedger:
    """Supply per subject and balance per (subject, holder).

    Records are created on first credit and never removed, even when a
    holder's balance returns to zero. Only ``Market`` mutates this object.
    """

    def __init__(self) -> None:
        self._supply: dict[str, int] = {}
        self._balances: dict[str, dict[str, int]] = {}

    def has_subject(self, subject: str) -> bool:
        return subject in self._supply

    def subjects(self) -> list[str]:
        return list(self._supply)

    def get_supply(self, subject: str) -> int:
        return self._supply.get(subject, 0)

    def get_balance(self, subject: str, holder: str) -> int:
        return self._balances.get(subject, {}).get(holder, 0)

    def holders(self, subject: str) -> Mapping[str, int]:
        """Copy of the holder balances for ``subject``."""
        return dict(self._balances.get(subject, {}))

    def credit(self, subject: str, holder: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative, got {amount}")
        self._supply[subject] = self._supply.get(subject, 0) + amount
        balances = self._balances.setdefault(subject, {})
        balances[holder] = balances.get(holder, 0) + amount

    def debit(self, subject: str, holder: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"debit amount must be non-negative, got {amount}")
        available = self.get_balance(subject, holder)
        if available < amount:
            raise InsufficientShares(subject, amount, available, holder=holder)
        self._balances[subject][holder] = available - amount
        self._supply[subject] -= amount

    def is_conserved(self, subject: str | None = None) -> bool:
        """True when holder balances sum to supply (for one subject or all)."""
        subjects = [subject] if subject is not None else self.subjects()
        return all(
            sum(self._balances.get(name, {}).values()) == self.get_supply(name)
            for name in subjects
        )

    def load(self, balances: Mapping[str, Mapping[str, int]]) -> None:
        """Replace all records with ``balances``; supply is derived from them."""
        self._balances = {subject: dict(holders) for subject, holders in balances.items()}
        self._supply = {
            subject: sum(holders.values()) for subject, holders in self._balances.items()
        }
