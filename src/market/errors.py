"""Market error types.

Every error is a precondition failure: the operation that raised it left the
market untouched.
"""

from __future__ import annotations


class MarketError(Exception):
    """Base class for all market precondition failures."""

    pass


class InsufficientPayment(MarketError):
    """Raised when a buy payment does not cover price plus fees."""

    def __init__(self, required: int, provided: int) -> None:
        self.required = required
        self.provided = provided
        super().__init__(f"Payment of {provided} does not cover required {required}")


class FirstShareRestricted(MarketError):
    """Raised when someone other than the subject tries to mint the first share."""

    def __init__(self, subject: str, buyer: str) -> None:
        self.subject = subject
        self.buyer = buyer
        super().__init__(f"Only {subject} can buy the first share of {subject} (buyer: {buyer})")


class CannotSellLastShare(MarketError):
    """Raised when a sell would take a subject's supply to zero."""

    def __init__(self, subject: str, supply: int, quantity: int) -> None:
        self.subject = subject
        self.supply = supply
        self.quantity = quantity
        super().__init__(
            f"Cannot sell {quantity} of {subject}: supply is {supply} and the last share is locked"
        )


class InsufficientShares(MarketError):
    """Raised when a holder (or the subject's supply) has fewer shares than requested."""

    def __init__(
        self,
        subject: str,
        requested: int,
        available: int,
        holder: str | None = None,
    ) -> None:
        self.subject = subject
        self.requested = requested
        self.available = available
        self.holder = holder
        owner = f"{holder} holds" if holder else "supply is"
        super().__init__(f"Requested {requested} shares of {subject} but {owner} {available}")


class InsufficientLiquidity(MarketError):
    """Raised when the liquidity pool cannot cover a payout."""

    def __init__(self, available: int, required: int) -> None:
        self.available = available
        self.required = required
        super().__init__(f"Liquidity pool holds {available}, payout needs {required}")


class ArithmeticOverflow(MarketError):
    """Raised when an amount leaves the unsigned 64-bit value range."""

    def __init__(self, value: int, limit: int) -> None:
        self.value = value
        self.limit = limit
        super().__init__(f"Amount {value} exceeds the maximum representable value {limit}")


class Unauthorized(MarketError):
    """Raised when a privileged call presents the wrong admin capability."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Admin capability required for {action}")


class PaymentError(MarketError):
    """Raised when a payment handle is spent, unknown, or too small to split."""

    pass


class LedgerWriteError(MarketError):
    """Raised when a market event cannot be recorded; the operation is abandoned."""

    def __init__(self, event_type: str, reason: str) -> None:
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Could not record {event_type}: {reason}")
