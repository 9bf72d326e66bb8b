"""Protocol and subject fee computation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from src.config.settings import MarketConfig

BASIS_POINTS: Final[int] = 10_000
DEFAULT_PROTOCOL_FEE_BPS: Final[int] = 500
DEFAULT_SUBJECT_FEE_BPS: Final[int] = 500


@dataclass(frozen=True)
class FeeBreakdown:
    protocol_fee: int
    subject_fee: int

    @property
    def total(self) -> int:
        return self.protocol_fee + self.subject_fee


@dataclass(frozen=True)
class FeePolicy:
    """Two independent fee rates in basis points, floored per leg.

    Each leg is floored on its own, so the payer never pays more than
    ``base + floor(base * protocol) + floor(base * subject)`` and the seller
    never receives less than the base minus those same floored legs.
    """

    protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS
    subject_fee_bps: int = DEFAULT_SUBJECT_FEE_BPS

    def __post_init__(self) -> None:
        for name in ("protocol_fee_bps", "subject_fee_bps"):
            value = getattr(self, name)
            if not 0 <= value <= BASIS_POINTS:
                raise ValueError(f"{name} must be within 0..{BASIS_POINTS}, got {value}")
        if self.protocol_fee_bps + self.subject_fee_bps > BASIS_POINTS:
            raise ValueError(
                "Combined fee rate cannot exceed 100% "
                f"({self.protocol_fee_bps} + {self.subject_fee_bps} bps)"
            )

    @classmethod
    def from_config(cls, config: MarketConfig) -> FeePolicy:
        return cls(
            protocol_fee_bps=config.protocol_fee_bps,
            subject_fee_bps=config.subject_fee_bps,
        )

    def fees(self, base_price: int) -> FeeBreakdown:
        if base_price < 0:
            raise ValueError(f"base_price must be non-negative, got {base_price}")
        return FeeBreakdown(
            protocol_fee=base_price * self.protocol_fee_bps // BASIS_POINTS,
            subject_fee=base_price * self.subject_fee_bps // BASIS_POINTS,
        )

    def buyer_total(self, base_price: int) -> int:
        """Amount a buyer pays for ``base_price`` worth of shares."""
        return base_price + self.fees(base_price).total

    def seller_net(self, base_price: int) -> int:
        """Amount a seller receives for ``base_price`` worth of shares."""
        return base_price - self.fees(base_price).total
