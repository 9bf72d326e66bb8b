"""Bonding-curve share market: pricing, fees, share ledger and the Market itself."""

from src.market.capability import AdminCap
from src.market.engine import Market
from src.market.errors import (
    ArithmeticOverflow,
    CannotSellLastShare,
    FirstShareRestricted,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientShares,
    LedgerWriteError,
    MarketError,
    PaymentError,
    Unauthorized,
)
from src.market.fees import BASIS_POINTS, FeeBreakdown, FeePolicy
from src.market.models import TradeDirection, TradeRecord
from src.market.payment import InMemoryPaymentMedium, Payment, PaymentMedium
from src.market.pricing import U64_MAX, price

__all__ = [
    "AdminCap",
    "Market",
    "MarketError",
    "ArithmeticOverflow",
    "CannotSellLastShare",
    "FirstShareRestricted",
    "InsufficientLiquidity",
    "InsufficientPayment",
    "InsufficientShares",
    "LedgerWriteError",
    "PaymentError",
    "Unauthorized",
    "BASIS_POINTS",
    "FeeBreakdown",
    "FeePolicy",
    "TradeDirection",
    "TradeRecord",
    "InMemoryPaymentMedium",
    "Payment",
    "PaymentMedium",
    "U64_MAX",
    "price",
]
