"""Open a market from its event ledger, creating it on first run."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from src.config.settings import Settings
from src.ledger.bus import TradeSink
from src.ledger.state import MarketStateManager
from src.ledger.store import EventLedger
from src.market.capability import AdminCap
from src.market.engine import Market
from src.market.fees import FeePolicy
from src.market.payment import InMemoryPaymentMedium

log = structlog.get_logger(__name__)


def _read_admin_secret(settings: Settings) -> str | None:
    if settings.market_admin_key:
        return settings.market_admin_key
    path = settings.admin_key_path
    if path.exists():
        return path.read_text(encoding="utf-8").strip() or None
    return None


def _write_admin_secret(path: Path, secret: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(secret + "\n")


def load_market(
    settings: Settings,
    ledger: EventLedger,
    sink: TradeSink | None = None,
) -> tuple[Market, AdminCap | None]:
    """Replay ``ledger`` into a live market and re-issue its admin capability.

    The admin secret comes from ``MARKET_ADMIN_KEY`` or, failing that, the key
    file; a market created without either writes a fresh secret to the key
    file. The capability is ``None`` when no secret matching the market's
    recorded fingerprint is available.
    """
    snapshot = MarketStateManager().rebuild(ledger.load_all())
    secret = _read_admin_secret(settings)

    if snapshot.initialized:
        payments = InMemoryPaymentMedium(custody=snapshot.custody)
        market = Market.from_snapshot(snapshot, payments, sink)
        if secret is None:
            log.warning("admin_key_unavailable", key_path=str(settings.admin_key_path))
            return market, None
        cap = AdminCap(holder=snapshot.admin or settings.market.admin, secret=secret)
        if not market.recognises(cap):
            log.warning("admin_key_mismatch", key_path=str(settings.admin_key_path))
            return market, None
        return market, cap

    log.info("market_ledger_empty", ledger_path=str(ledger.ledger_path))
    market, cap = Market.create(
        admin=settings.market.admin,
        payments=InMemoryPaymentMedium(),
        fee_policy=FeePolicy.from_config(settings.market),
        protocol_fee_destination=settings.market.protocol_fee_destination,
        sink=sink,
        admin_secret=secret,
    )
    if secret is None:
        _write_admin_secret(settings.admin_key_path, cap.secret)
        log.info("admin_key_written", key_path=str(settings.admin_key_path))
    return market, cap
