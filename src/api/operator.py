"""Operator API for inspecting the market and quoting trades."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query

from src.config.settings import Settings, load_settings
from src.ledger import EventBus, EventLedger
from src.market import Market, MarketError
from src.market.loader import load_market

API_NAME = "Share Market Operator API"
API_VERSION = "0.1.0"

_start_time: float = 0.0


def _conflict(exc: MarketError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"error": type(exc).__name__, "message": str(exc)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    global _start_time
    _start_time = time.time()
    yield


def create_app(
    market: Market | None = None,
    ledger: EventLedger | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Missing collaborators are built from settings: the ledger at
    ``storage.ledger_path`` and a market replayed from it.
    """
    settings = settings or load_settings()
    if ledger is None:
        ledger = EventLedger(settings.storage.ledger_path)
    if market is None:
        market, _ = load_market(settings, ledger, EventBus(ledger))
    max_quantity = settings.market.max_trade_quantity

    app = FastAPI(
        title=API_NAME,
        description="Inspect supplies, balances and the liquidity pool; quote trades",
        version=API_VERSION,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "name": API_NAME,
            "version": API_VERSION,
            "endpoints": ["/health", "/subjects/{subject}", "/quotes/buy", "/quotes/sell", "/pool", "/events"],
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "uptime_sec": time.time() - _start_time if _start_time else 0.0,
            "last_event_sequence": ledger.last_sequence(),
            "subjects": len(market.subjects()),
            "ledger_conserved": market.is_conserved(),
        }

    @app.get("/subjects/{subject}")
    async def get_subject(subject: str) -> dict[str, Any]:
        return {
            "subject": subject,
            "supply": market.get_current_supply(subject),
            "holders": dict(market.get_holders(subject)),
        }

    @app.get("/quotes/buy")
    async def quote_buy(
        subject: str = Query(..., min_length=1),
        quantity: int = Query(..., ge=1, le=max_quantity),
    ) -> dict[str, Any]:
        """Price of buying ``quantity`` shares at the current supply."""
        try:
            base = market.get_buy_price(subject, quantity)
            after_fee = market.get_buy_price_after_fee(subject, quantity)
        except MarketError as exc:
            raise _conflict(exc) from exc
        fees = market.fee_policy.fees(base)
        return {
            "subject": subject,
            "quantity": quantity,
            "supply": market.get_current_supply(subject),
            "price": base,
            "protocol_fee": fees.protocol_fee,
            "subject_fee": fees.subject_fee,
            "price_after_fee": after_fee,
        }

    @app.get("/quotes/sell")
    async def quote_sell(
        subject: str = Query(..., min_length=1),
        quantity: int = Query(..., ge=1, le=max_quantity),
    ) -> dict[str, Any]:
        """Proceeds of selling ``quantity`` shares at the current supply."""
        try:
            base = market.get_sell_price(subject, quantity)
            after_fee = market.get_sell_price_after_fee(subject, quantity)
        except MarketError as exc:
            raise _conflict(exc) from exc
        fees = market.fee_policy.fees(base)
        return {
            "subject": subject,
            "quantity": quantity,
            "supply": market.get_current_supply(subject),
            "price": base,
            "protocol_fee": fees.protocol_fee,
            "subject_fee": fees.subject_fee,
            "price_after_fee": after_fee,
        }

    @app.get("/pool")
    async def get_pool() -> dict[str, Any]:
        return {
            "pool_balance": market.pool_balance,
            "protocol_fee_balance": market.protocol_fee_balance,
            "protocol_fee_destination": market.protocol_fee_destination,
            "protocol_fee_bps": market.fee_policy.protocol_fee_bps,
            "subject_fee_bps": market.fee_policy.subject_fee_bps,
        }

    @app.get("/events")
    async def get_events(
        tail: int = Query(default=100, ge=1, le=1000, description="Number of recent events"),
    ) -> dict[str, Any]:
        recent = ledger.iter_events_tail(tail)
        return {
            "count": len(recent),
            "total": ledger.last_sequence(),
            "events": [e.to_dict() for e in recent],
        }

    return app
