from concurrent.futures import ThreadPoolExecutor

from conftest import buy
from src.market import InMemoryPaymentMedium, Market, MarketError
from src.market.pricing import price


def test_concurrent_buys_and_sells_preserve_invariants(
    market: Market, payments: InMemoryPaymentMedium
) -> None:
    buy(market, payments, "alice", "alice", 1)
    traders = [f"trader-{i}" for i in range(8)]
    for trader in traders:
        payments.fund(trader, 10_000_000)

    def trade(trader: str) -> int:
        sold = 0
        for _ in range(10):
            handle = payments.issue(trader, 100_000)
            market.buy_shares("alice", 3, handle, trader)
        for _ in range(5):
            try:
                market.sell_shares("alice", 2, trader)
                sold += 2
            except MarketError:
                pass
        return sold

    with ThreadPoolExecutor(max_workers=len(traders)) as pool:
        sold = sum(pool.map(trade, traders))

    supply = market.get_current_supply("alice")
    assert supply == 1 + len(traders) * 30 - sold
    assert market.is_conserved()
    assert market.pool_balance == price(0, supply)
    assert payments.custody == market.pool_balance + market.protocol_fee_balance
