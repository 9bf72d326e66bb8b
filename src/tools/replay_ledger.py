"""CLI to replay the event ledger and verify the market's invariants."""

from __future__ import annotations

import argparse
import sys

from src.config.settings import load_settings
from src.ledger import EventLedger, MarketStateManager


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Rebuild market state from the ledger and check share conservation."
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--ledger-path", default=None, help="Override storage.ledger_path")
    parser.add_argument(
        "--subject",
        action="append",
        default=[],
        help="Print holders for this subject (repeatable)",
    )
    args = parser.parse_args()

    settings = load_settings(args.config)
    ledger = EventLedger(args.ledger_path or settings.storage.ledger_path)
    snapshot = MarketStateManager().rebuild(ledger.load_all())

    if not snapshot.initialized:
        print(f"No market found in {ledger.events_file}.")
        return

    print(f"Events replayed:        {snapshot.last_event_sequence}")
    print(f"Trades:                 {snapshot.trade_count}")
    print(f"Subjects:               {len(snapshot.supplies)}")
    print(f"Pool balance:           {snapshot.pool_balance}")
    print(f"Protocol fee balance:   {snapshot.protocol_fee_balance}")
    print(f"Fee destination:        {snapshot.protocol_fee_destination}")
    for subject in args.subject:
        print(f"\n{subject}: supply {snapshot.supplies.get(subject, 0)}")
        for holder, balance in sorted(snapshot.balances.get(subject, {}).items()):
            print(f"  {holder}: {balance}")

    breaks = snapshot.conservation_breaks()
    if breaks or snapshot.pool_balance < 0 or snapshot.protocol_fee_balance < 0:
        print(f"\nLedger INCONSISTENT. Subjects out of balance: {', '.join(breaks) or 'none'}")
        sys.exit(1)
    print("\nLedger consistent.")


if __name__ == "__main__":
    main()
