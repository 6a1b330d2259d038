#!/usr/bin/env python3
"""
Print the stock ledger of one product from the database.

Reads the database URL and ledger options from the active configuration
(get_active_config).  Prints each entry with in/out quantities and running
balance, then the current balance.

Usage:
    python3 scripts/view_ledger.py --product-id <id> [options]

Examples:
    # Whole ledger of product 7, default configuration
    python3 scripts/view_ledger.py --product-id 7

    # One day of movements, explicit configuration file
    python3 scripts/view_ledger.py --config prod.yaml --product-id 7 \\
        --from 2024-03-01T00:00:00+00:00 --to 2024-03-01T23:59:59+00:00

    # Check every stored balance against the recomputed fold
    python3 scripts/view_ledger.py --product-id 7 --verify
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from decimal import Decimal, localcontext
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 100


def _timestamp(value: str) -> datetime:
    """ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print a product's stock ledger with running balances.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: stock_ledger_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--product-id",
        required=True,
        type=int,
        help="Product whose ledger to print.",
    )
    parser.add_argument(
        "--from",
        dest="from_time",
        type=_timestamp,
        default=None,
        help="Inclusive lower bound on entry time (ISO-8601).",
    )
    parser.add_argument(
        "--to",
        dest="to_time",
        type=_timestamp,
        default=None,
        help="Inclusive upper bound on entry time (ISO-8601).",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="List entries whose stored balance breaks the running fold. Exit 2 if any.",
    )
    return parser.parse_args(argv)


def _missing_sqlite_file(database_url: str) -> Path | None:
    """Path of a file-based SQLite database that does not exist yet, else None."""
    from sqlalchemy.engine import make_url

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database:
        return None
    path = Path(url.database)
    return None if path.exists() else path


def _fmt(v: Decimal) -> str:
    with localcontext(prec=40):
        return f"{v.normalize():,f}" if v else "0"


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from stock_ledger.exceptions import StockLedgerError
    from stock_ledger_config import get_active_config
    from stock_ledger_config.bridges import build_ledger_engine

    try:
        config = get_active_config(args.config)
        missing = _missing_sqlite_file(config.database.url)
        if missing is not None:
            raise FileNotFoundError(f"database file not found: {missing}")
        # Read-only: never create the schema or the database file.
        engine = build_ledger_engine(config, configure_logs=False, create_tables_override=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        rows = engine.report(args.product_id, args.from_time, args.to_time)
        balance = engine.current_balance(args.product_id)
        discrepancies = engine.verify(args.product_id) if args.verify else []
    except StockLedgerError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    title = f"STOCK LEDGER - PRODUCT {args.product_id}"
    if rows and rows[0].product_name:
        title += f" ({rows[0].product_name})"

    print()
    print("=" * W)
    print(title.center(W))
    print("=" * W)

    if not rows:
        print("  No ledger entries found.")
    else:
        print(
            f"  {'#':>6} {'Date':<20} {'Movement':<13} {'Ref':<16} "
            f"{'In':>12} {'Out':>12} {'Balance':>14}"
        )
        print(f"  {'-'*6} {'-'*20} {'-'*13} {'-'*16} {'-'*12} {'-'*12} {'-'*14}")
        for row in rows:
            print(
                f"  {row.entry_id:>6} {row.created_at:%Y-%m-%d %H:%M:%S} "
                f"{row.movement_type.value:<13} {row.ref_no:<16} "
                f"{_fmt(row.in_qty):>12} {_fmt(row.out_qty):>12} {_fmt(row.balance):>14}"
            )
            if row.note:
                print(f"  {'':>6} {row.note}")

    print("-" * W)
    print(f"  Current balance: {_fmt(balance)}")

    if args.verify:
        if not discrepancies:
            print("  Verify: all stored balances consistent.")
        else:
            print(f"  Verify: {len(discrepancies)} inconsistent balance(s)")
            for d in discrepancies:
                print(
                    f"    entry {d.entry_id}: stored {_fmt(d.stored_balance)}, "
                    f"expected {_fmt(d.expected_balance)}"
                )
    print()
    return 2 if discrepancies else 0


if __name__ == "__main__":
    logging.disable(logging.CRITICAL)
    sys.exit(main())
