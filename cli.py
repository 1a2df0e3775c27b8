"""
Command-line entry point for the portfolio tracker.
Record purchases, look up prices, and print portfolio analytics.

Usage:
    python cli.py add AAPL 10 150.25 --date 2024-01-15
    python cli.py list
    python cli.py update 3 AAPL 12 149.80 --date 2024-01-15
    python cli.py delete 3
    python cli.py price MSFT
    python cli.py report [--json]
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from db_engine import init_db
from models import TransactionCreate
from repositories import TransactionRepository
from services.common import format_currency, utc_now
from services.market_data import MarketDataService
from services.portfolio import PortfolioService

logger = logging.getLogger(__name__)


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value!r} (expected ISO format, e.g. 2024-01-15)")


def _transaction_input(args) -> TransactionCreate:
    return TransactionCreate(
        ticker=args.ticker,
        quantity=args.quantity,
        price=args.price,
        purchased_at=args.date or utc_now(),
    )


def _print_transaction(txn) -> None:
    print(
        f"#{txn.id:<5} {txn.ticker:<8} {txn.quantity:>12.4f} @ {format_currency(txn.price):>12}"
        f"  {txn.purchased_at.isoformat()}"
    )


def cmd_add(args) -> int:
    txn = TransactionRepository.add(_transaction_input(args))
    logger.info(f"Added transaction {txn.id} for {txn.ticker}")
    _print_transaction(txn)
    return 0


def cmd_list(args) -> int:
    transactions = TransactionRepository.get_all(order="desc" if args.desc else "asc")
    if not transactions:
        print("No transactions recorded.")
        return 0
    for txn in transactions:
        _print_transaction(txn)
    return 0


def cmd_update(args) -> int:
    txn = TransactionRepository.update(args.id, _transaction_input(args))
    if txn is None:
        print(f"Transaction {args.id} not found.", file=sys.stderr)
        return 1
    logger.info(f"Updated transaction {txn.id}")
    _print_transaction(txn)
    return 0


def cmd_delete(args) -> int:
    if not TransactionRepository.delete(args.id):
        print(f"Transaction {args.id} not found.", file=sys.stderr)
        return 1
    print("Transaction deleted successfully")
    return 0


def cmd_price(args) -> int:
    quote = MarketDataService.get_stock_quote(args.ticker)
    if quote is None:
        print(f"No price data found for {args.ticker.upper()}.", file=sys.stderr)
        return 1
    print(json.dumps(quote.to_dict(), indent=2))
    return 0


def cmd_report(args) -> int:
    analytics = PortfolioService.get_portfolio_analytics()
    if args.json:
        print(json.dumps(analytics.to_dict(), indent=2))
    else:
        print(PortfolioService.format_portfolio_report(analytics))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track stock purchases and portfolio returns")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_transaction_fields(sub):
        sub.add_argument("ticker", help="Ticker symbol, e.g. AAPL")
        sub.add_argument("quantity", type=float, help="Number of shares (fractional allowed)")
        sub.add_argument("price", type=float, help="Price per share")
        sub.add_argument("--date", type=_parse_datetime, default=None,
                         help="Purchase date/time in ISO format (default: now)")

    add = subparsers.add_parser("add", help="Record a purchase")
    add_transaction_fields(add)
    add.set_defaults(func=cmd_add)

    lst = subparsers.add_parser("list", help="List recorded purchases")
    lst.add_argument("--desc", action="store_true", help="Newest first")
    lst.set_defaults(func=cmd_list)

    update = subparsers.add_parser("update", help="Replace a recorded purchase")
    update.add_argument("id", type=int)
    add_transaction_fields(update)
    update.set_defaults(func=cmd_update)

    delete = subparsers.add_parser("delete", help="Delete a recorded purchase")
    delete.add_argument("id", type=int)
    delete.set_defaults(func=cmd_delete)

    price = subparsers.add_parser("price", help="Show the current quote for a ticker")
    price.add_argument("ticker")
    price.set_defaults(func=cmd_price)

    report = subparsers.add_parser("report", help="Show holdings, gains, CAGR and XIRR")
    report.add_argument("--json", action="store_true", help="Print the analytics as JSON")
    report.set_defaults(func=cmd_report)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        init_db()
        return args.func(args)
    except ValidationError as e:
        for error in e.errors():
            print(f"Invalid input: {error['msg']}", file=sys.stderr)
        return 2
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
