"""
Portfolio service for aggregating purchases into holdings and return metrics.

Transactions are grouped by ticker, valued against current prices, and each
holding gets exactly one return metric: CAGR for a single purchase, XIRR for
several. The portfolio-level XIRR is computed over every purchase at once,
making it a true money-weighted return rather than an average of holdings.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Dict, Optional, Sequence, Union

import pandas as pd

from repositories import TransactionRepository
from services.common import (
    normalize_ticker,
    to_utc_datetime,
    utc_now,
    format_currency,
    format_percentage,
    format_rate,
)
from services.market_data import MarketDataService
from services.returns import (
    InvalidInputError,
    calculate_cagr_from_dates,
    calculate_portfolio_xirr,
    calculate_stock_xirr,
    get_return_metric_type,
)

logger = logging.getLogger(__name__)


def _transaction_to_dict(txn) -> Dict:
    purchased_at = txn.purchased_at
    return {
        'id': getattr(txn, 'id', None),
        'ticker': txn.ticker,
        'quantity': txn.quantity,
        'price': txn.price,
        'purchased_at': purchased_at.isoformat() if purchased_at is not None else None,
    }


@dataclass
class Holding:
    """Aggregated position in one instrument."""
    ticker: str
    total_quantity: float
    average_price: float
    current_price: float
    total_invested: float
    current_value: float
    absolute_gain: float
    percentage_gain: float
    cagr: Optional[float] = None
    xirr: Optional[float] = None
    transactions: List = field(default_factory=list)

    @property
    def return_metric(self) -> str:
        """Which return metric applies: 'CAGR' or 'XIRR'."""
        return get_return_metric_type(len(self.transactions))

    @property
    def annualized_return(self) -> Optional[float]:
        return self.cagr if self.return_metric == "CAGR" else self.xirr

    def to_dict(self) -> Dict:
        return {
            'ticker': self.ticker,
            'totalQuantity': self.total_quantity,
            'averagePrice': self.average_price,
            'currentPrice': self.current_price,
            'totalInvested': self.total_invested,
            'currentValue': self.current_value,
            'absoluteGain': self.absolute_gain,
            'percentageGain': self.percentage_gain,
            'cagr': self.cagr,
            'xirr': self.xirr,
            'transactions': [_transaction_to_dict(txn) for txn in self.transactions],
        }


@dataclass
class PortfolioAnalytics:
    """Holdings plus portfolio-wide totals and money-weighted return."""
    holdings: List[Holding]
    total_invested: float
    total_current_value: float
    total_absolute_gain: float
    total_percentage_gain: float
    overall_xirr: Optional[float]
    last_updated: str  # ISO timestamp of the computation

    def to_dict(self) -> Dict:
        """JSON-ready response body."""
        return {
            'holdings': [holding.to_dict() for holding in self.holdings],
            'totalInvested': self.total_invested,
            'totalCurrentValue': self.total_current_value,
            'totalAbsoluteGain': self.total_absolute_gain,
            'totalPercentageGain': self.total_percentage_gain,
            'overallXIRR': self.overall_xirr,
            'lastUpdated': self.last_updated,
        }


# ==================== Aggregation ====================

def validate_transactions(transactions: Sequence) -> None:
    """
    Check every transaction before any cash flows are built.

    Raises:
        InvalidInputError: on a missing ticker, a non-positive or non-finite
            quantity/price, or a purchase time that is not a date/datetime
    """
    for index, txn in enumerate(transactions):
        try:
            ticker, quantity, price, purchased_at = (
                txn.ticker, txn.quantity, txn.price, txn.purchased_at
            )
        except AttributeError as e:
            raise InvalidInputError(f"Transaction #{index} is missing a field: {e}") from e

        if not isinstance(ticker, str) or not ticker.strip():
            raise InvalidInputError(f"Transaction #{index} has no ticker")
        for name, value in (('quantity', quantity), ('price', price)):
            if isinstance(value, bool) or not isinstance(value, (int, float)) \
                    or not math.isfinite(value) or value <= 0:
                raise InvalidInputError(
                    f"Transaction #{index} ({ticker}): {name} must be a positive number, got {value!r}"
                )
        if not isinstance(purchased_at, (datetime, date)):
            raise InvalidInputError(
                f"Transaction #{index} ({ticker}): purchased_at must be a date or datetime"
            )


def group_by_ticker(transactions: Sequence) -> Dict[str, List]:
    """Group transactions by upper-case ticker, keeping first-appearance order."""
    groups: Dict[str, List] = {}
    for txn in transactions:
        groups.setdefault(normalize_ticker(txn.ticker), []).append(txn)
    return groups


def build_holding(ticker: str, transactions: List, current_price: float,
                  now: datetime) -> Holding:
    """Compute cost basis, value, gains and the applicable return metric."""
    total_quantity = sum(txn.quantity for txn in transactions)
    total_cost = sum(txn.quantity * txn.price for txn in transactions)
    average_price = total_cost / total_quantity
    current_value = total_quantity * current_price
    absolute_gain = current_value - total_cost
    percentage_gain = absolute_gain / total_cost * 100

    cagr = None
    xirr = None
    if len(transactions) == 1:
        try:
            cagr = calculate_cagr_from_dates(
                transactions[0].price,
                current_price,
                transactions[0].purchased_at,
                now
            )
        except InvalidInputError as e:
            logger.warning(f"CAGR calculation failed for {ticker}: {e}")
    else:
        xirr = calculate_stock_xirr(transactions, current_price, now)

    return Holding(
        ticker=ticker,
        total_quantity=total_quantity,
        average_price=average_price,
        current_price=current_price,
        total_invested=total_cost,
        current_value=current_value,
        absolute_gain=absolute_gain,
        percentage_gain=percentage_gain,
        cagr=cagr,
        xirr=xirr,
        transactions=list(transactions),
    )


def aggregate_holdings(
    transactions: Sequence,
    current_price_by_ticker: Dict[str, Optional[float]],
    now: Optional[Union[datetime, date]] = None
) -> PortfolioAnalytics:
    """
    Build portfolio analytics from raw purchases and current prices.

    Args:
        transactions: Objects with ticker, quantity, price and purchased_at
        current_price_by_ticker: Current price per ticker; a missing or None
            entry means the price is unavailable and that holding is skipped
        now: Valuation time (default: current UTC time)

    Returns:
        PortfolioAnalytics. The same inputs and `now` always give the same result.

    Raises:
        InvalidInputError: if any transaction is malformed or a price lookup
            key is not a ticker
    """
    if current_price_by_ticker is None:
        raise InvalidInputError("A current price lookup is required")

    now = to_utc_datetime(now) if now is not None else utc_now()
    transactions = list(transactions)
    validate_transactions(transactions)

    try:
        prices = {normalize_ticker(t): p for t, p in current_price_by_ticker.items()}
    except (ValueError, AttributeError) as e:
        raise InvalidInputError(f"Invalid ticker in price lookup: {e}") from e

    holdings = []
    total_invested = 0.0
    total_current_value = 0.0

    for ticker, txns in group_by_ticker(transactions).items():
        current_price = prices.get(ticker)
        if current_price is None:
            logger.warning(f"No price data available for {ticker}, skipping...")
            continue

        holding = build_holding(ticker, txns, current_price, now)
        holdings.append(holding)
        total_invested += holding.total_invested
        total_current_value += holding.current_value

    total_absolute_gain = total_current_value - total_invested
    total_percentage_gain = (total_absolute_gain / total_invested * 100) if total_invested > 0 else 0.0

    # Money-weighted over every purchase, not an average of holding returns
    overall_xirr = calculate_portfolio_xirr(transactions, total_current_value, now)

    return PortfolioAnalytics(
        holdings=holdings,
        total_invested=total_invested,
        total_current_value=total_current_value,
        total_absolute_gain=total_absolute_gain,
        total_percentage_gain=total_percentage_gain,
        overall_xirr=overall_xirr,
        last_updated=now.isoformat(),
    )


def calculate_allocation(holdings: Sequence[Holding]) -> List[Dict]:
    """
    Share of current value per holding, for allocation charts.

    Returns:
        List of {'ticker', 'value', 'percentage'} in holding order; empty when
        there is nothing to allocate
    """
    total_value = sum(h.current_value for h in holdings)
    if total_value <= 0:
        return []

    return [
        {
            'ticker': h.ticker,
            'value': h.current_value,
            'percentage': h.current_value / total_value * 100,
        }
        for h in holdings
    ]


class PortfolioService:
    """
    Service for portfolio analytics backed by stored transactions and live prices.
    """

    @staticmethod
    def get_portfolio_analytics(now: Optional[datetime] = None,
                                max_workers: Optional[int] = None) -> PortfolioAnalytics:
        """
        Load all transactions, fetch current prices, and aggregate.

        Database errors propagate to the caller. Price failures only remove
        the affected holdings.
        """
        transactions = TransactionRepository.get_all(order="asc")
        if not transactions:
            return aggregate_holdings([], {}, now)

        tickers = list(dict.fromkeys(txn.ticker for txn in transactions))
        prices = MarketDataService.get_current_prices_batch(tickers, max_workers=max_workers)
        return aggregate_holdings(transactions, prices, now)

    @staticmethod
    def holdings_to_dataframe(analytics: PortfolioAnalytics) -> pd.DataFrame:
        """Tabular view of holdings, one row per ticker."""
        columns = ['Ticker', 'Quantity', 'Avg Price', 'Current Price', 'Invested',
                   'Value', 'Gain', 'Gain %', 'Metric', 'Return']
        rows = [
            {
                'Ticker': h.ticker,
                'Quantity': round(h.total_quantity, 4),
                'Avg Price': format_currency(h.average_price),
                'Current Price': format_currency(h.current_price),
                'Invested': format_currency(h.total_invested),
                'Value': format_currency(h.current_value),
                'Gain': format_currency(h.absolute_gain),
                'Gain %': format_percentage(h.percentage_gain),
                'Metric': h.return_metric,
                'Return': format_rate(h.annualized_return),
            }
            for h in analytics.holdings
        ]
        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def format_portfolio_report(analytics: PortfolioAnalytics) -> str:
        """
        Format a portfolio report for display.

        Args:
            analytics: PortfolioAnalytics object

        Returns:
            Formatted report string
        """
        lines = [
            "=" * 60,
            "PORTFOLIO REPORT",
            "=" * 60,
            "",
            "SUMMARY",
            "-" * 40,
            f"Current Value:             {format_currency(analytics.total_current_value)}",
            f"Total Invested:            {format_currency(analytics.total_invested)}",
            f"Total Gain:                {format_currency(analytics.total_absolute_gain)}"
            f" ({format_percentage(analytics.total_percentage_gain)})",
            f"Overall XIRR:              {format_rate(analytics.overall_xirr)}",
            "",
            "HOLDINGS",
            "-" * 40,
        ]

        if analytics.holdings:
            lines.append(PortfolioService.holdings_to_dataframe(analytics).to_string(index=False))
            lines.append("")
            lines.append("ALLOCATION")
            lines.append("-" * 40)
            for entry in calculate_allocation(analytics.holdings):
                lines.append(f"{entry['ticker']:<10} {entry['percentage']:6.2f}%")
        else:
            lines.append("No holdings to display")

        lines.append("")
        lines.append(f"Last updated: {analytics.last_updated}")
        lines.append("=" * 60)

        return "\n".join(lines)
