"""
Services package for the portfolio tracker.
Provides core business logic separated from presentation and data layers.
"""

from services.common import (
    normalize_ticker,
    format_rate,
    format_percentage,
    format_currency,
)
from services.returns import (
    CashFlow,
    InvalidInputError,
    SolverStatus,
    XIRRResult,
    build_cash_flows,
    calculate_cagr,
    calculate_cagr_from_dates,
    solve_xirr,
    calculate_xirr,
    calculate_stock_xirr,
    calculate_portfolio_xirr,
    get_return_metric_type,
)
from services.market_data import MarketDataService, StockPrice
from services.portfolio import (
    Holding,
    PortfolioAnalytics,
    PortfolioService,
    aggregate_holdings,
    calculate_allocation,
)

__all__ = [
    # Common utilities
    'normalize_ticker',
    'format_rate',
    'format_percentage',
    'format_currency',
    # Return metrics
    'CashFlow',
    'InvalidInputError',
    'SolverStatus',
    'XIRRResult',
    'build_cash_flows',
    'calculate_cagr',
    'calculate_cagr_from_dates',
    'solve_xirr',
    'calculate_xirr',
    'calculate_stock_xirr',
    'calculate_portfolio_xirr',
    'get_return_metric_type',
    # Services
    'MarketDataService',
    'StockPrice',
    'PortfolioService',
    'Holding',
    'PortfolioAnalytics',
    'aggregate_holdings',
    'calculate_allocation',
]
