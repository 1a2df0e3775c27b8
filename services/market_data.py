"""
Market data service for fetching current stock prices.
Uses yfinance as the quote source and caches results.
Enhanced with tenacity for retry logic and resilience.
"""

import yfinance as yf
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Dict, Iterable

import pandas as pd
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_settings
from services.common import normalize_ticker

logger = logging.getLogger(__name__)


class PriceUnavailableError(LookupError):
    """No quote could be obtained for a ticker."""


@dataclass
class StockPrice:
    """A point-in-time quote for one ticker."""
    ticker: str
    current_price: float
    currency: Optional[str] = None
    timestamp: Optional[float] = None  # When the quote was fetched (epoch seconds)
    regular_market_time: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            'ticker': self.ticker,
            'currentPrice': self.current_price,
            'currency': self.currency,
            'timestamp': self.timestamp,
            'regularMarketTime': self.regular_market_time,
        }


class MarketDataService:
    """
    Service for fetching market prices.
    Every public method contains its own failures: a quote that cannot be
    fetched comes back as None and is logged.
    """

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_info(ticker: str) -> Dict:
        """Fetch ticker info with retry logic."""
        return yf.Ticker(ticker).info

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_history(ticker: str, period: str = "1d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        return yf.Ticker(ticker).history(period=period)

    @staticmethod
    def get_stock_quote(ticker: str) -> Optional[StockPrice]:
        """
        Fetch the current quote for a ticker.

        Args:
            ticker: Stock ticker symbol (e.g., "AAPL")

        Returns:
            StockPrice, or None if no price could be found
        """
        try:
            symbol = normalize_ticker(ticker)
            info = MarketDataService._fetch_ticker_info(symbol) or {}

            # Try multiple price fields
            price = info.get('currentPrice') or info.get('regularMarketPrice') or info.get('lastPrice')

            if price is None:
                hist = MarketDataService._fetch_ticker_history(symbol, period="1d")
                if not hist.empty:
                    price = hist['Close'].iloc[-1]

            if not price or pd.isna(price):
                logger.warning(f"No price data found for {symbol}")
                return None

            return StockPrice(
                ticker=info.get('symbol') or symbol,
                current_price=float(price),
                currency=info.get('currency'),
                timestamp=time.time(),
                regular_market_time=info.get('regularMarketTime'),
            )

        except Exception as e:
            logger.error(f"Error fetching price for {ticker}: {e}")
            return None

    @staticmethod
    @lru_cache(maxsize=256)
    def _get_cached_price(ticker: str) -> float:
        quote = MarketDataService.get_stock_quote(ticker)
        if quote is None:
            # Raised calls never enter the lru_cache
            raise PriceUnavailableError(ticker)
        return quote.current_price

    @staticmethod
    def get_current_price(ticker: str) -> Optional[float]:
        """Fetch current stock price with caching and retry logic. Misses are not cached."""
        try:
            return MarketDataService._get_cached_price(ticker)
        except PriceUnavailableError:
            return None

    @staticmethod
    def get_current_prices_batch(tickers: Iterable[str],
                                 max_workers: Optional[int] = None) -> Dict[str, float]:
        """
        Fetch current prices for many tickers in parallel.

        Each ticker is fetched independently; a failure for one never affects
        the others. Tickers without a price are left out of the result.

        Args:
            tickers: Ticker symbols (duplicates are fetched once)
            max_workers: Thread pool size (default: settings.price_fetch_max_workers)

        Returns:
            Mapping of upper-case ticker to current price
        """
        unique_tickers = list(dict.fromkeys(normalize_ticker(t) for t in tickers))
        if not unique_tickers:
            return {}

        if max_workers is None:
            max_workers = get_settings().price_fetch_max_workers

        prices = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_ticker = {
                executor.submit(MarketDataService.get_current_price, ticker): ticker
                for ticker in unique_tickers
            }
            for future in as_completed(future_to_ticker):
                ticker = future_to_ticker[future]
                try:
                    price = future.result()
                except Exception as e:
                    logger.error(f"Failed to fetch price for {ticker}: {e}")
                    continue
                if price is not None:
                    prices[ticker] = price

        logger.info(f"Fetched prices for {len(prices)}/{len(unique_tickers)} tickers")
        return prices

    @staticmethod
    def clear_cache():
        """Clear the LRU cache."""
        MarketDataService._get_cached_price.cache_clear()
        logger.info("Market data cache cleared")
