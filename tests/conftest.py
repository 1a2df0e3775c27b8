from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

import config
import db_engine
from services.market_data import MarketDataService

NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)
YEAR = timedelta(days=365.25)


def make_txn(ticker, quantity, price, purchased_at, txn_id=None):
    """Minimal transaction record for engine tests."""
    return SimpleNamespace(
        id=txn_id,
        ticker=ticker,
        quantity=quantity,
        price=price,
        purchased_at=purchased_at,
    )


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def db(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite file for the duration of a test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    config.reload_settings()
    db_engine.reset_engine()
    db_engine.init_db()
    yield db_engine.get_engine()
    db_engine.reset_engine()
    monkeypatch.delenv("DATABASE_URL")
    config.reload_settings()


@pytest.fixture(autouse=True)
def clear_price_cache():
    MarketDataService.clear_cache()
    yield
    MarketDataService.clear_cache()


@pytest.fixture()
def fake_prices(monkeypatch):
    """Replace live quotes with a mutable ticker -> price table."""
    table = {}

    def _get_current_price(ticker):
        value = table.get(ticker)
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(MarketDataService, "get_current_price", staticmethod(_get_current_price))
    return table
