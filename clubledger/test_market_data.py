"""
Tests for the quote refresh.

Tests cover:
- Tracked symbol selection and its fallbacks
- Minimum refresh interval
- Retention purge
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

from clubledger.config import QuoteSettings
from clubledger.errors import QuoteAPIError
from clubledger.ledger_store import LedgerStore
from clubledger.market_data import QuoteRefresher
from clubledger.models import LivePosition, MarketQuote, PositionSnapshot, Trade
from clubledger.twelvedata_api import QuotePrice, TwelveDataAPI


@pytest.fixture
def store():
    """Create an in-memory DuckDB store for testing."""
    store = LedgerStore(db_path=":memory:")
    yield store
    store.close()


@pytest.fixture
def api():
    api = Mock(spec=TwelveDataAPI)
    api.require_api_key.return_value = "test-key"
    api.fetch_prices.side_effect = lambda symbols: [
        QuotePrice(symbol, Decimal("100")) for symbol in symbols
    ]
    return api


def make_refresher(store, api, **overrides):
    settings = QuoteSettings(api_key="test-key", **overrides)
    return QuoteRefresher(store, settings, api)


class TestTrackedSymbols:
    """Tests for choosing which symbols to quote."""

    def test_latest_positions_without_cash(self, store, api):
        old, new = date(2024, 1, 5), date(2024, 2, 5)
        store.replace_position_snapshots(old, [PositionSnapshot(date=old, symbol="IBM")])
        store.replace_position_snapshots(new, [
            PositionSnapshot(date=new, symbol=" aapl"),
            PositionSnapshot(date=new, symbol="SPAXX**"),
            PositionSnapshot(date=new, symbol="SPAXX"),
            PositionSnapshot(date=new, symbol="VOO"),
        ])

        assert make_refresher(store, api).tracked_symbols() == ["AAPL", "VOO"]

    def test_falls_back_to_live_positions(self, store, api):
        as_of = date(2024, 3, 1)
        store.replace_live_positions(as_of, [
            LivePosition(date=as_of, symbol="MSFT"),
            LivePosition(date=as_of, symbol="msft"),
        ])

        assert make_refresher(store, api).tracked_symbols() == ["MSFT"]

    def test_falls_back_to_recent_trades(self, store, api):
        for day, ticker in ((1, "AAPL"), (2, "MSFT"), (3, "AAPL")):
            store.insert_trade(Trade(date=date(2024, 1, day), ticker=ticker, action="BUY",
                                     shares=Decimal("1"), price=Decimal("1")))

        assert make_refresher(store, api).tracked_symbols() == ["AAPL", "MSFT"]

    def test_nothing_tracked(self, store, api):
        result = make_refresher(store, api).refresh()

        assert result == {"count": 0, "symbols": [], "skipped": False}
        api.fetch_prices.assert_not_called()


class TestRefresh:
    """Tests for fetching, throttling and purging."""

    def test_second_refresh_is_throttled(self, store, api):
        refresher = make_refresher(store, api)

        first = refresher.refresh(["AAPL", "VOO"])
        second = refresher.refresh(["AAPL", "VOO"])

        assert first["count"] == 2
        assert second["skipped"] is True
        assert api.fetch_prices.call_count == 1
        assert store.count("market_quotes") == 2

    def test_zero_interval_never_throttles(self, store, api):
        refresher = make_refresher(store, api, min_refresh_minutes=0)

        refresher.refresh(["AAPL"])
        refresher.refresh(["AAPL"])

        assert api.fetch_prices.call_count == 2

    def test_old_quote_does_not_throttle(self, store, api):
        store.insert_market_quotes([MarketQuote(
            symbol="AAPL", price=Decimal("1"),
            as_of=datetime.now() - timedelta(minutes=30), source="TWELVEDATA",
        )])

        result = make_refresher(store, api).refresh(["AAPL"])

        assert result["count"] == 1
        assert result["skipped"] is False

    def test_purges_quotes_past_retention(self, store, api):
        store.insert_market_quotes([MarketQuote(
            symbol="AAPL", price=Decimal("1"),
            as_of=datetime.now() - timedelta(days=120), source="TWELVEDATA",
        )])

        make_refresher(store, api).refresh(["AAPL"])

        quotes = store.list_market_quotes("AAPL")
        assert len(quotes) == 1
        assert quotes[0].price == Decimal("100")

    def test_symbols_normalized(self, store, api):
        make_refresher(store, api).refresh(["aapl"])

        assert store.list_market_quotes("AAPL")[0].source == "TWELVEDATA"

    def test_missing_api_key(self, store, api):
        api.require_api_key.side_effect = QuoteAPIError("TWELVEDATA_API_KEY is not set.")

        with pytest.raises(QuoteAPIError):
            make_refresher(store, api).refresh(["AAPL"])
        api.fetch_prices.assert_not_called()
