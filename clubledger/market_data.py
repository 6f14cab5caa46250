"""
Market quote refresh.

Decides which symbols the club is tracking, rate-limits upstream calls
based on the newest stored quote, stores the fetched prices and purges
quotes past the retention window.
"""

import logging
from typing import Optional, List, Dict, Any, Iterable, Sequence
from datetime import datetime, timedelta

from .config import QuoteSettings
from .ledger_store import LedgerStore
from .models import MarketQuote
from .twelvedata_api import TwelveDataAPI

logger = logging.getLogger(__name__)

# Fidelity cash sweep; never quoted
CASH_SWEEP_SYMBOL = "SPAXX"
RECENT_TRADE_LIMIT = 200


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def _unique(symbols: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(symbols))


class QuoteRefresher:
    """
    Refreshes stored market quotes from Twelve Data.

    The minimum-interval check reads the newest persisted quote, so two
    near-simultaneous refreshes can both pass it; it throttles, it does not lock.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[QuoteSettings] = None,
        api: Optional[TwelveDataAPI] = None
    ):
        """
        :param store: Ledger store holding snapshots, trades and quotes
        :param settings: Quote settings (API key, interval, retention)
        :param api: Pre-built API client, mainly for tests
        """
        self.store = store
        self.settings = settings or QuoteSettings()
        self.api = api or TwelveDataAPI(self.settings)

    def tracked_symbols(self) -> List[str]:
        """
        Symbols worth quoting, from the first non-empty source:
        latest positions generation, latest live-price generation, recent trades.
        """
        latest = self.store.latest_position_date()
        if latest:
            symbols = [
                normalize_symbol(position.symbol)
                for position in self.store.list_position_snapshots(latest)
                if position.symbol
            ]
            return _unique(
                symbol for symbol in symbols
                if "**" not in symbol and symbol != CASH_SWEEP_SYMBOL
            )

        latest = self.store.latest_live_position_date()
        if latest:
            return _unique(
                normalize_symbol(position.symbol)
                for position in self.store.list_live_positions(latest)
                if position.symbol
            )

        return _unique(
            normalize_symbol(ticker)
            for ticker in self.store.recent_trade_tickers(RECENT_TRADE_LIMIT)
            if ticker
        )

    def _is_throttled(self, now: datetime) -> bool:
        latest = self.store.latest_quote(self.settings.source)
        if latest is None:
            return False
        return now - latest.as_of < timedelta(minutes=self.settings.min_refresh_minutes)

    def refresh(self, symbols: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Fetch and store fresh quotes unless the last refresh is too recent.

        :param symbols: Explicit symbols; defaults to tracked_symbols()
        :return: {"count", "symbols", "skipped"} summary
        :raises QuoteAPIError: When the API key is missing or the request fails
        """
        self.api.require_api_key()

        tracked = list(symbols) if symbols is not None else self.tracked_symbols()
        if not tracked:
            logger.info("No symbols to quote")
            return {"count": 0, "symbols": [], "skipped": False}

        now = datetime.now()
        if self._is_throttled(now):
            logger.warning(
                f"Skipping quote refresh; last {self.settings.source} quote is "
                f"newer than {self.settings.min_refresh_minutes} minutes"
            )
            return {"count": 0, "symbols": tracked, "skipped": True}

        logger.info(f"Fetching quotes for {len(tracked)} symbols")
        prices = self.api.fetch_prices(tracked)

        quotes = [
            MarketQuote(
                symbol=normalize_symbol(price.symbol),
                price=price.price,
                as_of=now,
                source=self.settings.source,
            )
            for price in prices
        ]
        if quotes:
            self.store.insert_market_quotes(quotes)

        cutoff = datetime.now() - timedelta(days=self.settings.retention_days)
        self.store.purge_market_quotes(cutoff)

        return {"count": len(quotes), "symbols": tracked, "skipped": False}
