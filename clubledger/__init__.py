"""
Investment club bookkeeping ingestion package.

This package turns brokerage exports, club spreadsheets and manual forms
into a DuckDB-backed ledger of members, contributions, trades, BTC
purchases, position snapshots and market quotes.

Modules:
    cells: Number, date and header coercion for loosely formatted cells
    decoder: Upload decoding and CSV row reading
    header_resolver: Header row discovery and canonical column mapping
    interpreters: Row -> domain record parsing per import flow
    importer: Orchestration of every upload flow
    ledger_store: DuckDB persistence layer
    twelvedata_api: API client for the Twelve Data price endpoint
    market_data: Tracked symbols and rate-limited quote refresh
    google_sheets: Live-price sheet fetcher
    config: Settings loaded with dacite and environment variables
"""

from .config import Settings, load_settings
from .google_sheets import GoogleSheetClient
from .importer import ImportOrchestrator, Upload, run_import
from .ledger_store import LedgerStore
from .market_data import QuoteRefresher
from .twelvedata_api import TwelveDataAPI

__all__ = [
    "GoogleSheetClient",
    "ImportOrchestrator",
    "LedgerStore",
    "QuoteRefresher",
    "Settings",
    "TwelveDataAPI",
    "Upload",
    "load_settings",
    "run_import",
]
