"""
DuckDB persistence layer for the club ledger.

This module provides a LedgerStore class that handles schema initialization
and every read/write the import flows need: append-only ledgers (trades,
contributions, BTC purchases), find-or-create members, replace-by-date
snapshot generations, the upsert-by-date monthly snapshot and the market
quote history.

All amounts are stored as DECIMAL(24, 8) and come back as Decimal.
"""

import duckdb
import logging
import uuid
from dataclasses import asdict
from typing import Optional, List, Dict, Any, Sequence
from datetime import date, datetime
from contextlib import contextmanager

from .models import (
    BtcPurchase, Contribution, LivePosition, MarketQuote, Member,
    PortfolioSnapshot, PositionSnapshot, Trade,
)

logger = logging.getLogger(__name__)

AMOUNT = "DECIMAL(24, 8)"

POSITION_COLUMNS = (
    "date", "symbol", "account_number", "account_name", "description",
    "quantity", "last_price", "current_value", "total_gain_loss",
    "total_gain_loss_percent", "percent_of_account", "cost_basis_total",
    "average_cost_basis", "asset_type",
)

LIVE_POSITION_COLUMNS = (
    "date", "symbol", "quantity", "asset", "price", "cost", "market_value",
    "gain_dollar", "gain_percent", "percent_of_portfolio", "term", "beta", "pe",
    "week_high", "week_low", "gain_30", "gain_60", "gain_90", "weight",
    "est_purchase", "shares_target", "rounded", "total_purchase",
)

# Tables count() may be asked about
ENTITY_TABLES = (
    "members", "contributions", "trades", "btc_purchases",
    "position_snapshots", "live_positions", "portfolio_snapshots", "market_quotes",
)


class LedgerStore:
    """
    DuckDB-backed storage for the club's ledger and snapshots.

    Thread Safety:
        Not thread-safe. Each thread should use its own LedgerStore instance.

    Usage:
        store = LedgerStore("club_ledger.duckdb")
        try:
            with store.transaction():
                store.insert_trade(trade)
        finally:
            store.close()
    """

    def __init__(self, db_path: str = "club_ledger.duckdb"):
        """
        Initialize DuckDB connection.

        :param db_path: Path to DuckDB database file. Use ':memory:' for in-memory DB.
        """
        self.db_path = db_path
        self.conn = duckdb.connect(db_path)
        self._initialize_schema()

    def _initialize_schema(self):
        """Create all required tables and indexes if they don't exist."""

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS members (
                member_id VARCHAR PRIMARY KEY,
                name VARCHAR NOT NULL,
                email VARCHAR UNIQUE,
                created_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS contributions (
                contribution_id VARCHAR PRIMARY KEY,
                member_id VARCHAR NOT NULL REFERENCES members(member_id),
                date DATE NOT NULL,
                amount {AMOUNT} NOT NULL,
                shares {AMOUNT} NOT NULL,
                type VARCHAR NOT NULL,
                memo VARCHAR,
                created_at TIMESTAMP NOT NULL
            )
        """)

        # Trades ledger - append-only, no uniqueness across imports
        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS trades (
                trade_id VARCHAR PRIMARY KEY,
                date DATE NOT NULL,
                ticker VARCHAR NOT NULL,
                action VARCHAR NOT NULL,
                shares {AMOUNT} NOT NULL,
                price {AMOUNT} NOT NULL,
                fees {AMOUNT} NOT NULL DEFAULT 0,
                asset_type VARCHAR NOT NULL,
                notes VARCHAR,
                created_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS btc_purchases (
                purchase_id VARCHAR PRIMARY KEY,
                date DATE NOT NULL,
                btc_amount {AMOUNT} NOT NULL,
                usd_amount {AMOUNT} NOT NULL,
                btc_price {AMOUNT} NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS position_snapshots (
                date DATE NOT NULL,
                symbol VARCHAR NOT NULL,
                account_number VARCHAR,
                account_name VARCHAR,
                description VARCHAR,
                quantity {AMOUNT},
                last_price {AMOUNT},
                current_value {AMOUNT},
                total_gain_loss {AMOUNT},
                total_gain_loss_percent {AMOUNT},
                percent_of_account {AMOUNT},
                cost_basis_total {AMOUNT},
                average_cost_basis {AMOUNT},
                asset_type VARCHAR
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS live_positions (
                date DATE NOT NULL,
                symbol VARCHAR NOT NULL,
                quantity {AMOUNT},
                asset VARCHAR,
                price {AMOUNT},
                cost {AMOUNT},
                market_value {AMOUNT},
                gain_dollar {AMOUNT},
                gain_percent {AMOUNT},
                percent_of_portfolio {AMOUNT},
                term VARCHAR,
                beta {AMOUNT},
                pe {AMOUNT},
                week_high {AMOUNT},
                week_low {AMOUNT},
                gain_30 {AMOUNT},
                gain_60 {AMOUNT},
                gain_90 {AMOUNT},
                weight {AMOUNT},
                est_purchase {AMOUNT},
                shares_target {AMOUNT},
                rounded {AMOUNT},
                total_purchase {AMOUNT}
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS portfolio_snapshots (
                date DATE PRIMARY KEY,
                total_value {AMOUNT} NOT NULL,
                cash_value {AMOUNT} NOT NULL,
                btc_price {AMOUNT} NOT NULL,
                sp500_value {AMOUNT} NOT NULL,
                notes VARCHAR,
                updated_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS market_quotes (
                quote_id VARCHAR PRIMARY KEY,
                symbol VARCHAR NOT NULL,
                price {AMOUNT} NOT NULL,
                as_of TIMESTAMP NOT NULL,
                source VARCHAR NOT NULL
            )
        """)

        # Create indexes for common query patterns
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_contributions_member
            ON contributions(member_id)
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_trades_date
            ON trades(date)
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_position_snapshots_date
            ON position_snapshots(date)
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_live_positions_date
            ON live_positions(date)
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_market_quotes_source_asof
            ON market_quotes(source, as_of)
        """)

        logger.info("Ledger schema initialized successfully")

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    @contextmanager
    def transaction(self):
        """
        Context manager for transactional operations.

        Usage:
            with store.transaction():
                store.delete_position_snapshots(as_of)
                store.insert_position_snapshots(rows)
        """
        try:
            self.conn.execute("BEGIN TRANSACTION")
            yield
            self.conn.execute("COMMIT")
        except Exception as e:
            self.conn.execute("ROLLBACK")
            logger.error(f"Transaction rolled back due to error: {e}")
            raise

    def count(self, table: str) -> int:
        """
        Count rows of one entity table.

        :param table: One of ENTITY_TABLES
        :raises ValueError: For an unknown table name
        """
        if table not in ENTITY_TABLES:
            raise ValueError(f"Unknown table '{table}'")
        result = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return result[0] if result else 0

    # ==================== Member Operations ====================

    def _member_from_row(self, row) -> Member:
        return Member(member_id=row[0], name=row[1], email=row[2], created_at=row[3])

    def get_member(self, member_id: str) -> Optional[Member]:
        """Find a member by primary key."""
        row = self.conn.execute("""
            SELECT member_id, name, email, created_at
            FROM members WHERE member_id = ?
        """, [member_id]).fetchone()
        return self._member_from_row(row) if row else None

    def find_member_by_email(self, email: str) -> Optional[Member]:
        """Find a member by their (unique) email."""
        row = self.conn.execute("""
            SELECT member_id, name, email, created_at
            FROM members WHERE email = ?
        """, [email]).fetchone()
        return self._member_from_row(row) if row else None

    def find_member_by_name(self, name: str) -> Optional[Member]:
        """Find the oldest member whose name matches case-insensitively."""
        row = self.conn.execute("""
            SELECT member_id, name, email, created_at
            FROM members WHERE lower(name) = lower(?)
            ORDER BY created_at ASC
            LIMIT 1
        """, [name]).fetchone()
        return self._member_from_row(row) if row else None

    def create_member(self, name: str, email: Optional[str] = None) -> Member:
        """
        Insert a new member.

        :return: The created Member with its generated id
        """
        member = Member(
            member_id=str(uuid.uuid4()),
            name=name,
            email=email or None,
            created_at=datetime.now(),
        )
        self.conn.execute("""
            INSERT INTO members (member_id, name, email, created_at)
            VALUES (?, ?, ?, ?)
        """, [member.member_id, member.name, member.email, member.created_at])

        logger.info(f"Created member {member.member_id} ({name})")
        return member

    def list_members(self) -> List[Member]:
        """All members ordered by name."""
        rows = self.conn.execute("""
            SELECT member_id, name, email, created_at
            FROM members ORDER BY name ASC
        """).fetchall()
        return [self._member_from_row(row) for row in rows]

    # ==================== Append-Only Ledger Operations ====================

    def insert_contribution(self, contribution: Contribution) -> str:
        """Append a contribution and return its generated id."""
        contribution_id = str(uuid.uuid4())
        self.conn.execute("""
            INSERT INTO contributions (
                contribution_id, member_id, date, amount, shares,
                type, memo, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            contribution_id, contribution.member_id, contribution.date,
            contribution.amount, contribution.shares, contribution.type,
            contribution.memo, datetime.now()
        ])
        contribution.contribution_id = contribution_id
        return contribution_id

    def list_contributions(self, member_id: Optional[str] = None) -> List[Contribution]:
        """
        Get contributions, optionally for one member, oldest first.

        :param member_id: Optional member filter
        """
        query = """
            SELECT contribution_id, member_id, date, amount, shares, type, memo
            FROM contributions
        """
        params = []
        if member_id:
            query += " WHERE member_id = ?"
            params.append(member_id)
        query += " ORDER BY date ASC, created_at ASC"

        return [
            Contribution(
                contribution_id=row[0],
                member_id=row[1],
                date=row[2],
                amount=row[3],
                shares=row[4],
                type=row[5],
                memo=row[6],
            )
            for row in self.conn.execute(query, params).fetchall()
        ]

    def insert_trade(self, trade: Trade) -> str:
        """Append a trade and return its generated id."""
        trade_id = str(uuid.uuid4())
        self.conn.execute("""
            INSERT INTO trades (
                trade_id, date, ticker, action, shares, price,
                fees, asset_type, notes, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            trade_id, trade.date, trade.ticker, trade.action, trade.shares,
            trade.price, trade.fees, trade.asset_type, trade.notes, datetime.now()
        ])
        trade.trade_id = trade_id
        return trade_id

    def list_trades(self, ticker: Optional[str] = None) -> List[Trade]:
        """
        Get trade history, optionally filtered by ticker, newest first.

        :param ticker: Optional ticker filter
        """
        query = """
            SELECT trade_id, date, ticker, action, shares, price,
                   fees, asset_type, notes
            FROM trades
        """
        params = []
        if ticker:
            query += " WHERE ticker = ?"
            params.append(ticker)
        query += " ORDER BY date DESC, created_at DESC"

        return [
            Trade(
                trade_id=row[0],
                date=row[1],
                ticker=row[2],
                action=row[3],
                shares=row[4],
                price=row[5],
                fees=row[6],
                asset_type=row[7],
                notes=row[8],
            )
            for row in self.conn.execute(query, params).fetchall()
        ]

    def recent_trade_tickers(self, limit: int = 200) -> List[str]:
        """Tickers of the most recent trades, newest first (may repeat)."""
        rows = self.conn.execute("""
            SELECT ticker FROM trades
            ORDER BY date DESC, created_at DESC
            LIMIT ?
        """, [limit]).fetchall()
        return [row[0] for row in rows]

    def insert_btc_purchase(self, purchase: BtcPurchase) -> str:
        """Append a BTC purchase and return its generated id."""
        purchase_id = str(uuid.uuid4())
        self.conn.execute("""
            INSERT INTO btc_purchases (
                purchase_id, date, btc_amount, usd_amount, btc_price, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            purchase_id, purchase.date, purchase.btc_amount,
            purchase.usd_amount, purchase.btc_price, datetime.now()
        ])
        purchase.purchase_id = purchase_id
        return purchase_id

    def list_btc_purchases(self) -> List[BtcPurchase]:
        """All BTC purchases, oldest first."""
        rows = self.conn.execute("""
            SELECT purchase_id, date, btc_amount, usd_amount, btc_price
            FROM btc_purchases
            ORDER BY date ASC, created_at ASC
        """).fetchall()
        return [
            BtcPurchase(
                purchase_id=row[0],
                date=row[1],
                btc_amount=row[2],
                usd_amount=row[3],
                btc_price=row[4],
            )
            for row in rows
        ]

    # ==================== Snapshot Generation Operations ====================

    def _replace_generation(
        self,
        table: str,
        columns: Sequence[str],
        as_of: date,
        records: Sequence[Any]
    ) -> int:
        """
        Delete every row of `table` dated `as_of`, then insert `records`.

        Runs in one transaction; the delete is always issued first so a
        re-import never leaves two generations for the same date.
        """
        placeholders = ", ".join("?" for _ in columns)
        insert = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"

        with self.transaction():
            deleted = self.conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE date = ?", [as_of]
            ).fetchone()[0]
            self.conn.execute(f"DELETE FROM {table} WHERE date = ?", [as_of])

            for record in records:
                values = asdict(record)
                self.conn.execute(insert, [values[column] for column in columns])

        logger.info(
            f"Replaced {table} for {as_of}: removed {deleted}, inserted {len(records)}"
        )
        return len(records)

    def replace_position_snapshots(self, as_of: date, records: Sequence[PositionSnapshot]) -> int:
        """Replace the positions generation for one as-of date."""
        return self._replace_generation("position_snapshots", POSITION_COLUMNS, as_of, records)

    def replace_live_positions(self, as_of: date, records: Sequence[LivePosition]) -> int:
        """Replace the live-price generation for one as-of date."""
        return self._replace_generation("live_positions", LIVE_POSITION_COLUMNS, as_of, records)

    def _list_generation(self, table: str, columns: Sequence[str], as_of: date) -> List[Dict[str, Any]]:
        rows = self.conn.execute(f"""
            SELECT {', '.join(columns)} FROM {table}
            WHERE date = ?
            ORDER BY symbol ASC
        """, [as_of]).fetchall()
        return [dict(zip(columns, row)) for row in rows]

    def list_position_snapshots(self, as_of: date) -> List[PositionSnapshot]:
        """Positions generation for one date, ordered by symbol."""
        return [
            PositionSnapshot(**row)
            for row in self._list_generation("position_snapshots", POSITION_COLUMNS, as_of)
        ]

    def list_live_positions(self, as_of: date) -> List[LivePosition]:
        """Live-price generation for one date, ordered by symbol."""
        return [
            LivePosition(**row)
            for row in self._list_generation("live_positions", LIVE_POSITION_COLUMNS, as_of)
        ]

    def latest_position_date(self) -> Optional[date]:
        """As-of date of the newest positions generation, if any."""
        return self.conn.execute("SELECT MAX(date) FROM position_snapshots").fetchone()[0]

    def latest_live_position_date(self) -> Optional[date]:
        """As-of date of the newest live-price generation, if any."""
        return self.conn.execute("SELECT MAX(date) FROM live_positions").fetchone()[0]

    # ==================== Portfolio Snapshot Operations ====================

    def upsert_portfolio_snapshot(self, snapshot: PortfolioSnapshot):
        """
        Insert or overwrite the monthly snapshot for its date.

        :param snapshot: Snapshot to save; an existing row for the date is updated in place
        """
        now = datetime.now()
        self.conn.execute("""
            INSERT INTO portfolio_snapshots (
                date, total_value, cash_value, btc_price,
                sp500_value, notes, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (date) DO UPDATE SET
                total_value = EXCLUDED.total_value,
                cash_value = EXCLUDED.cash_value,
                btc_price = EXCLUDED.btc_price,
                sp500_value = EXCLUDED.sp500_value,
                notes = EXCLUDED.notes,
                updated_at = EXCLUDED.updated_at
        """, [
            snapshot.date, snapshot.total_value, snapshot.cash_value,
            snapshot.btc_price, snapshot.sp500_value, snapshot.notes, now
        ])

        logger.info(f"Saved portfolio snapshot for {snapshot.date}")

    def get_portfolio_snapshot(self, snapshot_date: date) -> Optional[PortfolioSnapshot]:
        """Monthly snapshot for an exact date."""
        row = self.conn.execute("""
            SELECT date, total_value, cash_value, btc_price, sp500_value, notes
            FROM portfolio_snapshots WHERE date = ?
        """, [snapshot_date]).fetchone()

        if row:
            return PortfolioSnapshot(
                date=row[0],
                total_value=row[1],
                cash_value=row[2],
                btc_price=row[3],
                sp500_value=row[4],
                notes=row[5],
            )
        return None

    # ==================== Market Quote Operations ====================

    def insert_market_quotes(self, quotes: Sequence[MarketQuote]) -> int:
        """Append a batch of quotes."""
        for quote in quotes:
            self.conn.execute("""
                INSERT INTO market_quotes (quote_id, symbol, price, as_of, source)
                VALUES (?, ?, ?, ?, ?)
            """, [str(uuid.uuid4()), quote.symbol, quote.price, quote.as_of, quote.source])

        logger.info(f"Inserted {len(quotes)} market quotes")
        return len(quotes)

    def latest_quote(self, source: str) -> Optional[MarketQuote]:
        """Most recent quote recorded from `source`."""
        row = self.conn.execute("""
            SELECT symbol, price, as_of, source
            FROM market_quotes
            WHERE source = ?
            ORDER BY as_of DESC
            LIMIT 1
        """, [source]).fetchone()

        if row:
            return MarketQuote(symbol=row[0], price=row[1], as_of=row[2], source=row[3])
        return None

    def list_market_quotes(self, symbol: Optional[str] = None) -> List[MarketQuote]:
        """Quotes, optionally for one symbol, newest first."""
        query = "SELECT symbol, price, as_of, source FROM market_quotes"
        params = []
        if symbol:
            query += " WHERE symbol = ?"
            params.append(symbol)
        query += " ORDER BY as_of DESC"

        return [
            MarketQuote(symbol=row[0], price=row[1], as_of=row[2], source=row[3])
            for row in self.conn.execute(query, params).fetchall()
        ]

    def purge_market_quotes(self, before: datetime) -> int:
        """
        Delete quotes older than `before`.

        :return: Number of rows removed
        """
        stale = self.conn.execute(
            "SELECT COUNT(*) FROM market_quotes WHERE as_of < ?", [before]
        ).fetchone()[0]
        if stale:
            self.conn.execute("DELETE FROM market_quotes WHERE as_of < ?", [before])
            logger.info(f"Purged {stale} market quotes older than {before}")
        return stale

    # ==================== Utility Methods ====================

    def get_ledger_summary(self) -> Dict[str, Any]:
        """
        Row counts per entity plus the latest snapshot dates.

        :return: Dictionary with summary statistics
        """
        summary = {table: self.count(table) for table in ENTITY_TABLES}
        summary["latest_position_date"] = self.latest_position_date()
        summary["latest_live_position_date"] = self.latest_live_position_date()
        return summary
