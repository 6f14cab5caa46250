"""
Domain records produced by the import flows and returned by the store.

Every money and share amount is a Decimal; nothing here is ever a float.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List


# =============================================================================
# Constants
# =============================================================================

ACTION_BUY = "BUY"
ACTION_SELL = "SELL"

ASSET_STOCK = "STOCK"
ASSET_ETF = "ETF"
ASSET_CRYPTO = "CRYPTO"
ASSET_CASH = "CASH"

CONTRIBUTION_BUY = "BUY"
CONTRIBUTION_WITHDRAW = "WITHDRAW"

SOURCE_TWELVEDATA = "TWELVEDATA"


# =============================================================================
# Ledger records
# =============================================================================

@dataclass
class Trade:
    """
    A single executed trade.

    Attributes:
        date: Trade date
        ticker: Symbol as it appeared in the export
        action: "BUY" or "SELL"
        shares: Quantity traded (always positive)
        price: Price per share
        fees: Commission plus fees, 0 when the export has none
        asset_type: "STOCK", "ETF", "CRYPTO" or "CASH"
        notes: Free text (Fidelity history keeps the original action text here)
        trade_id: Store identifier, set once persisted
    """
    date: date
    ticker: str
    action: str
    shares: Decimal
    price: Decimal
    fees: Decimal = Decimal("0")
    asset_type: str = ASSET_STOCK
    notes: Optional[str] = None
    trade_id: Optional[str] = None


@dataclass
class Member:
    """A club member. Looked up by id, then email, then case-insensitive name."""
    member_id: str
    name: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ContributionRow:
    """
    A parsed contribution line whose member has not been resolved yet.

    The member keys are kept as they appeared in the file; the orchestrator
    runs find-or-create on them before writing a Contribution.
    """
    date: date
    amount: Decimal
    shares: Decimal
    type: str = CONTRIBUTION_BUY
    memo: Optional[str] = None
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    member_email: Optional[str] = None


@dataclass
class Contribution:
    """Money a member put in (BUY) or took out (WITHDRAW), with the shares issued."""
    member_id: str
    date: date
    amount: Decimal
    shares: Decimal
    type: str = CONTRIBUTION_BUY
    memo: Optional[str] = None
    contribution_id: Optional[str] = None


@dataclass
class BtcPurchase:
    """A club bitcoin purchase."""
    date: date
    btc_amount: Decimal
    usd_amount: Decimal
    btc_price: Decimal
    purchase_id: Optional[str] = None


# =============================================================================
# Snapshot records
# =============================================================================

@dataclass
class PositionSnapshot:
    """
    One line of a Fidelity positions export.

    All rows for one as-of date form a generation; re-importing that date
    replaces the whole generation.
    """
    date: date
    symbol: str
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    last_price: Optional[Decimal] = None
    current_value: Optional[Decimal] = None
    total_gain_loss: Optional[Decimal] = None
    total_gain_loss_percent: Optional[Decimal] = None
    percent_of_account: Optional[Decimal] = None
    cost_basis_total: Optional[Decimal] = None
    average_cost_basis: Optional[Decimal] = None
    asset_type: Optional[str] = None


@dataclass
class LivePosition:
    """One line of the club's live-price planning sheet, replaced by as-of date."""
    date: date
    symbol: str
    quantity: Optional[Decimal] = None
    asset: Optional[str] = None
    price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    market_value: Optional[Decimal] = None
    gain_dollar: Optional[Decimal] = None
    gain_percent: Optional[Decimal] = None
    percent_of_portfolio: Optional[Decimal] = None
    term: Optional[str] = None
    beta: Optional[Decimal] = None
    pe: Optional[Decimal] = None
    week_high: Optional[Decimal] = None
    week_low: Optional[Decimal] = None
    gain_30: Optional[Decimal] = None
    gain_60: Optional[Decimal] = None
    gain_90: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    est_purchase: Optional[Decimal] = None
    shares_target: Optional[Decimal] = None
    rounded: Optional[Decimal] = None
    total_purchase: Optional[Decimal] = None


@dataclass
class PortfolioSnapshot:
    """Month-end portfolio totals, one per date (re-saving a date overwrites it)."""
    date: date
    total_value: Decimal
    cash_value: Decimal
    btc_price: Decimal
    sp500_value: Decimal
    notes: Optional[str] = None


@dataclass
class MarketQuote:
    """A price pulled from the upstream quote API."""
    symbol: str
    price: Decimal
    as_of: datetime
    source: str = SOURCE_TWELVEDATA


# =============================================================================
# Results
# =============================================================================

@dataclass
class InterpretResult:
    """Valid records parsed from a file plus the number of rows dropped."""
    records: List = field(default_factory=list)
    skipped: int = 0


@dataclass
class ImportResult:
    """
    Outcome of one import flow, as shown to the person who uploaded the file.

    Attributes:
        ok: False when the file was rejected as a whole
        message: Human-readable summary or the reason for rejection
        processed: Records written
        skipped: Data rows dropped because a required cell was unusable
    """
    ok: bool
    message: str
    processed: int = 0
    skipped: int = 0
