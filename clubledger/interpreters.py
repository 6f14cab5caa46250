"""
Row interpreters, one per import flow.

Each interpreter takes a resolved ColumnMap and the data rows below the
header and returns an InterpretResult. A row whose date or required amount
cannot be parsed is dropped and counted; it never fails the file. Nothing
here touches the store.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Mapping, Sequence

from .cells import MAX_AMOUNT, parse_date, parse_number
from .errors import ManualEntryError
from .header_resolver import ColumnMap, Row
from .models import (
    ACTION_BUY, ACTION_SELL,
    ASSET_CASH, ASSET_CRYPTO, ASSET_ETF, ASSET_STOCK,
    CONTRIBUTION_BUY, CONTRIBUTION_WITHDRAW,
    BtcPurchase, ContributionRow, InterpretResult, LivePosition,
    PortfolioSnapshot, PositionSnapshot, Trade,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


# ==================== Classification ====================

def parse_action(value: Optional[str]) -> Optional[str]:
    """
    Classify a trade action cell.

    "YOU BOUGHT", "Buy" -> BUY; "YOU SOLD", "Sell" -> SELL; anything else
    (dividends, reinvestments, transfers) -> None.
    """
    if not value:
        return None
    lowered = value.lower()
    if "bought" in lowered or "buy" in lowered:
        return ACTION_BUY
    if "sold" in lowered or "sell" in lowered:
        return ACTION_SELL
    return None


def infer_asset_type(value: Optional[str], symbol: Optional[str] = None) -> str:
    """Guess the asset type from a type/class cell and the ticker."""
    lowered = (value or "").lower()
    if "etf" in lowered:
        return ASSET_ETF
    if "crypto" in lowered or "btc" in lowered:
        return ASSET_CRYPTO
    if "cash" in lowered and symbol and "SPAXX" in symbol:
        return ASSET_CASH
    return ASSET_STOCK


def _trade_cells_usable(
    trade_date: Optional[date],
    ticker: Optional[str],
    action: Optional[str],
    shares: Optional[Decimal],
    price: Optional[Decimal],
) -> bool:
    """Whether the required trade cells are all usable."""
    if not trade_date or not ticker or not action:
        return False
    if shares is None or price is None:
        return False
    # Fidelity reports sells as negative quantities
    return shares != 0 and price >= 0


# ==================== Ledger Flows ====================

def interpret_contributions(columns: ColumnMap, rows: Sequence[Row]) -> InterpretResult:
    """Parse contribution lines; member keys are resolved later by the orchestrator."""
    result = InterpretResult()

    for row in rows:
        row_date = parse_date(columns.get(row, "date"))
        amount = parse_number(columns.get(row, "amount"))
        shares = parse_number(columns.get(row, "shares"))

        if not row_date or amount is None or shares is None:
            result.skipped += 1
            continue

        type_raw = (columns.get(row, "type") or "").strip().upper()
        result.records.append(ContributionRow(
            date=row_date,
            amount=amount,
            shares=shares,
            type=CONTRIBUTION_WITHDRAW if type_raw == CONTRIBUTION_WITHDRAW else CONTRIBUTION_BUY,
            memo=_text(columns.get(row, "memo")),
            member_id=_text(columns.get(row, "member_id")),
            member_name=_text(columns.get(row, "member_name")),
            member_email=_text(columns.get(row, "member_email")),
        ))

    return result


def interpret_trades(columns: ColumnMap, rows: Sequence[Row]) -> InterpretResult:
    """Parse a generic broker trade export."""
    result = InterpretResult()

    for row in rows:
        trade_date = parse_date(columns.get(row, "date"))
        ticker = _text(columns.get(row, "ticker"))
        action = parse_action(columns.get(row, "action"))
        shares = parse_number(columns.get(row, "shares"))
        price = parse_number(columns.get(row, "price"))

        if not _trade_cells_usable(trade_date, ticker, action, shares, price):
            logger.debug(f"Skipping trade row {row!r}")
            result.skipped += 1
            continue

        fees = parse_number(columns.get(row, "fees")) or ZERO
        result.records.append(Trade(
            date=trade_date,
            ticker=ticker,
            action=action,
            shares=abs(shares),
            price=price,
            fees=abs(fees),
            asset_type=infer_asset_type(columns.get(row, "asset_type"), ticker),
        ))

    return result


def interpret_fidelity_history(columns: ColumnMap, rows: Sequence[Row]) -> InterpretResult:
    """
    Parse a Fidelity "Accounts History" export.

    Commission and fees are separate columns there and are summed; the
    original action text ("YOU BOUGHT APPLE INC (AAPL) ...") is kept as notes.
    """
    result = InterpretResult()

    for row in rows:
        action_text = _text(columns.get(row, "action"))
        trade_date = parse_date(columns.get(row, "date"))
        ticker = _text(columns.get(row, "ticker"))
        action = parse_action(action_text)
        shares = parse_number(columns.get(row, "shares"))
        price = parse_number(columns.get(row, "price"))

        if not _trade_cells_usable(trade_date, ticker, action, shares, price):
            logger.debug(f"Skipping trade row {row!r}")
            result.skipped += 1
            continue

        commission = parse_number(columns.get(row, "commission")) or ZERO
        fees = abs(commission + (parse_number(columns.get(row, "fees")) or ZERO))
        if fees >= MAX_AMOUNT:
            logger.debug(f"Skipping trade row with out-of-range fees {row!r}")
            result.skipped += 1
            continue

        result.records.append(Trade(
            date=trade_date,
            ticker=ticker,
            action=action,
            shares=abs(shares),
            price=price,
            fees=fees,
            asset_type=infer_asset_type(columns.get(row, "asset_type"), ticker),
            notes=action_text,
        ))

    return result


def interpret_btc_purchases(columns: ColumnMap, rows: Sequence[Row]) -> InterpretResult:
    """Parse a BTC purchase log; rows missing any of the four values are dropped."""
    result = InterpretResult()

    for row in rows:
        purchase_date = parse_date(columns.get(row, "date"))
        btc_amount = parse_number(columns.get(row, "btc_amount"))
        usd_amount = parse_number(columns.get(row, "usd_amount"))
        btc_price = parse_number(columns.get(row, "btc_price"))

        if not purchase_date or btc_amount is None or usd_amount is None or btc_price is None:
            result.skipped += 1
            continue

        result.records.append(BtcPurchase(
            date=purchase_date,
            btc_amount=btc_amount,
            usd_amount=usd_amount,
            btc_price=btc_price,
        ))

    return result


# ==================== Snapshot Flows ====================

def interpret_positions(columns: ColumnMap, rows: Sequence[Row], as_of: date) -> InterpretResult:
    """
    Parse a Fidelity positions export into one snapshot generation.

    Footer lines (disclaimers, "Pending Activity") carry no symbol and are
    dropped along with any other symbol-less row.
    """
    result = InterpretResult()

    def number(row, name):
        return parse_number(columns.get(row, name))

    for row in rows:
        symbol = _text(columns.get(row, "symbol"))
        if not symbol:
            result.skipped += 1
            continue

        result.records.append(PositionSnapshot(
            date=as_of,
            symbol=symbol,
            account_number=_text(columns.get(row, "account_number")),
            account_name=_text(columns.get(row, "account_name")),
            description=_text(columns.get(row, "description")),
            quantity=number(row, "quantity"),
            last_price=number(row, "last_price"),
            current_value=number(row, "current_value"),
            total_gain_loss=number(row, "total_gain_loss"),
            total_gain_loss_percent=number(row, "total_gain_loss_percent"),
            percent_of_account=number(row, "percent_of_account"),
            cost_basis_total=number(row, "cost_basis_total"),
            average_cost_basis=number(row, "average_cost_basis"),
            asset_type=_text(columns.get(row, "asset_type")),
        ))

    return result


LIVE_NUMERIC_FIELDS = (
    "quantity", "price", "cost", "market_value", "gain_dollar", "gain_percent",
    "percent_of_portfolio", "beta", "pe", "week_high", "week_low",
    "gain_30", "gain_60", "gain_90", "weight", "est_purchase",
    "shares_target", "rounded", "total_purchase",
)


def interpret_live_prices(columns: ColumnMap, rows: Sequence[Row], as_of: date) -> InterpretResult:
    """Parse the live-price sheet into one snapshot generation."""
    result = InterpretResult()

    for row in rows:
        symbol = _text(columns.get(row, "symbol"))
        if not symbol:
            result.skipped += 1
            continue

        values = {name: parse_number(columns.get(row, name)) for name in LIVE_NUMERIC_FIELDS}
        result.records.append(LivePosition(
            date=as_of,
            symbol=symbol,
            asset=_text(columns.get(row, "asset")),
            term=_text(columns.get(row, "term")),
            **values,
        ))

    return result


# ==================== Single-Record Forms ====================

def build_manual_btc_purchase(form: Mapping[str, str]) -> BtcPurchase:
    """
    Build a BTC purchase from the manual entry form.

    Unlike the CSV flows this is all-or-nothing.

    :raises ManualEntryError: If any of the four fields is missing or unparseable
    """
    purchase_date = parse_date(form.get("date"))
    btc_amount = parse_number(form.get("btcAmount"))
    usd_amount = parse_number(form.get("usdAmount"))
    btc_price = parse_number(form.get("btcPrice"))

    if not purchase_date or btc_amount is None or usd_amount is None or btc_price is None:
        raise ManualEntryError("All BTC fields are required.")

    return BtcPurchase(
        date=purchase_date,
        btc_amount=btc_amount,
        usd_amount=usd_amount,
        btc_price=btc_price,
    )


SNAPSHOT_FORM_FIELDS = (
    ("totalValue", "Total value"),
    ("cashValue", "Cash value"),
    ("btcPrice", "BTC price"),
    ("sp500Value", "S&P 500 value"),
)


def _require_text(form: Mapping[str, str], key: str, label: str) -> str:
    value = _text(form.get(key))
    if not value:
        raise ManualEntryError(f"{label} is required")
    return value


def build_portfolio_snapshot(form: Mapping[str, str]) -> PortfolioSnapshot:
    """
    Build the month-end snapshot from the monthly update form.

    :raises ManualEntryError: Naming the first missing or non-numeric field
    """
    snapshot_date = parse_date(_require_text(form, "date", "Date"))
    if not snapshot_date:
        raise ManualEntryError("Please provide a valid date.")

    values = {}
    for key, label in SNAPSHOT_FORM_FIELDS:
        value = parse_number(_require_text(form, key, label))
        if value is None:
            raise ManualEntryError(f"{label} must be a number")
        values[key] = value

    return PortfolioSnapshot(
        date=snapshot_date,
        total_value=values["totalValue"],
        cash_value=values["cashValue"],
        btc_price=values["btcPrice"],
        sp500_value=values["sp500Value"],
        notes=_text(form.get("notes")),
    )
