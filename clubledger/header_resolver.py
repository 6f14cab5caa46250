"""
Header row discovery and canonical column mapping.

Every import flow is described by a HeaderSpec: which canonical fields it
reads, the header texts each field may appear under, and (for files whose
header is buried under banner rows) the anchor/hint texts that identify the
real header row. One resolver serves all flows.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Optional, List, Mapping, Sequence, Tuple, Union

from .cells import normalize_header
from .errors import EmptyFileError, HeaderNotFoundError, MissingColumnsError

logger = logging.getLogger(__name__)

Row = Union[Sequence[str], Mapping[str, str]]


@dataclass(frozen=True)
class HeaderSpec:
    """
    Static description of one import flow's columns.

    Attributes:
        label: Flow name used in error messages (e.g. "Positions")
        fields: Canonical field -> accepted header synonyms, in priority order
        required: Fields that must be mapped or the whole file is rejected
        anchors: Header texts that mark the header row (empty: row 0 is the header)
        hints: Extra header texts one of which must also appear in that row
        substring: Match field synonyms by containment instead of equality
        anchor_substring: Match anchors by containment
        hint_substring: Match hints by containment
        guidance: Appended to the missing-columns error message
    """
    label: str
    fields: Mapping[str, Tuple[str, ...]]
    required: Tuple[str, ...] = ()
    anchors: Tuple[str, ...] = ()
    hints: Tuple[str, ...] = ()
    substring: bool = False
    anchor_substring: bool = False
    hint_substring: bool = False
    guidance: Optional[str] = None


@dataclass(frozen=True)
class ColumnMap:
    """Resolved canonical field -> column index for one header row."""
    headers: Tuple[str, ...]
    indices: Mapping[str, int] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.indices

    def get(self, row: Row, name: str) -> Optional[str]:
        """
        Read a field from a raw-matrix row or a columnar record.

        :return: Cell text, or None when the field is unmapped or the row is short
        """
        index = self.indices.get(name)
        if index is None:
            return None
        if isinstance(row, Mapping):
            return row.get(self.headers[index])
        if index >= len(row):
            return None
        return row[index]


def _matches(cell: str, option: str, substring: bool) -> bool:
    if not cell:
        return False
    return cell == option or (substring and option in cell)


def _row_has(cells: Sequence[str], options: Sequence[str], substring: bool) -> bool:
    return any(_matches(cell, option, substring) for cell in cells for option in options)


def find_header_row(rows: Sequence[Sequence[str]], spec: HeaderSpec) -> int:
    """
    Locate the real header row.

    A row qualifies when one of its cells matches an anchor and one matches
    a hint. Rows are scanned top to bottom and the first qualifying row wins.

    :raises HeaderNotFoundError: If no row qualifies
    """
    for index, row in enumerate(rows):
        cells = [normalize_header(cell) for cell in row]
        if not _row_has(cells, spec.anchors, spec.anchor_substring):
            continue
        if spec.hints and not _row_has(cells, spec.hints, spec.hint_substring):
            continue
        logger.debug(f"{spec.label}: header row found at line {index + 1}")
        return index

    expected = " / ".join(anchor.title() for anchor in spec.anchors)
    raise HeaderNotFoundError(f"{spec.label} import missing a {expected} header row.")


def map_columns(headers: Sequence[str], spec: HeaderSpec) -> ColumnMap:
    """
    Map each canonical field to the first header cell matching any synonym.

    :raises MissingColumnsError: If a required field could not be mapped
    """
    normalized = [normalize_header(header) for header in headers]
    indices = {}

    for name, options in spec.fields.items():
        for index, cell in enumerate(normalized):
            if any(_matches(cell, option, spec.substring) for option in options):
                indices[name] = index
                break

    missing = [name for name in spec.required if name not in indices]
    if missing:
        message = f"Could not map required columns: {', '.join(missing)}."
        if spec.guidance:
            message = f"{message} {spec.guidance}"
        raise MissingColumnsError(message, missing)

    return ColumnMap(headers=tuple(headers), indices=MappingProxyType(indices))


def resolve(rows: List[List[str]], spec: HeaderSpec) -> Tuple[ColumnMap, List[List[str]]]:
    """
    Resolve a raw-matrix file into a column map plus its data rows.

    :return: (column map, rows below the header)
    """
    if not rows:
        raise EmptyFileError("The CSV file is empty.")

    header_index = find_header_row(rows, spec) if spec.anchors else 0
    columns = map_columns(rows[header_index], spec)
    return columns, rows[header_index + 1:]


def _fields(**synonyms: Tuple[str, ...]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType(dict(synonyms))


# ==================== Flow Synonym Tables ====================

CONTRIBUTION_HEADERS = HeaderSpec(
    label="Contributions",
    fields=_fields(
        date=("date", "contribution date"),
        member_id=("member_id", "member id"),
        member_name=("member_name", "member name", "name", "member"),
        member_email=("member_email", "member email", "email"),
        amount=("amount", "amount ($)"),
        shares=("shares", "units"),
        type=("type", "contribution type"),
        memo=("memo", "note", "notes"),
    ),
    required=("date", "amount", "shares"),
    guidance="Ensure the CSV includes date, amount, and shares columns.",
)

TRADE_HEADERS = HeaderSpec(
    label="Trades",
    fields=_fields(
        date=("date", "trade date", "transaction date", "activity date", "run date"),
        ticker=("symbol", "ticker"),
        action=("action", "type", "transaction type"),
        shares=("quantity", "shares", "qty"),
        price=("price", "price per share", "price ($)"),
        fees=("fees", "commission", "commissions", "fees and commissions", "fees ($)"),
        asset_type=("asset type", "asset class", "security type", "type"),
    ),
    required=("date", "ticker", "action", "shares", "price"),
    guidance="Ensure the CSV includes Date, Symbol, Action, Quantity, and Price columns.",
)

FIDELITY_HISTORY_HEADERS = HeaderSpec(
    label="History",
    fields=_fields(
        date=("run date",),
        action=("action",),
        ticker=("symbol",),
        shares=("quantity",),
        price=("price ($)",),
        commission=("commission ($)",),
        fees=("fees ($)",),
        asset_type=("type",),
    ),
    required=("date", "action", "ticker", "shares", "price"),
    anchors=("run date",),
    hints=("action", "symbol", "quantity"),
    guidance="Export the account history from Fidelity without editing its columns.",
)

FIDELITY_POSITION_HEADERS = HeaderSpec(
    label="Positions",
    fields=_fields(
        account_number=("account number",),
        account_name=("account name",),
        symbol=("symbol",),
        description=("description",),
        quantity=("quantity", "qty", "shares"),
        last_price=("last price", "price"),
        current_value=("current value", "market value", "mkt value"),
        total_gain_loss=("total gain/loss dollar", "total gain/loss ($)"),
        total_gain_loss_percent=("total gain/loss percent", "total gain/loss (%)"),
        percent_of_account=("percent of account", "% of account", "% of portfolio"),
        cost_basis_total=("cost basis total", "cost basis"),
        average_cost_basis=("average cost basis", "avg cost basis", "average cost"),
        asset_type=("type", "asset type"),
    ),
    required=("symbol",),
    anchors=("symbol",),
    hints=("quantity", "last price", "current value", "market value", "description"),
    substring=True,
    anchor_substring=True,
    hint_substring=True,
)

LIVE_PRICE_HEADERS = HeaderSpec(
    label="Live prices",
    fields=_fields(
        symbol=("symbol",),
        quantity=("qty",),
        asset=("asset",),
        price=("price",),
        cost=("cost",),
        market_value=("mkt value",),
        gain_dollar=("gain ($)",),
        gain_percent=("gain (%)",),
        percent_of_portfolio=("% of portfolio",),
        term=("term",),
        beta=("beta",),
        pe=("p/e",),
        week_high=("52 wk high",),
        week_low=("52 wk low",),
        gain_30=("30 day gain",),
        gain_60=("60 day gain",),
        gain_90=("90 day gain",),
        weight=("weight",),
        est_purchase=("est. purchase",),
        shares_target=("# shares",),
        rounded=("rounded",),
        total_purchase=("total purchase",),
    ),
    required=("symbol",),
    anchors=("symbol",),
    hints=("qty", "price", "mkt value", "asset", "cost"),
)

BTC_PURCHASE_HEADERS = HeaderSpec(
    label="BTC purchases",
    fields=_fields(
        date=("date", "purchase date"),
        btc_amount=("btc_amount", "amount purchased (btc)"),
        usd_amount=("usd_amount", "amount purchased (usd)"),
        btc_price=("btc_price", "purchased at (btc/usd)"),
    ),
    required=("date", "btc_amount", "usd_amount", "btc_price"),
    guidance="Expected Date, Amount Purchased (BTC), Amount Purchased (USD), and Purchased At (BTC/USD).",
)
