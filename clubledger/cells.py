"""
Cell-level coercion helpers shared by every import flow.

Brokerage exports hand us text that looks like "$1,234.50", "(12.00)",
"45%" or "\\ufeffSymbol". These helpers turn such cells into Decimals,
dates and canonical header keys without ever raising on bad input.
"""

import re
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# Values some club sheets put in numeric columns instead of leaving them blank
NOT_A_NUMBER = ("no", "n/a")
NOT_A_NUMBER_SUBSTRING = "no purchase"

# Ledger amounts are DECIMAL(24, 8): at most 16 integer digits, 8 fractional
MAX_AMOUNT = Decimal("1E16")
AMOUNT_SCALE = Decimal("1E-8")

MONTHS = MappingProxyType({
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
})

_WHITESPACE = re.compile(r"\s+")
_DIGIT = re.compile(r"\d")
_RELATIVE_DATE = re.compile(r"\b(now|today|tomorrow|yesterday)\b", re.IGNORECASE)
_PAREN_NEGATIVE = re.compile(r"\(([^)]+)\)")

_MONTH_NAME_DATE = re.compile(r"([A-Za-z]{3})-(\d{1,2})-(\d{4})")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_US_DATE = re.compile(r"(\d{1,2})-(\d{1,2})-(\d{4})")


def normalize_header(text: Optional[str]) -> str:
    """
    Canonical form of a header cell: no BOM, lowercase, single spaces, trimmed.

    :param text: Raw header text
    :return: Normalized key (idempotent)
    """
    if text is None:
        return ""
    return _WHITESPACE.sub(" ", str(text).replace(BOM, "").lower()).strip()


def parse_number(text) -> Optional[Decimal]:
    """
    Parse a loosely formatted numeric cell.

    Parenthesised values are rewritten as negatives before currency symbols,
    thousands separators and percent signs are removed, so "(1,234.50)"
    becomes Decimal("-1234.50").

    Values are rounded to 8 decimal places and returned in plain notation.
    Anything the ledger cannot store (more than 16 integer digits) is
    treated as unparseable.

    :param text: Raw cell value
    :return: Finite Decimal, or None for blanks, sentinels, garbage and out-of-range values
    """
    if text is None:
        return None

    raw = str(text)
    lowered = raw.replace(BOM, "").strip().lower()
    if not lowered:
        return None
    if NOT_A_NUMBER_SUBSTRING in lowered or lowered in NOT_A_NUMBER:
        return None

    cleaned = _PAREN_NEGATIVE.sub(r"-\1", raw)
    cleaned = (
        cleaned.replace(BOM, "")
        .replace("$", "")
        .replace(",", "")
        .replace("%", "")
        .strip()
    )
    if not cleaned:
        return None

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not value.is_finite() or abs(value) >= MAX_AMOUNT:
        return None
    if value.as_tuple().exponent < -8:
        value = value.quantize(AMOUNT_SCALE)
        if abs(value) >= MAX_AMOUNT:
            return None

    # Plain notation; "2.5E+3" must reach the store as 2500
    return Decimal(format(value, "f"))


def parse_date(text) -> Optional[date]:
    """Lenient date parse for cells and form values; None when unparseable."""
    if text is None:
        return None
    if isinstance(text, datetime):
        return text.date()
    if isinstance(text, date):
        return text

    cleaned = str(text).replace(BOM, "").strip()
    if not _DIGIT.search(cleaned) or _RELATIVE_DATE.search(cleaned):
        return None

    try:
        parsed = pd.to_datetime(cleaned, errors="coerce")
    except (ValueError, OverflowError, TypeError):
        return None

    if pd.isna(parsed):
        return None
    return parsed.date()


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_from_filename(name: Optional[str]) -> Optional[date]:
    """
    Pull an as-of date out of an export filename.

    Patterns are tried in order: "Mon-DD-YYYY" (Fidelity's
    Portfolio_Positions_Jan-05-2024.csv), "YYYY-MM-DD", then "MM-DD-YYYY".
    A pattern that matches but names an impossible date falls through.
    """
    if not name:
        return None

    match = _MONTH_NAME_DATE.search(name)
    if match:
        month = MONTHS.get(match.group(1).lower())
        if month is not None:
            found = _safe_date(int(match.group(3)), month, int(match.group(2)))
            if found:
                return found

    match = _ISO_DATE.search(name)
    if match:
        found = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if found:
            return found

    match = _US_DATE.search(name)
    if match:
        found = _safe_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
        if found:
            return found

    return None


def resolve_as_of(
    explicit=None,
    filename: Optional[str] = None,
    today: Optional[date] = None
) -> date:
    """
    Pick the as-of date for a snapshot import.

    Precedence: explicit user value > date in filename > today.
    """
    as_of = parse_date(explicit)
    if as_of:
        return as_of

    as_of = parse_date_from_filename(filename)
    if as_of:
        logger.info(f"Using as-of date {as_of} parsed from filename {filename!r}")
        return as_of

    return today or date.today()
