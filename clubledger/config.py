"""
Runtime configuration for the ledger, the quote refresh and the sheet feed.

Settings are plain dataclasses loaded with dacite. Values come from the
dataclass defaults, then an optional dict, then environment variables.
"""

import os
import copy
from dataclasses import dataclass, field
from typing import Optional, Dict, Mapping, Any

from dacite import Config, from_dict


@dataclass
class QuoteSettings:
    api_key: Optional[str] = None
    endpoint: str = "https://api.twelvedata.com/price"
    source: str = "TWELVEDATA"
    min_refresh_minutes: int = 10
    retention_days: int = 90
    timeout_seconds: int = 30


@dataclass
class SheetSettings:
    csv_url: Optional[str] = None
    sheet_id: Optional[str] = None
    api_key: Optional[str] = None
    range: Optional[str] = None
    gid: Optional[str] = None
    timeout_seconds: int = 30


@dataclass
class Settings:
    db_path: str = "club_ledger.duckdb"
    quotes: QuoteSettings = field(default_factory=QuoteSettings)
    sheets: SheetSettings = field(default_factory=SheetSettings)


# (section, key) -> environment variable; section None means top level
ENV_VARS = {
    (None, "db_path"): "CLUB_LEDGER_DB",
    ("quotes", "api_key"): "TWELVEDATA_API_KEY",
    ("quotes", "min_refresh_minutes"): "MARKET_QUOTES_MINUTES",
    ("quotes", "retention_days"): "MARKET_QUOTES_RETENTION_DAYS",
    ("sheets", "csv_url"): "GOOGLE_SHEETS_CSV_URL",
    ("sheets", "sheet_id"): "GOOGLE_SHEETS_SHEET_ID",
    ("sheets", "api_key"): "GOOGLE_SHEETS_API_KEY",
    ("sheets", "range"): "GOOGLE_SHEETS_RANGE",
    ("sheets", "gid"): "GOOGLE_SHEETS_GID",
}


def load_settings(
    data: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """
    Build Settings from an optional dict overlaid with environment variables.

    :param data: Nested dict shaped like Settings (e.g. {"quotes": {"api_key": ...}})
    :param environ: Environment mapping, defaults to os.environ
    :return: Settings instance
    """
    merged = copy.deepcopy(data) if data else {}
    environ = os.environ if environ is None else environ

    for (section, key), variable in ENV_VARS.items():
        value = environ.get(variable)
        if value is None or not value.strip():
            continue
        target = merged if section is None else merged.setdefault(section, {})
        target[key] = value.strip()

    return from_dict(data_class=Settings, data=merged, config=Config(cast=[int]))
