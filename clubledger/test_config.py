import pytest
from dacite import WrongTypeError

from clubledger.config import Settings, load_settings


def test_defaults():

    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.quotes.min_refresh_minutes == 10
    assert settings.quotes.retention_days == 90
    assert settings.sheets.csv_url is None


def test_dict_values():

    settings = load_settings({"db_path": "club.duckdb", "quotes": {"api_key": "abc"}}, environ={})

    assert settings.db_path == "club.duckdb"
    assert settings.quotes.api_key == "abc"


def test_environment_overrides_dict():

    environ = {
        "CLUB_LEDGER_DB": "env.duckdb",
        "TWELVEDATA_API_KEY": " env-key ",
        "MARKET_QUOTES_MINUTES": "5",
        "MARKET_QUOTES_RETENTION_DAYS": "30",
        "GOOGLE_SHEETS_SHEET_ID": "sheet",
        "GOOGLE_SHEETS_GID": "0",
    }

    settings = load_settings({"quotes": {"api_key": "dict-key"}}, environ=environ)

    assert settings.db_path == "env.duckdb"
    assert settings.quotes.api_key == "env-key"
    assert settings.quotes.min_refresh_minutes == 5
    assert settings.quotes.retention_days == 30
    assert settings.sheets.sheet_id == "sheet"
    assert settings.sheets.gid == "0"


def test_blank_environment_values_ignored():

    settings = load_settings(environ={"TWELVEDATA_API_KEY": "   "})

    assert settings.quotes.api_key is None


def test_input_dict_not_mutated():

    data = {"quotes": {"api_key": "abc"}}
    load_settings(data, environ={"TWELVEDATA_API_KEY": "env"})

    assert data == {"quotes": {"api_key": "abc"}}


def test_wrong_type_rejected():

    with pytest.raises(WrongTypeError):
        load_settings({"db_path": 5}, environ={})
