"""
Google Sheets client for the club's live-price sheet.

The sheet can be read three ways, tried in this order:
1. A published CSV export URL (csv_url)
2. The Sheets values API (sheet_id + api_key + range)
3. The public export endpoint built from sheet_id (and optional gid)

Whatever the source, the result is a raw matrix of text cells that goes
through the same header resolution as an uploaded file.
"""

import logging
from typing import Optional, List, Dict
from urllib.parse import quote

import requests

from .config import SheetSettings
from .decoder import read_rows
from .errors import SheetError

logger = logging.getLogger(__name__)

VALUES_API = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}"
EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export"


def is_likely_html(payload: str) -> bool:
    """True when a "CSV" response is really an HTML sign-in or error page."""
    trimmed = payload.strip().lower()
    return trimmed.startswith("<!doctype html") or trimmed.startswith("<html")


class GoogleSheetClient:
    """Fetches the live-price sheet as raw rows."""

    def __init__(self, settings: Optional[SheetSettings] = None):
        self.settings = settings or SheetSettings()

    def build_export_url(self) -> str:
        return EXPORT_URL.format(sheet_id=self.settings.sheet_id)

    def build_export_params(self) -> Dict[str, str]:
        params = {"format": "csv"}
        if self.settings.gid:
            params["gid"] = self.settings.gid
        return params

    def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> requests.Response:
        try:
            return requests.get(url, params=params, timeout=self.settings.timeout_seconds)
        except requests.RequestException as e:
            raise SheetError(f"Failed to reach Google Sheets: {e}")

    def fetch_csv_rows(self, url: str, params: Optional[Dict[str, str]] = None) -> List[List[str]]:
        """
        Download a CSV export and split it into rows.

        :raises SheetError: On a non-200 status or an HTML payload
        """
        response = self._get(url, params)
        if response.status_code != 200:
            raise SheetError(
                f"Failed to fetch public CSV from Google Sheets ({response.status_code})."
            )

        text = response.text
        if is_likely_html(text):
            raise SheetError(
                "Google Sheets CSV endpoint returned HTML. "
                "Verify GOOGLE_SHEETS_CSV_URL is a published export URL."
            )
        return read_rows(text)

    def fetch_value_rows(self) -> List[List[str]]:
        """
        Read the configured range through the values API.

        :raises SheetError: On a non-200 status or a payload that is not a JSON object
        """
        url = VALUES_API.format(
            sheet_id=self.settings.sheet_id,
            range=quote(self.settings.range, safe=""),
        )
        response = self._get(url, {"key": self.settings.api_key, "majorDimension": "ROWS"})
        if response.status_code != 200:
            raise SheetError(
                f"Failed to fetch Google Sheets values ({response.status_code})."
            )

        try:
            data = response.json()
        except ValueError:
            raise SheetError("Google Sheets values API returned a non-JSON response.")

        if not isinstance(data, dict):
            raise SheetError("Google Sheets values API returned an unexpected payload.")

        values = data.get("values") or []
        rows = [[str(cell).strip() for cell in row] for row in values]
        width = max((len(row) for row in rows), default=0)
        return [row + [""] * (width - len(row)) for row in rows if any(row)]

    def fetch_rows(self) -> List[List[str]]:
        """
        Fetch the sheet from whichever source is configured.

        :raises SheetError: When nothing is configured or the fetch fails
        """
        settings = self.settings

        if settings.csv_url:
            logger.info("Fetching live prices from published CSV URL")
            return self.fetch_csv_rows(settings.csv_url.strip())

        if settings.sheet_id and settings.api_key and settings.range:
            logger.info(f"Fetching live prices from values API range {settings.range!r}")
            return self.fetch_value_rows()

        if settings.sheet_id:
            logger.info("Fetching live prices from public CSV export")
            return self.fetch_csv_rows(self.build_export_url(), self.build_export_params())

        raise SheetError(
            "Missing Google Sheets configuration. Set GOOGLE_SHEETS_CSV_URL or "
            "GOOGLE_SHEETS_SHEET_ID (and optionally GOOGLE_SHEETS_API_KEY + GOOGLE_SHEETS_RANGE)."
        )
