"""
Import orchestration for the club ledger.

This module implements the control flow for every upload:
- decode bytes (UTF-8 or UTF-16LE) into rows
- resolve the header row and canonical columns
- interpret rows into domain records, skipping unusable ones
- persist with the flow's policy: append (trades, contributions, BTC),
  replace-by-date (positions, live prices) or upsert-by-date (monthly snapshot)

A file that fails header resolution is rejected before anything is written.
"""

import os
import sys
import argparse
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Dict, Mapping, Callable, Sequence

from .cells import resolve_as_of
from .config import Settings, load_settings
from .decoder import decode_upload, read_records, read_rows
from .errors import (
    EmptyFileError, IngestError, MemberResolutionError, MissingUploadError,
    SheetError, UpstreamError,
)
from .google_sheets import GoogleSheetClient
from .header_resolver import (
    BTC_PURCHASE_HEADERS, CONTRIBUTION_HEADERS, FIDELITY_HISTORY_HEADERS,
    FIDELITY_POSITION_HEADERS, LIVE_PRICE_HEADERS, TRADE_HEADERS,
    HeaderSpec, map_columns, resolve,
)
from .interpreters import (
    build_manual_btc_purchase, build_portfolio_snapshot,
    interpret_btc_purchases, interpret_contributions, interpret_fidelity_history,
    interpret_live_prices, interpret_positions, interpret_trades,
)
from .ledger_store import LedgerStore
from .market_data import QuoteRefresher
from .models import Contribution, ContributionRow, ImportResult, Member

logger = logging.getLogger(__name__)


@dataclass
class Upload:
    """An uploaded file: its original name (used for as-of dates) and raw bytes."""
    filename: str
    content: bytes


def _failed(flow: str, error: Exception) -> ImportResult:
    logger.error(f"{flow} import failed: {error}")
    return ImportResult(ok=False, message=str(error))


class ImportOrchestrator:
    """
    Runs the upload flows against a LedgerStore.

    Every public flow returns an ImportResult. Errors that reject the whole
    file (IngestError) become ok=False results; store errors propagate.
    """

    def __init__(self, store: LedgerStore):
        """
        :param store: Ledger store records are written to
        """
        self.store = store

    # ==================== Reading ====================

    def _read_text(self, upload: Optional[Upload]) -> str:
        if upload is None or not upload.content:
            raise MissingUploadError("Upload a CSV file.")

        text = decode_upload(upload.content)
        if not text.strip():
            raise EmptyFileError("The CSV file is empty.")
        return text

    def _read_columnar(self, upload: Optional[Upload], spec: HeaderSpec):
        """Returns (columns, records, dropped) where dropped counts over-long lines."""
        headers, records, dropped = read_records(self._read_text(upload))
        return map_columns(headers, spec), records, dropped

    def _read_matrix(self, upload: Optional[Upload], spec: HeaderSpec):
        return resolve(read_rows(self._read_text(upload)), spec)

    # ==================== Member Resolution ====================

    def find_or_create_member(
        self,
        member_id: Optional[str] = None,
        name: Optional[str] = None,
        email: Optional[str] = None
    ) -> Member:
        """
        Resolve a member by id, then email, then case-insensitive name.

        An unknown name creates a new member (carrying the email if given).

        :raises MemberResolutionError: If no key matches and no name is given
        """
        if member_id:
            member = self.store.get_member(member_id)
            if member:
                return member

        if email:
            member = self.store.find_member_by_email(email)
            if member:
                return member

        if name:
            member = self.store.find_member_by_name(name)
            if member:
                return member
            return self.store.create_member(name, email)

        raise MemberResolutionError(
            "Each contribution must include member_id, member_name, or member_email."
        )

    def _write_contribution(self, row: ContributionRow) -> Contribution:
        member = self.find_or_create_member(row.member_id, row.member_name, row.member_email)
        contribution = Contribution(
            member_id=member.member_id,
            date=row.date,
            amount=row.amount,
            shares=row.shares,
            type=row.type,
            memo=row.memo,
        )
        self.store.insert_contribution(contribution)
        return contribution

    # ==================== Append Flows ====================

    def import_contributions(self, upload: Optional[Upload]) -> ImportResult:
        """
        Import member contributions (columnar CSV).

        The file is written in one transaction, so a row whose member cannot
        be resolved rolls back the rows before it.
        """
        try:
            columns, records, dropped = self._read_columnar(upload, CONTRIBUTION_HEADERS)
            parsed = interpret_contributions(columns, records)
            parsed.skipped += dropped
            members_before = self.store.count("members")

            with self.store.transaction():
                for row in parsed.records:
                    self._write_contribution(row)

        except IngestError as e:
            return _failed("Contributions", e)

        created = self.store.count("members") - members_before
        processed = len(parsed.records)
        logger.info(
            f"Imported {processed} contributions ({parsed.skipped} skipped, "
            f"{created} new members)"
        )
        return ImportResult(
            ok=True,
            message=f"Imported {processed} contributions and created {created} members.",
            processed=processed,
            skipped=parsed.skipped,
        )

    def _append_trades(self, flow: str, parsed) -> ImportResult:
        with self.store.transaction():
            for trade in parsed.records:
                self.store.insert_trade(trade)

        processed = len(parsed.records)
        logger.info(f"{flow}: imported {processed} trades ({parsed.skipped} skipped)")
        return ImportResult(
            ok=True,
            message=f"Imported {processed} trades.",
            processed=processed,
            skipped=parsed.skipped,
        )

    def import_trades(self, upload: Optional[Upload]) -> ImportResult:
        """Import a generic trade export (columnar CSV, flexible headers)."""
        try:
            columns, records, dropped = self._read_columnar(upload, TRADE_HEADERS)
        except IngestError as e:
            return _failed("Trades", e)

        parsed = interpret_trades(columns, records)
        parsed.skipped += dropped
        return self._append_trades("Trades", parsed)

    def import_fidelity_history(self, upload: Optional[Upload]) -> ImportResult:
        """Import a Fidelity account history export (header under a banner)."""
        try:
            columns, rows = self._read_matrix(upload, FIDELITY_HISTORY_HEADERS)
        except IngestError as e:
            return _failed("History", e)

        return self._append_trades("History", interpret_fidelity_history(columns, rows))

    def import_btc_purchases(self, upload: Optional[Upload]) -> ImportResult:
        """Import a BTC purchase log (columnar CSV)."""
        try:
            columns, records, dropped = self._read_columnar(upload, BTC_PURCHASE_HEADERS)
        except IngestError as e:
            return _failed("BTC purchases", e)

        parsed = interpret_btc_purchases(columns, records)
        parsed.skipped += dropped
        with self.store.transaction():
            for purchase in parsed.records:
                self.store.insert_btc_purchase(purchase)

        processed = len(parsed.records)
        logger.info(f"Imported {processed} BTC purchases ({parsed.skipped} skipped)")
        return ImportResult(
            ok=True,
            message=f"Imported {processed} BTC purchases.",
            processed=processed,
            skipped=parsed.skipped,
        )

    def create_btc_purchase(self, form: Mapping[str, str]) -> ImportResult:
        """Record one BTC purchase from the manual entry form (all fields required)."""
        try:
            purchase = build_manual_btc_purchase(form)
        except IngestError as e:
            return _failed("BTC entry", e)

        self.store.insert_btc_purchase(purchase)
        return ImportResult(ok=True, message="Saved BTC purchase.", processed=1)

    # ==================== Snapshot Flows ====================

    def import_fidelity_positions(
        self,
        upload: Optional[Upload],
        as_of: Optional[str] = None
    ) -> ImportResult:
        """
        Import a Fidelity positions export, replacing that date's generation.

        :param upload: Positions CSV
        :param as_of: Explicit as-of date; falls back to the filename, then today
        """
        try:
            columns, rows = self._read_matrix(upload, FIDELITY_POSITION_HEADERS)
        except IngestError as e:
            return _failed("Positions", e)

        as_of_date = resolve_as_of(as_of, upload.filename)
        parsed = interpret_positions(columns, rows, as_of_date)
        processed = self.store.replace_position_snapshots(as_of_date, parsed.records)

        return ImportResult(
            ok=True,
            message=f"Imported {processed} positions as of {as_of_date.isoformat()}.",
            processed=processed,
            skipped=parsed.skipped,
        )

    def _replace_live_prices(self, columns, rows, as_of_date: date) -> ImportResult:
        parsed = interpret_live_prices(columns, rows, as_of_date)
        processed = self.store.replace_live_positions(as_of_date, parsed.records)

        return ImportResult(
            ok=True,
            message=f"Imported {processed} live prices as of {as_of_date.isoformat()}.",
            processed=processed,
            skipped=parsed.skipped,
        )

    def import_live_prices(
        self,
        upload: Optional[Upload],
        as_of: Optional[str] = None
    ) -> ImportResult:
        """Import the live-price sheet export, replacing that date's generation."""
        try:
            columns, rows = self._read_matrix(upload, LIVE_PRICE_HEADERS)
        except IngestError as e:
            return _failed("Live prices", e)

        return self._replace_live_prices(columns, rows, resolve_as_of(as_of, upload.filename))

    def import_live_prices_from_sheet(
        self,
        client: GoogleSheetClient,
        as_of: Optional[str] = None
    ) -> ImportResult:
        """
        Pull the live-price sheet straight from Google Sheets.

        Fetch failures (SheetError) are reported like rejected files.
        """
        try:
            columns, rows = resolve(client.fetch_rows(), LIVE_PRICE_HEADERS)
        except (IngestError, SheetError) as e:
            return _failed("Live prices", e)

        return self._replace_live_prices(columns, rows, resolve_as_of(as_of))

    def save_portfolio_snapshot(self, form: Mapping[str, str]) -> ImportResult:
        """Create or overwrite the monthly portfolio snapshot for the form's date."""
        try:
            snapshot = build_portfolio_snapshot(form)
        except IngestError as e:
            return _failed("Monthly snapshot", e)

        self.store.upsert_portfolio_snapshot(snapshot)
        return ImportResult(
            ok=True,
            message=f"Saved snapshot for {snapshot.date.isoformat()}.",
            processed=1,
        )

    # ==================== Market Quotes ====================

    def refresh_quotes(self, refresher: QuoteRefresher) -> ImportResult:
        """Run a quote refresh and report it like an import."""
        try:
            summary = refresher.refresh()
        except UpstreamError as e:
            return _failed("Quote refresh", e)

        if summary["skipped"]:
            message = "Quotes were refreshed recently; skipped."
        else:
            message = f"Stored {summary['count']} quotes for {len(summary['symbols'])} symbols."
        return ImportResult(ok=True, message=message, processed=summary["count"])


FILE_FLOWS: Dict[str, Callable[..., ImportResult]] = {
    "contributions": ImportOrchestrator.import_contributions,
    "trades": ImportOrchestrator.import_trades,
    "history": ImportOrchestrator.import_fidelity_history,
    "btc": ImportOrchestrator.import_btc_purchases,
}

SNAPSHOT_FLOWS: Dict[str, Callable[..., ImportResult]] = {
    "positions": ImportOrchestrator.import_fidelity_positions,
    "live-prices": ImportOrchestrator.import_live_prices,
}


def run_import(
    flow: str,
    path: Optional[str] = None,
    as_of: Optional[str] = None,
    settings: Optional[Settings] = None
) -> ImportResult:
    """
    Convenience function to run one flow against a file on disk.

    :param flow: One of FILE_FLOWS, SNAPSHOT_FLOWS, "sheet" or "refresh-quotes"
    :param path: CSV path (file flows only)
    :param as_of: Explicit as-of date for snapshot flows
    :param settings: Optional settings, defaults to load_settings()
    :return: Import result
    """
    settings = settings or load_settings()
    orchestrator = ImportOrchestrator(LedgerStore(settings.db_path))

    try:
        if flow == "refresh-quotes":
            return orchestrator.refresh_quotes(
                QuoteRefresher(orchestrator.store, settings.quotes)
            )
        if flow == "sheet":
            return orchestrator.import_live_prices_from_sheet(
                GoogleSheetClient(settings.sheets), as_of
            )

        if flow not in FILE_FLOWS and flow not in SNAPSHOT_FLOWS:
            raise ValueError(f"Unknown import flow '{flow}'")
        if not path:
            raise ValueError(f"Import flow '{flow}' needs a CSV path")

        with open(path, "rb") as f:
            upload = Upload(filename=os.path.basename(path), content=f.read())

        if flow in SNAPSHOT_FLOWS:
            return SNAPSHOT_FLOWS[flow](orchestrator, upload, as_of)
        return FILE_FLOWS[flow](orchestrator, upload)
    finally:
        orchestrator.store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import club ledger data.")
    parser.add_argument(
        "flow",
        choices=sorted(list(FILE_FLOWS) + list(SNAPSHOT_FLOWS) + ["sheet", "refresh-quotes"]),
    )
    parser.add_argument("path", nargs="?", help="CSV file to import")
    parser.add_argument("--as-of", dest="as_of", help="As-of date for positions / live prices")
    parser.add_argument("--db", dest="db_path", help="DuckDB file (default: CLUB_LEDGER_DB)")
    args = parser.parse_args(argv)
    if args.flow in FILE_FLOWS or args.flow in SNAPSHOT_FLOWS:
        if not args.path:
            parser.error(f"{args.flow} needs a CSV path")

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    settings = load_settings()
    if args.db_path:
        settings.db_path = args.db_path
    result = run_import(args.flow, args.path, args.as_of, settings)

    print(result.message)
    if result.skipped:
        print(f"  Skipped rows: {result.skipped}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
