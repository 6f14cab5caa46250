"""
Turns uploaded bytes into rows of text cells.

Two read modes are offered:
- read_rows: raw matrix, no header assumed, ragged rows padded. Needed when
  the real header sits under banner/metadata lines (Fidelity exports).
- read_records: columnar, row 0 is the header and every later row is a
  header -> value mapping.
"""

import io
import csv
import logging
from typing import List, Dict, Tuple

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from .cells import BOM
from .errors import EmptyFileError, IngestError

logger = logging.getLogger(__name__)

NUL = "\x00"


def decode_upload(content: bytes) -> str:
    """
    Decode an upload without the caller naming an encoding.

    UTF-8 is tried first. Some spreadsheet exporters write UTF-16LE, which
    shows up as NUL characters in the UTF-8 reading; in that case the
    original bytes are decoded again as UTF-16LE and stray NULs dropped.

    :param content: Raw upload bytes
    :return: Decoded text with any leading BOM removed
    """
    text = content.decode("utf-8", errors="replace")
    if NUL in text:
        logger.info("Upload contains NUL bytes, re-decoding as UTF-16LE")
        text = content.decode("utf-16-le", errors="replace").replace(NUL, "")
    return text.lstrip(BOM)


def read_rows(text: str) -> List[List[str]]:
    """
    Read every line as a plain list of trimmed cells.

    Blank lines are dropped and short rows are padded with "" so every row
    has the width of the widest one.
    """
    reader = csv.reader(io.StringIO(text, newline=""))
    rows = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        rows.append(cells)

    width = max((len(row) for row in rows), default=0)
    for row in rows:
        if len(row) < width:
            row.extend([""] * (width - len(row)))

    return rows
def drop_long_rows(text: str) -> Tuple[str, int]:
    """
    Remove data lines with more cells than the header line.

    :return: (CSV text without those lines, number of non-blank lines removed)
    """
    rows = [row for row in csv.reader(io.StringIO(text, newline="")) if row]
    if not rows:
        return text, 0

    width = len(rows[0])
    kept = io.StringIO()
    writer = csv.writer(kept)
    dropped = 0
    for row in rows:
        if len(row) > width:
            if any(cell.strip() for cell in row):
                dropped += 1
            continue
        writer.writerow(row)
    return kept.getvalue(), dropped


def read_records(text: str) -> Tuple[List[str], List[Dict[str, str]], int]:
    """
    Read a CSV whose first line is the header.

    Lines with more cells than the header are dropped and counted; short
    lines are padded with "". All values stay as trimmed text.

    :return: (header names, list of header -> value records, dropped line count)
    :raises EmptyFileError: If there is no header line at all
    """
    if not text.strip():
        raise EmptyFileError("The CSV file is empty.")

    try:
        text, dropped = drop_long_rows(text)
    except csv.Error as e:
        raise IngestError(f"The CSV file could not be read: {e}")
    if dropped:
        logger.warning(f"Dropped {dropped} CSV line(s) with more cells than the header")

    try:
        frame = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            index_col=False,
        )
    except EmptyDataError:
        raise EmptyFileError("The CSV file is empty.")
    except ParserError as e:
        raise IngestError(f"The CSV file could not be read: {e}")

    headers = [str(column).replace(BOM, "").strip() for column in frame.columns]
    frame.columns = headers
    frame = frame.fillna("")

    records = []
    for record in frame.to_dict("records"):
        cleaned = {key: str(value).strip() for key, value in record.items()}
        if any(cleaned.values()):
            records.append(cleaned)
    return headers, records, dropped
