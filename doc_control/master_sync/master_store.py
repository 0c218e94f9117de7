"""Master list persistence: locating, loading and writing the store file."""
from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from .config import DEFAULT_HEADER_SCAN_ROWS
from .errors import SchemaError, StoreNotFound
from .records import CODE_MARKER, DEFAULT_MASTER_HEADERS, cell_to_str

logger = logging.getLogger(__name__)

STORE_BASENAME = "Doküman Özet Listesi"
CSV_DELIMITER = ";"
DEFAULT_SHEET_TITLE = "Doküman Özet Listesi"

MasterList = Mapping[str, Mapping[str, str]]

# Serialises writers inside one process; os.replace keeps readers consistent.
STORE_LOCK = threading.RLock()


@dataclass
class MasterStore:
    path: Path
    format: str
    headers: list[str]
    records: MasterList = field(default_factory=dict)
    preamble: list[list[str]] = field(default_factory=list)
    header_index: int = 0
    sheet_title: str = DEFAULT_SHEET_TITLE
    existed: bool = True
    columns: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.columns:
            self.columns = column_keys(self.headers)

    def with_records(self, records: MasterList) -> MasterStore:
        return replace(self, records=records)


def column_keys(headers: Sequence[str]) -> list[str]:
    """Return one unique key per header position.

    Named headers keep their text on first use; blank and repeated headers get
    a positional key such as ``#3`` or ``Not#5`` so no column shares a slot.
    """
    keys: list[str] = []
    seen: set[str] = set()
    for position, header in enumerate(headers, start=1):
        key = header if header and header not in seen else f"{header}#{position}"
        seen.add(key)
        keys.append(key)
    return keys


class StorePaths:
    def __init__(self, store_dir: Path) -> None:
        self.store_dir = store_dir
        self.xlsx_path = store_dir / f"{STORE_BASENAME}.xlsx"
        self.csv_path = store_dir / f"{STORE_BASENAME}.csv"

    def existing(self) -> tuple[Path, str] | None:
        if self.xlsx_path.exists():
            return self.xlsx_path, "xlsx"
        if self.csv_path.exists():
            return self.csv_path, "csv"
        return None


def locate_header(
    rows: Sequence[Sequence[str]],
    marker: str = CODE_MARKER,
    window: int = DEFAULT_HEADER_SCAN_ROWS,
) -> int:
    """Return the index of the first row within ``window`` that names ``marker``."""
    for index, row in enumerate(rows[:window]):
        if any(marker in cell for cell in row):
            return index
    raise SchemaError(f"no header row containing {marker!r} in the first {window} rows")


def find_code_column(headers: Sequence[str], marker: str = CODE_MARKER) -> str:
    for header in headers:
        if header == marker:
            return header
    for header in headers:
        if marker in header:
            return header
    raise SchemaError(f"no {marker!r} column in headers")


def read_csv_rows(path: Path) -> list[list[str]]:
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = raw.decode("cp1254")
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=CSV_DELIMITER)
    return [[cell_to_str(value) for value in row] for row in reader]


def read_xlsx_rows(path: Path) -> tuple[list[list[str]], str]:
    from openpyxl import load_workbook

    workbook = load_workbook(str(path), data_only=True, read_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = [[cell_to_str(value) for value in row] for row in sheet.iter_rows(values_only=True)]
        return rows, sheet.title
    finally:
        workbook.close()


def load_store(
    store_dir: Path,
    *,
    window: int = DEFAULT_HEADER_SCAN_ROWS,
) -> MasterStore:
    """Load the master list from ``store_dir``; the spreadsheet wins over CSV."""
    located = StorePaths(store_dir).existing()
    if located is None:
        raise StoreNotFound(f"no master list in {store_dir}")
    path, store_format = located
    sheet_title = DEFAULT_SHEET_TITLE
    try:
        if store_format == "xlsx":
            rows, sheet_title = read_xlsx_rows(path)
        else:
            rows = read_csv_rows(path)
    except Exception as exc:  # openpyxl and csv surface zip, xml and decode errors
        raise SchemaError(f"unreadable master list {path.name}: {exc}") from exc

    header_index = locate_header(rows, CODE_MARKER, window)
    headers = _trim_trailing_blanks(rows[header_index])
    code_position = headers.index(find_code_column(headers))
    columns = column_keys(headers)

    records: dict[str, dict[str, str]] = {}
    for row in rows[header_index + 1 :]:
        code = row[code_position] if code_position < len(row) else ""
        if not code:
            continue
        if code in records:
            logger.warning("Duplicate code %s in master list, keeping the last row", code)
        records[code] = {
            key: (row[position] if position < len(row) else "")
            for position, key in enumerate(columns)
        }
    logger.info("Loaded %d master records from %s", len(records), path.name)
    return MasterStore(
        path=path,
        format=store_format,
        headers=headers,
        records=records,
        preamble=[list(row) for row in rows[:header_index]],
        header_index=header_index,
        sheet_title=sheet_title,
        columns=columns,
    )


def empty_store(store_dir: Path) -> MasterStore:
    return MasterStore(
        path=StorePaths(store_dir).xlsx_path,
        format="xlsx",
        headers=list(DEFAULT_MASTER_HEADERS),
        existed=False,
    )


def open_store(
    store_dir: Path,
    *,
    missing: str = "fresh",
    window: int = DEFAULT_HEADER_SCAN_ROWS,
) -> MasterStore:
    """Load the store, starting an empty one when it is absent and ``missing`` allows."""
    try:
        return load_store(store_dir, window=window)
    except StoreNotFound:
        if missing == "fail":
            raise
        logger.warning("Master list not found in %s, starting a new one", store_dir)
        return empty_store(store_dir)


def store_rows(store: MasterStore) -> list[list[str]]:
    rows = [list(row) for row in store.preamble]
    rows.append(list(store.headers))
    for record in store.records.values():
        rows.append([record.get(key, "") for key in store.columns])
    return rows


def persist_store(store: MasterStore) -> Path:
    """Write the whole store back in its own format, replacing the file atomically."""
    rows = store_rows(store)
    store.path.parent.mkdir(parents=True, exist_ok=True)
    with STORE_LOCK:
        tmp_path: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                delete=False,
                dir=store.path.parent,
                prefix=store.path.name + ".",
                suffix=".tmp",
            ) as tmp:
                tmp_path = tmp.name
            if store.format == "xlsx":
                _write_xlsx(Path(tmp_path), rows, store.sheet_title)
            else:
                _write_csv(Path(tmp_path), rows)
            os.replace(tmp_path, store.path)
            tmp_path = None
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
    logger.info("Master list written to %s (%d records)", store.path, len(store.records))
    return store.path


def _write_csv(path: Path, rows: list[list[str]]) -> None:
    with path.open("w", encoding="utf-8-sig", newline="") as fh:
        writer = csv.writer(fh, delimiter=CSV_DELIMITER, quoting=csv.QUOTE_ALL)
        writer.writerows(rows)


def _write_xlsx(path: Path, rows: list[list[str]], sheet_title: str) -> None:
    from openpyxl import Workbook

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    for row in rows:
        sheet.append(row)
    workbook.save(str(path))


def _trim_trailing_blanks(row: Sequence[str]) -> list[str]:
    values = list(row)
    while values and not values[-1]:
        values.pop()
    return values
