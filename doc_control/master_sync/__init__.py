"""Document master list synchronisation package."""
from __future__ import annotations

from pathlib import Path

from . import batch, config, extractor, master_store, reconcile, renderer, text_extract
from .errors import (
    ExtractionFailure,
    MasterSyncError,
    NoValidRecords,
    SchemaError,
    StoreNotFound,
)
from .records import DocumentRecord

__all__ = [
    "batch",
    "config",
    "extractor",
    "master_store",
    "reconcile",
    "renderer",
    "text_extract",
    "DocumentRecord",
    "ExtractionFailure",
    "MasterSyncError",
    "NoValidRecords",
    "SchemaError",
    "StoreNotFound",
    "load_master_list",
]


def load_master_list(store_dir: Path) -> tuple[dict[str, dict[str, str]], list[str]]:
    """Return ``(records, columns)`` for the store in ``store_dir``; rows are keyed by column."""
    store = master_store.load_store(store_dir)
    records = {code: dict(row) for code, row in store.records.items()}
    return records, list(store.columns)
