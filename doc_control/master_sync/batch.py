"""Sequential processing of one upload batch against the master list."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import extractor, reconcile, renderer
from .config import Settings
from .errors import NoValidRecords
from .master_store import STORE_LOCK, MasterStore, open_store, persist_store
from .records import DocumentRecord
from .text_extract import SUPPORTED_EXTENSIONS, extract_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    """An uploaded file: the path the client sent and where its bytes are stored."""

    relative_path: str
    stored_path: Path


@dataclass
class FileOutcome:
    file: str
    record: DocumentRecord
    status: str = "accepted"
    error: str | None = None
    text_meta: dict[str, Any] | None = None


@dataclass
class BatchResult:
    outcomes: list[FileOutcome]
    accepted: list[DocumentRecord]
    mismatches: list[reconcile.Mismatch]
    store: MasterStore
    persisted: bool = False
    report: bytes = b""


def iter_upload_paths(paths: Iterable[Path]) -> Iterator[UploadedFile]:
    """Expand files and directories into uploads, keeping folder names as segments."""
    for path in paths:
        if path.is_dir():
            for file_path in sorted(path.rglob("*")):
                if file_path.is_file() and file_path.suffix.lower() in SUPPORTED_EXTENSIONS:
                    relative = file_path.relative_to(path.parent).as_posix()
                    yield UploadedFile(relative, file_path)
        elif path.is_file():
            yield UploadedFile(path.name, path)
        else:
            logger.warning("Skipping missing path %s", path)


def extract_upload(
    upload: UploadedFile,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
) -> FileOutcome:
    try:
        text, meta = extract_text(
            upload.stored_path, min_pdf_chars=min_pdf_chars, pdf_backends=pdf_backends
        )
        record = extractor.extract(upload.relative_path, text)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to process %s", upload.relative_path)
        return FileOutcome(
            file=upload.relative_path,
            record=extractor.extract(upload.relative_path, ""),
            status="error",
            error=str(exc),
        )
    outcome = FileOutcome(
        file=upload.relative_path,
        record=record,
        error=meta.get("error"),
        text_meta=meta,
    )
    if not record.code:
        outcome.status = "no_code"
        logger.warning("No document code in %s, skipping", upload.relative_path)
    return outcome


def extract_uploads(
    uploads: Sequence[UploadedFile],
    settings: Settings,
) -> list[FileOutcome]:
    return [
        extract_upload(
            upload,
            min_pdf_chars=settings.min_pdf_chars,
            pdf_backends=settings.pdf_backends,
        )
        for upload in uploads
    ]


def resolve_outcomes(outcomes: Sequence[FileOutcome], policy: str) -> list[FileOutcome]:
    """Mark duplicate codes as superseded and return the accepted outcomes in upload order."""
    candidates = [outcome for outcome in outcomes if outcome.status in {"accepted", "error"}]
    resolution = reconcile.resolve_batch(candidates, lambda outcome: outcome.record, policy)
    for outcome in resolution.superseded:
        outcome.status = "superseded"
        logger.info(
            "%s superseded for code %s (revision %s)",
            outcome.file,
            outcome.record.code,
            outcome.record.revision_number,
        )
    return resolution.accepted


def count_statuses(outcomes: Iterable[FileOutcome]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for outcome in outcomes:
        counts[outcome.status] = counts.get(outcome.status, 0) + 1
    return counts


def process_batch(
    uploads: Sequence[UploadedFile],
    settings: Settings,
    *,
    persist: bool = True,
) -> BatchResult:
    """Extract, resolve, merge and (optionally) persist one batch of uploads.

    Raises ``NoValidRecords`` when no upload yields a document code, and lets
    ``StoreNotFound``/``SchemaError`` from the store propagate. Nothing is
    written when an error is raised.
    """
    if not uploads:
        raise NoValidRecords("no files uploaded")

    with STORE_LOCK:
        store = open_store(
            settings.store_dir,
            missing=settings.missing_store,
            window=settings.header_scan_rows,
        )
        outcomes = extract_uploads(uploads, settings)
        accepted = resolve_outcomes(outcomes, settings.batch_policy)
        if not accepted:
            raise NoValidRecords("no uploaded file yielded a document code")

        records = [outcome.record for outcome in accepted]
        merged = reconcile.merge_all(store.records, records, store.columns)
        updated_store = store.with_records(merged.master)
        if persist:
            persist_store(updated_store)

    counts = count_statuses(outcomes)
    logger.info(
        "Batch processed: %d files, %d accepted, %d mismatches",
        len(outcomes),
        counts.get("accepted", 0) + counts.get("error", 0),
        len(merged.mismatches),
    )
    return BatchResult(
        outcomes=outcomes,
        accepted=records,
        mismatches=merged.mismatches,
        store=updated_store,
        persisted=persist,
        report=renderer.render(records, merged.mismatches),
    )
