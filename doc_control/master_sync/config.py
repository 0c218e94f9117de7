"""Runtime settings resolved from explicit values or the environment."""
from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PDF_BACKENDS = [
    "pypdf",
    "pdfminer",
    "pikepdf+pypdf",
    "pikepdf+pdfminer",
]

BATCH_POLICIES = {"highest_revision", "first"}
MISSING_STORE_POLICIES = {"fresh", "fail"}

DEFAULT_BATCH_POLICY = "highest_revision"
DEFAULT_MISSING_STORE = "fresh"
DEFAULT_HEADER_SCAN_ROWS = 50
DEFAULT_MIN_PDF_CHARS = 20


def _env_choice(name: str, allowed: set[str], default: str) -> str:
    env_value = os.environ.get(name)
    if env_value:
        cleaned = env_value.strip().lower()
        if cleaned in allowed:
            return cleaned
        logger.debug("Invalid %s value: %s", name, env_value)
    return default


def _env_int(name: str, default: int) -> int:
    env_value = os.environ.get(name)
    if env_value:
        try:
            return max(int(env_value), 0)
        except ValueError:
            logger.debug("Invalid %s value: %s", name, env_value)
    return default


def resolve_store_dir(value: str | Path | None) -> Path:
    if value:
        return Path(value).expanduser().resolve()
    env_value = os.environ.get("MASTER_SYNC_STORE_DIR")
    if env_value:
        return Path(env_value).expanduser().resolve()
    return Path.cwd()


def resolve_batch_policy(value: str | None) -> str:
    if value:
        cleaned = value.strip().lower()
        if cleaned not in BATCH_POLICIES:
            raise ValueError(f"unknown batch policy: {value}")
        return cleaned
    return _env_choice("MASTER_SYNC_BATCH_POLICY", BATCH_POLICIES, DEFAULT_BATCH_POLICY)


def resolve_missing_store(value: str | None) -> str:
    if value:
        cleaned = value.strip().lower()
        if cleaned not in MISSING_STORE_POLICIES:
            raise ValueError(f"unknown missing-store policy: {value}")
        return cleaned
    return _env_choice(
        "MASTER_SYNC_MISSING_STORE", MISSING_STORE_POLICIES, DEFAULT_MISSING_STORE
    )


def resolve_header_scan_rows(value: int | None) -> int:
    if value is not None:
        return max(value, 1)
    return max(_env_int("MASTER_SYNC_HEADER_SCAN_ROWS", DEFAULT_HEADER_SCAN_ROWS), 1)


def resolve_min_pdf_chars(value: int | None) -> int:
    if value is not None:
        return max(value, 0)
    return _env_int("MASTER_SYNC_MIN_PDF_CHARS", DEFAULT_MIN_PDF_CHARS)


def resolve_pdf_backends(prefer_backends: Iterable[str] | None) -> list[str]:
    if prefer_backends:
        order = [backend.strip() for backend in prefer_backends if backend and backend.strip()]
    else:
        env_value = os.environ.get("MASTER_SYNC_PDF_BACKENDS")
        if env_value:
            order = [backend.strip() for backend in env_value.split(",") if backend.strip()]
        else:
            order = list(DEFAULT_PDF_BACKENDS)
    seen = set()
    unique_order: list[str] = []
    for backend in order:
        if backend not in seen:
            unique_order.append(backend)
            seen.add(backend)
    return unique_order or list(DEFAULT_PDF_BACKENDS)


def parse_backend_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    parts = [entry.strip() for entry in value.split(",") if entry.strip()]
    return parts or None


@dataclass
class Settings:
    """Resolved settings for one synchronisation run."""

    store_dir: Path
    batch_policy: str = DEFAULT_BATCH_POLICY
    missing_store: str = DEFAULT_MISSING_STORE
    header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS
    min_pdf_chars: int = DEFAULT_MIN_PDF_CHARS
    pdf_backends: list[str] = field(default_factory=lambda: list(DEFAULT_PDF_BACKENDS))

    @classmethod
    def resolve(
        cls,
        *,
        store_dir: str | Path | None = None,
        batch_policy: str | None = None,
        missing_store: str | None = None,
        header_scan_rows: int | None = None,
        min_pdf_chars: int | None = None,
        pdf_backends: Iterable[str] | None = None,
    ) -> Settings:
        return cls(
            store_dir=resolve_store_dir(store_dir),
            batch_policy=resolve_batch_policy(batch_policy),
            missing_store=resolve_missing_store(missing_store),
            header_scan_rows=resolve_header_scan_rows(header_scan_rows),
            min_pdf_chars=resolve_min_pdf_chars(min_pdf_chars),
            pdf_backends=resolve_pdf_backends(pdf_backends),
        )
