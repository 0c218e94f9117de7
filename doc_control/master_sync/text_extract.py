"""Raw text extraction for uploaded document files."""
from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from docx import Document

from .config import resolve_min_pdf_chars, resolve_pdf_backends
from .errors import ExtractionFailure
from .records import cell_to_str, normalize_text

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".pdf",
    ".docx",
    ".doc",
    ".xlsx",
    ".xlsm",
    ".csv",
    ".txt",
    ".html",
    ".htm",
}

TEXT_ENCODINGS = ("utf-8-sig", "cp1254")


def _dedupe(sequence: Iterable[str]) -> list[str]:
    seen = set()
    result: list[str] = []
    for item in sequence:
        if item and item not in seen:
            result.append(item)
            seen.add(item)
    return result


def _is_xref_issue(message: str | None) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return "xref" in lowered or "cross" in lowered


def extract_text(
    path: str | Path,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Return ``(text, meta)`` for ``path``; failures yield empty text and ``meta["error"]``."""

    file_path = Path(path)
    suffix = file_path.suffix.lower()
    meta: dict[str, Any] = {"format": suffix.lstrip("."), "chars": 0, "error": None}
    try:
        if suffix == ".pdf":
            text, pdf_meta = extract_pdf_text(
                file_path,
                min_chars=resolve_min_pdf_chars(min_pdf_chars),
                prefer_backends=pdf_backends,
            )
            meta.update(pdf_meta)
        elif suffix == ".docx":
            text = read_docx_text(file_path)
        elif suffix == ".doc":
            text = read_doc_text(file_path)
        elif suffix in {".xlsx", ".xlsm"}:
            text = read_workbook_text(file_path)
        elif suffix in {".csv", ".txt"}:
            text = read_plain_text(file_path)
        elif suffix in {".html", ".htm"}:
            text = html_to_text(read_plain_text(file_path))
        else:
            raise ExtractionFailure(f"unsupported file type: {suffix or '<none>'}")
    except (ExtractionFailure, OSError) as exc:
        logger.warning("Text extraction failed for %s: %s", file_path.name, exc)
        meta["error"] = str(exc)
        return "", meta
    text = normalize_text(text or "")
    meta["chars"] = len(text)
    return text, meta


def extract_pdf_text(
    path: str | Path,
    *,
    min_chars: int = 20,
    prefer_backends: Iterable[str] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Extract text from a PDF, trying each backend until one yields enough text.

    Backends prefixed with ``pikepdf+`` run against a copy rewritten by pikepdf,
    which rebuilds damaged cross-reference tables. The longest text seen wins.
    Raises ``ExtractionFailure`` only when no backend produced any text and at
    least one of them errored.
    """

    pdf_path = Path(path)
    try:
        byte_size = pdf_path.stat().st_size
    except OSError:
        byte_size = 0

    best_text = ""
    best_backend = "none"
    best_repaired = False
    warnings: list[str] = []
    last_error: str | None = None
    needs_repair = False

    with tempfile.TemporaryDirectory(prefix="master_sync_pdf_") as tmp_dir:
        repaired_path: Path | None = None
        repair_error: str | None = None

        for backend_name in resolve_pdf_backends(prefer_backends):
            use_repair = backend_name.startswith("pikepdf+")
            base_backend = backend_name.split("+", 1)[-1] if use_repair else backend_name
            target_path = pdf_path

            if use_repair:
                if repaired_path is None and repair_error is None:
                    try:
                        repaired_path = _repair_pdf_with_pikepdf(pdf_path, Path(tmp_dir))
                    except ExtractionFailure as exc:
                        repair_error = str(exc)
                        logger.debug("pikepdf repair failed for %s: %s", pdf_path, exc)
                if repaired_path is None:
                    warnings.append(f"{backend_name}: repair unavailable ({repair_error})")
                    continue
                target_path = repaired_path

            try:
                text, backend_warnings = _extract_with_backend(base_backend, target_path)
            except ExtractionFailure as exc:
                last_error = str(exc)
                needs_repair = needs_repair or _is_xref_issue(last_error)
                logger.debug("PDF backend %s failed for %s: %s", base_backend, pdf_path, exc)
                warnings.append(f"{backend_name}: {exc}")
                continue

            warnings.extend(f"{backend_name}: {warning}" for warning in backend_warnings)
            if any(_is_xref_issue(warning) for warning in backend_warnings):
                needs_repair = True
            if len(text.strip()) > len(best_text.strip()):
                best_text = text
                best_backend = backend_name
                best_repaired = use_repair
            if len(best_text.strip()) >= min_chars and not needs_repair:
                break

    if not best_text.strip() and last_error:
        raise ExtractionFailure(last_error)
    meta = {
        "backend": best_backend,
        "bytes": byte_size,
        "repaired": best_repaired,
        "warnings": _dedupe(warnings),
    }
    if len(best_text.strip()) < min_chars:
        meta["warnings"].append(
            f"extracted text shorter than min_chars ({len(best_text.strip())} < {min_chars})"
        )
    return best_text, meta


def _extract_with_backend(backend: str, path: Path) -> tuple[str, list[str]]:
    if backend == "pypdf":
        return _extract_with_pypdf(path)
    if backend == "pdfminer":
        return _extract_with_pdfminer(path)
    raise ExtractionFailure(f"unknown backend: {backend}")


def _extract_with_pypdf(path: Path) -> tuple[str, list[str]]:
    from pypdf import PdfReader

    warnings: list[str] = []
    try:
        reader = PdfReader(str(path))
        pages = list(reader.pages)
    except Exception as exc:  # pypdf raises a wide range of parse errors
        raise ExtractionFailure(str(exc)) from exc

    chunks: list[str] = []
    for page_number, page in enumerate(pages, start=1):
        try:
            chunks.append(page.extract_text() or "")
        except Exception as exc:  # depends on document
            warnings.append(f"page {page_number}: {exc}")
    return "\n".join(chunks), warnings


def _extract_with_pdfminer(path: Path) -> tuple[str, list[str]]:
    from pdfminer.high_level import extract_text as pdfminer_extract_text

    try:
        text = pdfminer_extract_text(str(path))
    except Exception as exc:  # pdfminer raises a wide range of parse errors
        raise ExtractionFailure(str(exc)) from exc
    return text or "", []


def _repair_pdf_with_pikepdf(source: Path, temp_dir: Path) -> Path:
    from pikepdf import Pdf

    repaired_path = temp_dir / "repaired.pdf"
    try:
        with Pdf.open(str(source)) as pdf:
            pdf.save(str(repaired_path))
    except Exception as exc:  # upstream errors vary
        raise ExtractionFailure(str(exc)) from exc
    return repaired_path


def read_docx_text(path: Path) -> str:
    try:
        document = Document(str(path))
        lines = _docx_lines(document)
    except Exception as exc:  # python-docx surfaces zip and xml errors
        raise ExtractionFailure(f"unreadable DOCX: {exc}") from exc
    return "\n".join(line for line in lines if line.strip())


def _docx_lines(document) -> list[str]:
    lines = [paragraph.text for paragraph in document.paragraphs]
    # Form headers with the dates usually live in tables.
    for table in document.tables:
        for row in table.rows:
            lines.append(" ".join(cell.text for cell in row.cells))
    for section in document.sections:
        for paragraph in section.header.paragraphs:
            lines.append(paragraph.text)
        for table in section.header.tables:
            for row in table.rows:
                lines.append(" ".join(cell.text for cell in row.cells))
    return lines


def read_doc_text(path: Path) -> str:
    """Read a legacy ``.doc`` upload.

    Some are DOCX files with the old extension and many are Word HTML exports;
    binary Word 97 files are not supported.
    """
    try:
        return read_docx_text(path)
    except ExtractionFailure:
        logger.debug("%s is not an OOXML document, trying HTML", path.name)
    raw = path.read_bytes()[:2048].lower()
    if b"<html" in raw or b"<!doctype html" in raw:
        return html_to_text(read_plain_text(path))
    raise ExtractionFailure("binary Word 97-2003 documents are not supported")


def read_workbook_text(path: Path) -> str:
    from openpyxl import load_workbook

    try:
        workbook = load_workbook(str(path), data_only=True, read_only=True)
    except Exception as exc:  # openpyxl surfaces zip and xml errors
        raise ExtractionFailure(f"unreadable workbook: {exc}") from exc
    lines: list[str] = []
    try:
        for sheet in workbook.worksheets:
            for row in sheet.iter_rows(values_only=True):
                values = [cell_to_str(value) for value in row]
                if any(values):
                    lines.append(" ".join(value for value in values if value))
    except Exception as exc:  # read-only sheets parse lazily
        raise ExtractionFailure(f"unreadable workbook: {exc}") from exc
    finally:
        workbook.close()
    return "\n".join(lines)


def read_plain_text(path: Path) -> str:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ExtractionFailure(str(exc)) from exc
    for encoding in TEXT_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="ignore")


def html_to_text(markup: str) -> str:
    try:
        soup = BeautifulSoup(markup, "lxml")
        for tag in soup(["script", "style"]):
            tag.decompose()
        return soup.get_text("\n", strip=True)
    except Exception as exc:  # parser errors depend on the markup
        raise ExtractionFailure(f"unreadable HTML: {exc}") from exc

