"""Metadata inference from upload paths and document text.

Filename rule: the revision number is the numerically largest ``_<digits>``
token anywhere in the stem, and that one token is cut out. The remainder is
split at its last hyphen into document code and display name, e.g.
``FR.01-BS.TL.02_0-Cevap Şablonu.pdf`` gives code ``FR.01-BS.TL.02``, name
``Cevap Şablonu`` and revision ``0``.
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from .records import DEFAULT_REVISION, ROOT_UNIT, DocumentRecord, normalize_text

logger = logging.getLogger(__name__)

REVISION_TOKEN_RE = re.compile(r"_(\d+)")
PATH_SEPARATOR_RE = re.compile(r"[\\/]+")
DATE_PATTERN = r"(\d{2}[./]\d{2}[./]\d{4})"

PREPARED_DATE_LABELS = ("Yayın Tarihi", "Hazırlama Tarihi")
REVISION_DATE_LABELS = ("Revizyon Tarihi",)

# Turkish dotted/dotless i do not round-trip through str.lower()/upper().
_TURKISH_CASE = {
    "i": "[iİ]",
    "ı": "[ıI]",
    "İ": "[iİ]",
    "I": "[ıI]",
}


def _label_pattern(label: str) -> str:
    parts: list[str] = []
    for char in label:
        if char in _TURKISH_CASE:
            parts.append(_TURKISH_CASE[char])
        elif char == " ":
            parts.append(r"\s+")
        elif char.isalpha():
            parts.append(f"[{re.escape(char.lower())}{re.escape(char.upper())}]")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


def _date_regex(labels: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(_label_pattern(label) for label in labels)
    return re.compile(rf"(?:{alternatives})\s*[:\s]*{DATE_PATTERN}")


PREPARED_DATE_RE = _date_regex(PREPARED_DATE_LABELS)
REVISION_DATE_RE = _date_regex(REVISION_DATE_LABELS)


def fix_mojibake(name: str) -> str:
    """Undo UTF-8 names that were decoded as Latin-1 in transit.

    Returns ``name`` unchanged when it does not survive the round trip.
    """
    try:
        return name.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name


def file_stem(upload_path: str) -> str:
    return PurePosixPath(PATH_SEPARATOR_RE.split(upload_path)[-1]).stem


def split_revision(stem: str) -> tuple[str, str]:
    """Return ``(stem_without_token, revision)`` using the largest ``_N`` token."""
    best: re.Match[str] | None = None
    for match in REVISION_TOKEN_RE.finditer(stem):
        if best is None or int(match.group(1)) > int(best.group(1)):
            best = match
    if best is None:
        return stem, DEFAULT_REVISION
    remainder = stem[: best.start()] + stem[best.end() :]
    return remainder, best.group(1)


def split_code_and_name(stem: str) -> tuple[str, str]:
    code, hyphen, name = stem.rpartition("-")
    if not hyphen:
        return stem.strip(), ""
    return code.strip(), name.strip()


def parse_filename(upload_path: str) -> tuple[str, str, str]:
    """Return ``(code, display_name, revision_number)`` for an upload path."""
    raw_stem = file_stem(upload_path)
    try:
        stem = normalize_text(fix_mojibake(raw_stem))
        remainder, revision = split_revision(stem)
        code, display_name = split_code_and_name(remainder)
    except Exception:  # a bad filename must not abort the batch
        logger.warning("Could not parse filename %r, using stem as code", upload_path)
        return raw_stem.strip(), "", DEFAULT_REVISION
    return code, display_name, revision


def responsible_unit(upload_path: str) -> str:
    segments = [segment for segment in PATH_SEPARATOR_RE.split(upload_path) if segment]
    if len(segments) > 1:
        return normalize_text(fix_mojibake(segments[-2]))
    return ROOT_UNIT


def find_date(text: str, pattern: re.Pattern[str]) -> str:
    match = pattern.search(text)
    return match.group(1) if match else ""


def extract_dates(raw_text: str) -> tuple[str, str]:
    """Return ``(prepared_date, revision_date)`` found in ``raw_text``."""
    if not raw_text:
        return "", ""
    text = normalize_text(raw_text)
    return find_date(text, PREPARED_DATE_RE), find_date(text, REVISION_DATE_RE)


def extract(upload_relative_path: str, raw_text: str) -> DocumentRecord:
    code, display_name, revision = parse_filename(upload_relative_path)
    prepared_date, revision_date = extract_dates(raw_text)
    return DocumentRecord(
        code=code,
        display_name=display_name,
        responsible_unit=responsible_unit(upload_relative_path),
        prepared_date=prepared_date,
        revision_date=revision_date,
        revision_number=revision,
    )
