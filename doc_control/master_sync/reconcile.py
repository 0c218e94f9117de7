"""Merging candidate records into the master list and resolving batch duplicates."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .master_store import MasterList
from .records import MASTER_COLUMNS, MERGE_FIELDS, DocumentRecord

logger = logging.getLogger(__name__)

NOT_IN_MASTER = "Ana listede bulunamadı"

T = TypeVar("T")


@dataclass(frozen=True)
class Mismatch:
    code: str
    message: str


@dataclass
class MergeResult:
    master: MasterList
    mismatches: list[Mismatch] = field(default_factory=list)
    inserted: bool = False
    changed: bool = False


@dataclass
class Resolution(Generic[T]):
    """Outcome of per-code winner selection within one batch."""

    accepted: list[T] = field(default_factory=list)
    superseded: list[T] = field(default_factory=list)


def column_for(field_name: str, headers: Sequence[str]) -> str | None:
    column = MASTER_COLUMNS[field_name]
    if column in headers:
        return column
    # tolerate decorated headers such as "Revizyon No *"
    for header in headers:
        if column in header:
            return header
    return None


def describe_mismatch(column: str, master_value: str, candidate_value: str) -> str:
    return f"{column}: ana liste '{master_value}', yüklenen '{candidate_value}'"


def merge(
    master: MasterList,
    candidate: DocumentRecord,
    headers: Sequence[str],
) -> MergeResult:
    """Merge ``candidate`` into ``master`` without mutating it.

    Non-empty candidate fields overwrite, empty ones leave the master value in
    place, and unknown codes are inserted with every other column blank.
    Differences between two non-empty values are reported as mismatches.
    """
    code_column = column_for("code", headers) or MASTER_COLUMNS["code"]
    existing = master.get(candidate.code)
    updated_master = dict(master)

    if existing is None:
        logger.debug("Code %s not in master list, inserting", candidate.code)
        row = {header: "" for header in headers}
        row[code_column] = candidate.code
        for field_name in MERGE_FIELDS:
            column = column_for(field_name, headers)
            if column is not None:
                row[column] = getattr(candidate, field_name)
        updated_master[candidate.code] = row
        return MergeResult(
            master=updated_master,
            mismatches=[Mismatch(candidate.code, NOT_IN_MASTER)],
            inserted=True,
            changed=True,
        )

    row = dict(existing)
    mismatches: list[Mismatch] = []
    # defaults such as the root unit and revision "0" are values too and overwrite
    for field_name in MERGE_FIELDS:
        value = getattr(candidate, field_name)
        if not value:
            continue
        column = column_for(field_name, headers)
        if column is None:
            continue
        current = row.get(column, "")
        if current and current != value:
            mismatches.append(Mismatch(candidate.code, describe_mismatch(column, current, value)))
        row[column] = value
    changed = row != dict(existing)
    if changed:
        updated_master[candidate.code] = row
    return MergeResult(master=updated_master, mismatches=mismatches, changed=changed)


def merge_all(
    master: MasterList,
    candidates: Iterable[DocumentRecord],
    headers: Sequence[str],
) -> MergeResult:
    """Fold ``candidates`` into ``master`` in order, collecting every mismatch."""
    current = master
    mismatches: list[Mismatch] = []
    changed = False
    for candidate in candidates:
        result = merge(current, candidate, headers)
        current = result.master
        mismatches.extend(result.mismatches)
        changed = changed or result.changed
    return MergeResult(master=current, mismatches=mismatches, changed=changed)


def resolve_batch(
    items: Sequence[T],
    record_of: Callable[[T], DocumentRecord],
    policy: str = "highest_revision",
) -> Resolution[T]:
    """Pick one item per code, deterministically in upload order.

    ``first`` keeps the earliest upload of each code; ``highest_revision`` keeps
    the one with the largest revision number, ties going to the earliest.
    Items without a code are neither accepted nor superseded.
    """
    winners: dict[str, int] = {}
    for index, item in enumerate(items):
        record = record_of(item)
        if not record.code:
            continue
        current = winners.get(record.code)
        if current is None:
            winners[record.code] = index
            continue
        if policy == "highest_revision":
            if record.revision_value() > record_of(items[current]).revision_value():
                winners[record.code] = index
    keep = set(winners.values())
    resolution: Resolution[T] = Resolution()
    for index, item in enumerate(items):
        if index in keep:
            resolution.accepted.append(item)
        elif record_of(item).code:
            resolution.superseded.append(item)
    return resolution
