"""Document record model and column mappings."""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

ROOT_UNIT = "Ana Klasör"
DEFAULT_REVISION = "0"

CODE_MARKER = "Doküman Kodu"

# record field -> master list column
MASTER_COLUMNS: dict[str, str] = {
    "code": CODE_MARKER,
    "display_name": "Doküman Adı",
    "responsible_unit": "Sorumlu Kısım",
    "prepared_date": "Hazırlama Tarihi",
    "revision_date": "Revizyon Tarihi",
    "revision_number": "Revizyon No",
}

DEFAULT_MASTER_HEADERS = [
    MASTER_COLUMNS["code"],
    MASTER_COLUMNS["display_name"],
    MASTER_COLUMNS["responsible_unit"],
    MASTER_COLUMNS["prepared_date"],
    MASTER_COLUMNS["revision_date"],
    MASTER_COLUMNS["revision_number"],
]

# record field -> response sheet column, in output order
RESPONSE_COLUMNS: dict[str, str] = {
    "code": "Döküman No",
    "prepared_date": "Tarih",
    "revision_date": "Revizyon Tarihi",
    "revision_number": "Revizyon Sayısı",
    "responsible_unit": "Sorumlu Departman",
    "display_name": "Dosya İsmi",
}

MERGE_FIELDS = (
    "display_name",
    "responsible_unit",
    "prepared_date",
    "revision_date",
    "revision_number",
)


@dataclass(frozen=True)
class DocumentRecord:
    """Metadata inferred for one uploaded document."""

    code: str
    display_name: str = ""
    responsible_unit: str = ROOT_UNIT
    prepared_date: str = ""
    revision_date: str = ""
    revision_number: str = DEFAULT_REVISION

    def revision_value(self) -> int:
        try:
            return int(self.revision_number)
        except ValueError:
            return 0

    def response_row(self) -> list[str]:
        return [getattr(self, name) for name in RESPONSE_COLUMNS]


def normalize_text(value: str) -> str:
    return unicodedata.normalize("NFC", value)


def cell_to_str(value: Any) -> str:
    """Render a spreadsheet or CSV cell as the string stored in the master list."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d.%m.%Y")
    if isinstance(value, date):
        return value.strftime("%d.%m.%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return normalize_text(str(value)).strip()
