from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from docx import Document

from doc_control.master_sync.config import Settings

MASTER_ROWS: list[list[str]] = [
    ["Doküman Özet Listesi"],
    [],
    [
        "Sıra",
        "Doküman Kodu",
        "Doküman Adı",
        "Sorumlu Kısım",
        "Hazırlama Tarihi",
        "Revizyon Tarihi",
        "Revizyon No",
        "Açıklama",
    ],
    ["1", "FR.01-BS.TL.02", "Cevap Şablonu", "Kalite", "01.02.2019", "", "0", "ilk yayın"],
    ["2", "PR.05", "Satın Alma Prosedürü", "Satın Alma", "10.10.2018", "05.05.2020", "2", ""],
    ["3", "", "kodsuz satır", "", "", "", "", ""],
]


def write_csv_store(store_dir: Path, rows: Sequence[Sequence[str]]) -> Path:
    store_dir.mkdir(parents=True, exist_ok=True)
    path = store_dir / "Doküman Özet Listesi.csv"
    lines = [";".join(f'"{cell}"' for cell in row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_docx(path: Path, paragraphs: Sequence[str], table: Sequence[Sequence[str]] = ()) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table:
        doc_table = document.add_table(rows=len(table), cols=len(table[0]))
        for row_index, row in enumerate(table):
            for col_index, value in enumerate(row):
                doc_table.cell(row_index, col_index).text = value
    document.save(str(path))
    return path


@pytest.fixture()
def store_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "store"
    write_csv_store(directory, MASTER_ROWS)
    return directory


@pytest.fixture()
def settings_for() -> Callable[..., Settings]:
    def build(store_dir: Path, **overrides: object) -> Settings:
        values: dict[str, object] = {"store_dir": store_dir, "pdf_backends": ["pypdf", "pdfminer"]}
        values.update(overrides)
        return Settings(**values)  # type: ignore[arg-type]

    return build
