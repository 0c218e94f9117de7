from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from openpyxl import load_workbook

from doc_control.master_sync import batch, master_store, reconcile, renderer
from doc_control.master_sync.config import Settings
from doc_control.master_sync.errors import NoValidRecords, StoreNotFound

from conftest import write_csv_store, write_docx


@pytest.fixture()
def uploads(tmp_path: Path) -> list[batch.UploadedFile]:
    upload_dir = tmp_path / "uploads"
    files = [
        (
            "Kalite/FR.01-BS.TL.02_0-Cevap Şablonu.docx",
            ["Doküman bilgileri", "Revizyon Tarihi: 30.03.2020"],
        ),
        ("Satın Alma/PR.05-Satın Alma Prosedürü_1.docx", ["Revizyon Tarihi: 01.01.2021"]),
        ("Satın Alma/PR.05-Satın Alma Prosedürü_3.docx", ["Revizyon Tarihi: 01.09.2023"]),
        ("Üretim/TL.07-Kalıp Talimatı_1.docx", ["Yayın Tarihi: 04.04.2022"]),
    ]
    result = []
    for relative, paragraphs in files:
        stored = write_docx(upload_dir / relative, paragraphs)
        result.append(batch.UploadedFile(relative, stored))
    return result


def read_sheets(report: bytes) -> dict[str, list[list[object]]]:
    workbook = load_workbook(io.BytesIO(report))
    return {
        sheet.title: [list(row) for row in sheet.iter_rows(values_only=True)]
        for sheet in workbook.worksheets
    }


def test_process_batch_merges_and_persists(
    store_dir: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    result = batch.process_batch(uploads, settings_for(store_dir))

    assert [outcome.status for outcome in result.outcomes] == [
        "accepted",
        "superseded",
        "accepted",
        "accepted",
    ]
    assert [record.code for record in result.accepted] == ["FR.01-BS.TL.02", "PR.05", "TL.07"]
    assert result.persisted

    stored = master_store.load_store(store_dir)
    assert stored.format == "csv"
    assert stored.preamble[0] == ["Doküman Özet Listesi"]
    fr01 = stored.records["FR.01-BS.TL.02"]
    assert fr01["Revizyon Tarihi"] == "30.03.2020"
    assert fr01["Hazırlama Tarihi"] == "01.02.2019"
    assert fr01["Açıklama"] == "ilk yayın"
    pr05 = stored.records["PR.05"]
    assert pr05["Revizyon No"] == "3"
    assert pr05["Revizyon Tarihi"] == "01.09.2023"
    assert stored.records["TL.07"]["Sorumlu Kısım"] == "Üretim"

    mismatches = {(mismatch.code, mismatch.message) for mismatch in result.mismatches}
    assert ("TL.07", reconcile.NOT_IN_MASTER) in mismatches
    assert ("PR.05", "Revizyon No: ana liste '2', yüklenen '3'") in mismatches
    assert not any(code == "FR.01-BS.TL.02" for code, _ in mismatches)


def test_report_has_records_and_mismatch_sheets(
    store_dir: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    result = batch.process_batch(uploads, settings_for(store_dir), persist=False)
    sheets = read_sheets(result.report)
    assert list(sheets) == [renderer.RECORDS_SHEET, renderer.MISMATCH_SHEET]
    records_sheet = sheets[renderer.RECORDS_SHEET]
    assert records_sheet[0] == [
        "Döküman No",
        "Tarih",
        "Revizyon Tarihi",
        "Revizyon Sayısı",
        "Sorumlu Departman",
        "Dosya İsmi",
    ]
    assert records_sheet[1] == [
        "FR.01-BS.TL.02",
        None,
        "30.03.2020",
        "0",
        "Kalite",
        "Cevap Şablonu",
    ]
    assert len(records_sheet) == 4
    assert sheets[renderer.MISMATCH_SHEET][0] == renderer.MISMATCH_HEADERS


def test_dry_run_leaves_store_untouched(
    store_dir: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    store_file = store_dir / "Doküman Özet Listesi.csv"
    before = store_file.read_bytes()
    batch.process_batch(uploads, settings_for(store_dir), persist=False)
    assert store_file.read_bytes() == before


def test_first_policy_keeps_earliest_upload(
    store_dir: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    result = batch.process_batch(
        uploads, settings_for(store_dir, batch_policy="first"), persist=False
    )
    pr05 = next(record for record in result.accepted if record.code == "PR.05")
    assert pr05.revision_number == "1"
    assert result.outcomes[2].status == "superseded"


def test_missing_store_starts_fresh(
    tmp_path: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    empty_dir = tmp_path / "empty"
    empty_dir.mkdir()
    result = batch.process_batch(uploads, settings_for(empty_dir))
    assert set(result.store.records) == {"FR.01-BS.TL.02", "PR.05", "TL.07"}
    assert all(mismatch.message == reconcile.NOT_IN_MASTER for mismatch in result.mismatches)
    assert len(result.mismatches) == 3
    stored = master_store.load_store(empty_dir)
    assert stored.format == "xlsx"
    assert set(stored.records) == {"FR.01-BS.TL.02", "PR.05", "TL.07"}


def test_missing_store_fails_when_configured(
    tmp_path: Path,
    uploads: list[batch.UploadedFile],
    settings_for: Callable[..., Settings],
) -> None:
    with pytest.raises(StoreNotFound):
        batch.process_batch(uploads, settings_for(tmp_path, missing_store="fail"))


def test_no_valid_records_writes_nothing(
    tmp_path: Path, settings_for: Callable[..., Settings]
) -> None:
    stored = write_docx(tmp_path / "uploads" / "-Başlıksız.docx", ["boş"])
    store_dir = tmp_path / "store"
    store_dir.mkdir()
    with pytest.raises(NoValidRecords):
        batch.process_batch(
            [batch.UploadedFile("-Başlıksız.docx", stored)], settings_for(store_dir)
        )
    assert not list(store_dir.iterdir())
    with pytest.raises(NoValidRecords):
        batch.process_batch([], settings_for(store_dir))


def test_unreadable_file_keeps_filename_metadata(
    store_dir: Path, tmp_path: Path, settings_for: Callable[..., Settings]
) -> None:
    broken = tmp_path / "uploads" / "broken.pdf"
    broken.parent.mkdir(parents=True)
    broken.write_bytes(b"garbage")
    upload = batch.UploadedFile("Kalite/FR.01-BS.TL.02_2-Cevap Şablonu.pdf", broken)
    result = batch.process_batch([upload], settings_for(store_dir), persist=False)
    outcome = result.outcomes[0]
    assert outcome.status == "accepted"
    assert outcome.error
    assert outcome.record.revision_number == "2"
    assert outcome.record.revision_date == ""
    assert result.store.records["FR.01-BS.TL.02"]["Revizyon Tarihi"] == ""


def test_iter_upload_paths_keeps_folder_segment(tmp_path: Path) -> None:
    folder = tmp_path / "Kalite"
    write_docx(folder / "FR.01-Form.docx", ["x"])
    write_docx(folder / "alt" / "FR.02-Form.docx", ["x"])
    (folder / "notlar.md").write_text("skip", encoding="utf-8")
    single = write_docx(tmp_path / "TL.01-Talimat.docx", ["x"])

    found = list(batch.iter_upload_paths([folder, single]))
    assert [upload.relative_path for upload in found] == [
        "Kalite/FR.01-Form.docx",
        "Kalite/alt/FR.02-Form.docx",
        "TL.01-Talimat.docx",
    ]


def test_report_without_mismatches_has_single_sheet(
    store_dir: Path,
    tmp_path: Path,
    settings_for: Callable[..., Settings],
) -> None:
    relative = "Kalite/FR.01-BS.TL.02_0-Cevap Şablonu.docx"
    stored = write_docx(tmp_path / "same" / relative, ["Doküman bilgileri"])
    result = batch.process_batch(
        [batch.UploadedFile(relative, stored)], settings_for(store_dir), persist=False
    )
    assert result.mismatches == []
    assert load_workbook(io.BytesIO(result.report)).sheetnames == [renderer.RECORDS_SHEET]


def test_blank_header_columns_are_kept_through_a_batch(
    tmp_path: Path,
    settings_for: Callable[..., Settings],
) -> None:
    store_dir = tmp_path / "store"
    write_csv_store(
        store_dir,
        [
            ["Doküman Kodu", "", "Doküman Adı", "", "Sorumlu Kısım"],
            ["PR.05", "p", "Eski Ad", "q", "Satın Alma"],
        ],
    )
    relative = "Satın Alma/PR.05-Yeni Ad_1.docx"
    stored = write_docx(tmp_path / "uploads" / relative, ["Doküman bilgileri"])
    batch.process_batch([batch.UploadedFile(relative, stored)], settings_for(store_dir))

    text = (store_dir / "Doküman Özet Listesi.csv").read_text(encoding="utf-8-sig")
    assert '"PR.05";"p";"Yeni Ad";"q";"Satın Alma"' in text
