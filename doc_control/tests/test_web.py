from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from doc_control.master_sync import master_store
from doc_control.master_sync.config import Settings
from doc_control.master_sync.renderer import XLSX_CONTENT_TYPE
from doc_control.master_sync.web import create_app

from conftest import write_docx


def docx_bytes(tmp_path: Path, paragraphs: list[str]) -> bytes:
    return write_docx(tmp_path / "body.docx", paragraphs).read_bytes()


def test_upload_returns_workbook_and_updates_store(
    store_dir: Path, tmp_path: Path, settings_for: Callable[..., Settings]
) -> None:
    client = TestClient(create_app(settings_for(store_dir)))
    body = docx_bytes(tmp_path, ["Revizyon Tarihi: 30.03.2020"])
    response = client.post(
        "/upload",
        files=[("files", ("FR.01-BS.TL.02_1-Cevap Şablonu.docx", body, "application/octet-stream"))],
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_CONTENT_TYPE
    assert (
        response.headers["content-disposition"] == "attachment; filename=Belge_Bilgileri.xlsx"
    )
    workbook = load_workbook(io.BytesIO(response.content))
    rows = list(workbook.worksheets[0].iter_rows(values_only=True))
    assert rows[1][0] == "FR.01-BS.TL.02"
    assert rows[1][2] == "30.03.2020"

    stored = master_store.load_store(store_dir)
    assert stored.records["FR.01-BS.TL.02"]["Revizyon No"] == "1"


def test_upload_without_files_is_rejected(
    store_dir: Path, settings_for: Callable[..., Settings]
) -> None:
    client = TestClient(create_app(settings_for(store_dir)))
    response = client.post("/upload")
    assert response.status_code == 400
    assert response.text == "Dosya yok."


def test_upload_without_codes_is_rejected(
    store_dir: Path, tmp_path: Path, settings_for: Callable[..., Settings]
) -> None:
    client = TestClient(create_app(settings_for(store_dir)))
    body = docx_bytes(tmp_path, ["boş"])
    before = (store_dir / "Doküman Özet Listesi.csv").read_bytes()
    response = client.post(
        "/upload", files=[("files", ("-Başlıksız.docx", body, "application/octet-stream"))]
    )
    assert response.status_code == 422
    assert (store_dir / "Doküman Özet Listesi.csv").read_bytes() == before


def test_unreadable_store_is_a_server_error(
    tmp_path: Path, settings_for: Callable[..., Settings]
) -> None:
    store_dir = tmp_path / "store"
    store_dir.mkdir()
    (store_dir / "Doküman Özet Listesi.xlsx").write_bytes(b"not a workbook")
    client = TestClient(create_app(settings_for(store_dir)))
    body = docx_bytes(tmp_path, ["x"])
    response = client.post(
        "/upload", files=[("files", ("FR.01-Form.docx", body, "application/octet-stream"))]
    )
    assert response.status_code == 500
