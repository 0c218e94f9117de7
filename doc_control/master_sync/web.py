"""HTTP upload endpoint returning the batch workbook."""
from __future__ import annotations

import logging
import tempfile
from pathlib import Path, PurePosixPath

from fastapi import FastAPI, File, UploadFile
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from .batch import UploadedFile, process_batch
from .config import Settings
from .errors import NoValidRecords, SchemaError, StoreNotFound
from .renderer import ATTACHMENT_FILENAME, XLSX_CONTENT_TYPE

logger = logging.getLogger(__name__)


def _stored_name(index: int, filename: str) -> str:
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    return f"upload_{index:04d}{suffix}"


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(title="Document master list sync")
    app.state.settings = settings

    def current_settings() -> Settings:
        if app.state.settings is None:
            app.state.settings = Settings.resolve()
        return app.state.settings

    @app.post("/upload")
    async def upload(files: list[UploadFile] | None = File(default=None)) -> Response:
        if not files:
            return PlainTextResponse("Dosya yok.", status_code=400)

        with tempfile.TemporaryDirectory(prefix="master_sync_upload_") as tmp_dir:
            uploads: list[UploadedFile] = []
            for index, file in enumerate(files):
                filename = file.filename or f"upload_{index}"
                stored_path = Path(tmp_dir) / _stored_name(index, filename)
                stored_path.write_bytes(await file.read())
                uploads.append(UploadedFile(filename, stored_path))
            try:
                result = await run_in_threadpool(process_batch, uploads, current_settings())
            except NoValidRecords as exc:
                logger.warning("Batch rejected: %s", exc)
                return PlainTextResponse("Geçerli doküman kodu bulunamadı.", status_code=422)
            except (StoreNotFound, SchemaError) as exc:
                logger.error("Master list unavailable: %s", exc)
                return PlainTextResponse("Ana doküman listesi okunamadı.", status_code=500)

        return Response(
            content=result.report,
            media_type=XLSX_CONTENT_TYPE,
            headers={"Content-Disposition": f"attachment; filename={ATTACHMENT_FILENAME}"},
        )

    return app
