"""FastAPI app: upload, catalog, raw pages and chart queries."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import load_settings
from engine import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, DuckDBEngine
from errors import (
    AnalyticsError,
    MaterializationError,
    NotFoundError,
    ParseError,
    PersistenceError,
    UnsupportedFormatError,
    UploadTooLargeError,
    ValidationError,
)
from logger import get_logger
from parsing import detect_format
from storage import Storage

logger = get_logger("analytics.api")

settings = load_settings()
storage = Storage(settings.database).open()
engine = DuckDBEngine(storage)

settings.upload_dir.mkdir(parents=True, exist_ok=True)

STATUS_BY_ERROR: list[tuple[type[AnalyticsError], int]] = [
    (NotFoundError, 404),
    (UploadTooLargeError, 413),
    (ParseError, 400),
    (UnsupportedFormatError, 400),
    (ValidationError, 400),
    (MaterializationError, 500),
    (PersistenceError, 500),
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    engine.close()


app = FastAPI(title="Analytics Platform", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(exc: AnalyticsError) -> HTTPException:
    status = next((code for cls, code in STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s: %s", exc.kind, exc.detail)
    return HTTPException(status, detail=exc.to_dict())


async def _store_upload_file(file: UploadFile) -> tuple[str, Path, int]:
    if not file.filename:
        raise HTTPException(400, "No file uploaded")

    original_name = file.filename
    safe_name = Path(original_name).name
    if safe_name != original_name or safe_name in {"", ".", ".."}:
        raise HTTPException(400, "Invalid filename")

    # extension check happens before anything is read or written
    detect_format(safe_name)

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise UploadTooLargeError(
            f"File exceeds the {settings.max_upload_bytes} byte upload limit"
        )

    save_path = settings.upload_dir / f"{uuid4().hex}_{safe_name}"
    save_path.write_bytes(content)
    return safe_name, save_path, len(content)


# ── Health ──


@app.get("/api/health")
async def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


# ── Upload ──


@app.post("/api/upload")
async def upload_dataset(file: UploadFile = File(...)):
    try:
        safe_name, save_path, size = await _store_upload_file(file)
    except AnalyticsError as e:
        raise _http_error(e)

    stored = False
    try:
        result = engine.ingest_file(str(save_path), safe_name, file_size=size)
        stored = True
    except AnalyticsError as e:
        raise _http_error(e)
    finally:
        if not stored:
            save_path.unlink(missing_ok=True)

    return {"success": True, **result}


# ── Catalog ──


@app.get("/api/datasets")
async def list_datasets():
    try:
        return [d.to_dict() for d in engine.list_datasets()]
    except AnalyticsError as e:
        raise _http_error(e)


@app.get("/api/datasets/{dataset_id}")
async def get_dataset(dataset_id: int):
    try:
        return engine.get_dataset(dataset_id).to_dict()
    except AnalyticsError as e:
        raise _http_error(e)


@app.get("/api/datasets/{dataset_id}/data")
async def get_dataset_data(
    dataset_id: int,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    try:
        return engine.get_page(dataset_id, limit=limit, offset=offset)
    except AnalyticsError as e:
        raise _http_error(e)


# ── Query ──


class AggregationBody(BaseModel):
    column: str
    function: str


class FilterBody(BaseModel):
    column: str
    operator: str
    value: Any = None


class QueryRequest(BaseModel):
    datasetId: int
    groupBy: str | None = None
    aggregation: AggregationBody | None = None
    filters: list[FilterBody] = Field(default_factory=list)


@app.post("/api/query")
async def run_query(body: QueryRequest):
    try:
        return engine.run_query(body.model_dump())
    except AnalyticsError as e:
        raise _http_error(e)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
