"""DuckDB engine: ingest files into typed tables, catalog them, query them."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import duckdb

from errors import (
    AnalyticsError,
    MaterializationError,
    ParseError,
    PersistenceError,
    ValidationError,
)
from inference import infer_schema, schema_to_dict
from logger import get_logger
from materializer import SchemaMaterializer
from parsing import check_columns, parse_file
from query import AggregationRequest, QueryEngine, normalize_value
from registry import Dataset, DatasetRegistry
from storage import Storage, quote_ident

logger = get_logger(__name__)

PREVIEW_ROWS = 5
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 10000


class Engine(ABC):
    @abstractmethod
    def ingest_file(
        self, path: str, original_filename: str, file_size: int | None = None
    ) -> dict:
        """Parse and ingest an uploaded file. Returns the ingestion summary."""

    @abstractmethod
    def ingest_rows(
        self,
        rows: list[dict[str, Any]],
        original_filename: str,
        *,
        file_path: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> dict:
        """Infer, materialize and register already parsed rows."""

    @abstractmethod
    def list_datasets(self) -> list[Dataset]:
        """All datasets, newest first."""

    @abstractmethod
    def get_dataset(self, dataset_id: int) -> Dataset:
        """One catalog entry, or NotFoundError."""

    @abstractmethod
    def get_page(
        self, dataset_id: int, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Raw stored rows in storage order."""

    @abstractmethod
    def run_query(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        """Validate and execute an aggregation request."""

    @abstractmethod
    def close(self) -> None:
        pass


class DuckDBEngine(Engine):
    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self.registry = DatasetRegistry(storage)
        self.materializer = SchemaMaterializer()
        self.queries = QueryEngine(storage, self.registry)
        # one ingestion at a time; DuckDB rejects concurrent catalog writes
        self._ingest_lock = threading.Lock()
        self.registry.initialize()

    def ingest_file(
        self, path: str, original_filename: str, file_size: int | None = None
    ) -> dict:
        parsed = parse_file(path, original_filename)
        if file_size is None:
            file_size = Path(path).stat().st_size
        return self.ingest_rows(
            parsed.rows,
            original_filename,
            file_path=str(path),
            file_size=file_size,
            file_type=parsed.file_type,
        )

    def ingest_rows(
        self,
        rows: list[dict[str, Any]],
        original_filename: str,
        *,
        file_path: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> dict:
        if not rows:
            raise ParseError("No data found in file")
        check_columns(list(rows[0].keys()))
        schema = infer_schema(rows)

        name = Path(original_filename).stem or original_filename
        start = time.time()
        logger.info(
            "Ingesting %s (%d rows, %d columns)",
            original_filename,
            len(rows),
            len(schema),
        )

        with self._ingest_lock:
            try:
                with self.storage.transaction() as cur:
                    dataset_id = self.registry.reserve_id(cur)
                    table, row_count = self.materializer.materialize(
                        cur, dataset_id, schema, rows
                    )
                    self.registry.register(
                        name,
                        original_filename,
                        table,
                        schema,
                        row_count,
                        dataset_id=dataset_id,
                        file_path=file_path,
                        file_size=file_size,
                        file_type=file_type,
                        cur=cur,
                    )
            except AnalyticsError:
                logger.exception("Ingestion of %s failed; rolled back", original_filename)
                raise
            except duckdb.Error as exc:
                logger.exception("Ingestion of %s failed; rolled back", original_filename)
                raise MaterializationError(f"Ingestion failed: {exc}") from exc

        elapsed = round(time.time() - start, 4)
        logger.info("Dataset %s ready in %.4fs", dataset_id, elapsed)
        return {
            "datasetId": dataset_id,
            "name": name,
            "fileName": original_filename,
            "rowCount": row_count,
            "columns": schema_to_dict(schema),
            "preview": rows[:PREVIEW_ROWS],
        }

    def list_datasets(self) -> list[Dataset]:
        return self.registry.list()

    def get_dataset(self, dataset_id: int) -> Dataset:
        return self.registry.get(dataset_id)

    def get_page(
        self, dataset_id: int, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> list[dict[str, Any]]:
        if not isinstance(limit, int) or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be an integer between 1 and {MAX_PAGE_SIZE}"
            )
        if not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset must be a non-negative integer")

        dataset = self.registry.get(dataset_id)
        table_sql = quote_ident(dataset.storage_ref)
        try:
            with self.storage.cursor() as cur:
                result = cur.execute(
                    f"SELECT * FROM {table_sql} ORDER BY rowid LIMIT ? OFFSET ?",
                    [limit, offset],
                )
                col_names = [desc[0] for desc in result.description]
                raw_rows = result.fetchall()
        except duckdb.Error as exc:
            raise PersistenceError(
                f"Stored rows for dataset {dataset_id} are unreadable: {exc}"
            ) from exc

        return [
            {col: normalize_value(raw[idx]) for idx, col in enumerate(col_names)}
            for raw in raw_rows
        ]

    def run_query(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        request = AggregationRequest.from_dict(payload)
        try:
            return self.queries.run(request)
        except ValidationError as exc:
            logger.warning("Rejected query on dataset %s: %s", request.dataset_id, exc)
            raise

    def close(self) -> None:
        self.storage.close()
