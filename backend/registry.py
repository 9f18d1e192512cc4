"""Durable dataset catalog stored in the ``datasets`` table."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import duckdb

from errors import NotFoundError, PersistenceError
from inference import ColumnSchema, schema_from_dict, schema_to_dict
from logger import get_logger
from storage import Storage

logger = get_logger(__name__)

CATALOG_COLUMNS = (
    "id",
    "name",
    "original_filename",
    "storage_ref",
    "file_path",
    "file_size",
    "file_type",
    "columns_info",
    "row_count",
    "status",
    "created_at",
    "updated_at",
)


@dataclass
class Dataset:
    id: int
    name: str
    original_filename: str
    storage_ref: str
    schema: dict[str, ColumnSchema] = field(default_factory=dict)
    row_count: int = 0
    file_path: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    status: str = "active"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "originalFilename": self.original_filename,
            "storageRef": self.storage_ref,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "columns": schema_to_dict(self.schema),
            "rowCount": self.row_count,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class DatasetRegistry:
    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def initialize(self) -> None:
        try:
            with self.storage.cursor() as cur:
                cur.execute("CREATE SEQUENCE IF NOT EXISTS datasets_id_seq START 1")
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS datasets (
                        id BIGINT PRIMARY KEY,
                        name VARCHAR NOT NULL,
                        original_filename VARCHAR,
                        storage_ref VARCHAR NOT NULL,
                        file_path VARCHAR,
                        file_size BIGINT,
                        file_type VARCHAR,
                        columns_info VARCHAR NOT NULL,
                        row_count BIGINT NOT NULL,
                        status VARCHAR DEFAULT 'active',
                        created_at TIMESTAMP NOT NULL,
                        updated_at TIMESTAMP NOT NULL
                    )
                    """
                )
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to initialize catalog: {exc}") from exc

    def reserve_id(self, cur: duckdb.DuckDBPyConnection) -> int:
        try:
            return int(cur.execute("SELECT nextval('datasets_id_seq')").fetchone()[0])
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to allocate dataset id: {exc}") from exc

    def register(
        self,
        name: str,
        original_filename: str,
        storage_ref: str,
        schema: dict[str, ColumnSchema],
        row_count: int,
        *,
        dataset_id: int | None = None,
        file_path: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
        cur: duckdb.DuckDBPyConnection | None = None,
    ) -> int:
        """Insert one catalog entry and return its id.

        Pass ``cur`` to join an open transaction (ingestion does); otherwise the
        insert runs in its own transaction.
        """
        if cur is None:
            with self.storage.transaction() as own_cur:
                return self.register(
                    name,
                    original_filename,
                    storage_ref,
                    schema,
                    row_count,
                    dataset_id=dataset_id,
                    file_path=file_path,
                    file_size=file_size,
                    file_type=file_type,
                    cur=own_cur,
                )

        if dataset_id is None:
            dataset_id = self.reserve_id(cur)

        now = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            cur.execute(
                f"INSERT INTO datasets ({', '.join(CATALOG_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in CATALOG_COLUMNS)})",
                [
                    dataset_id,
                    name,
                    original_filename,
                    storage_ref,
                    file_path,
                    file_size,
                    file_type,
                    json.dumps(schema_to_dict(schema)),
                    row_count,
                    "active",
                    now,
                    now,
                ],
            )
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to register dataset: {exc}") from exc

        logger.info("Registered dataset %s (%s, %d rows)", dataset_id, name, row_count)
        return dataset_id

    def list(self) -> list[Dataset]:
        try:
            with self.storage.cursor() as cur:
                rows = cur.execute(
                    f"SELECT {', '.join(CATALOG_COLUMNS)} FROM datasets "
                    f"ORDER BY created_at DESC, id DESC"
                ).fetchall()
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to list datasets: {exc}") from exc
        return [self._to_dataset(r) for r in rows]

    def get(self, dataset_id: int) -> Dataset:
        try:
            with self.storage.cursor() as cur:
                row = cur.execute(
                    f"SELECT {', '.join(CATALOG_COLUMNS)} FROM datasets WHERE id = ?",
                    [dataset_id],
                ).fetchone()
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to load dataset {dataset_id}: {exc}") from exc
        if row is None:
            raise NotFoundError(f"Dataset not found: {dataset_id}")
        return self._to_dataset(row)

    def _to_dataset(self, row: tuple) -> Dataset:
        record = dict(zip(CATALOG_COLUMNS, row))
        return Dataset(
            id=int(record["id"]),
            name=record["name"],
            original_filename=record["original_filename"],
            storage_ref=record["storage_ref"],
            schema=schema_from_dict(json.loads(record["columns_info"])),
            row_count=int(record["row_count"]),
            file_path=record["file_path"],
            file_size=record["file_size"],
            file_type=record["file_type"],
            status=record["status"],
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )
