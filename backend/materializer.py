"""Create one typed DuckDB table per dataset and bulk-load its rows."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

import duckdb

from errors import MaterializationError
from inference import NUMERIC, ColumnSchema, is_null, parse_number
from logger import get_logger
from storage import quote_ident

logger = get_logger(__name__)

INSERT_BATCH_SIZE = 500

STORAGE_TYPE_BY_KIND: dict[str, str] = {
    "numeric": "DOUBLE",
    "text": "VARCHAR",
}

# exact numerics keep 10 digits of SUM headroom inside DECIMAL(38, s);
# wider or finer columns fall back to DOUBLE
DECIMAL_PRECISION = 38
DECIMAL_MAX_DIGITS = 28
DECIMAL_MAX_SCALE = 18


def table_name(dataset_id: int) -> str:
    return f"dataset_{int(dataset_id)}"


def coerce_value(value: Any, kind: str) -> Any:
    """Convert a raw cell to the column kind; unconvertible cells become None."""
    if is_null(value):
        return None
    if kind == NUMERIC:
        return parse_number(value)
    return str(value)


def to_decimal(value: Any) -> Decimal | None:
    """Exact decimal form of a numeric cell, as written in the file."""
    if parse_number(value) is None:
        return None
    text = value.strip() if isinstance(value, str) else repr(value)
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    # fixed-point form, so "1e3" carries no fractional digits
    return Decimal(format(number, "f"))


def numeric_storage_type(values: Iterable[Any]) -> str:
    scale = 0
    digits = 1
    for value in values:
        number = to_decimal(value)
        if number is None:
            continue
        scale = max(scale, -number.as_tuple().exponent)
        digits = max(digits, number.adjusted() + 1)
    if scale > DECIMAL_MAX_SCALE or digits + scale > DECIMAL_MAX_DIGITS:
        return STORAGE_TYPE_BY_KIND[NUMERIC]
    return f"DECIMAL({DECIMAL_PRECISION}, {scale})"


def storage_types(
    schema: dict[str, ColumnSchema], rows: list[dict[str, Any]]
) -> dict[str, str]:
    """Storage type per column, sized from every row rather than the sample."""
    types: dict[str, str] = {}
    for name, col in schema.items():
        if col.kind == NUMERIC:
            types[name] = numeric_storage_type(row.get(name) for row in rows)
        else:
            types[name] = STORAGE_TYPE_BY_KIND[col.kind]
    return types


def _converter(kind: str, storage_type: str | None) -> Callable[[Any], Any]:
    if storage_type and storage_type.startswith("DECIMAL"):
        return to_decimal
    return lambda value: coerce_value(value, kind)


class SchemaMaterializer:
    def create_table(
        self,
        cur: duckdb.DuckDBPyConnection,
        dataset_id: int,
        schema: dict[str, ColumnSchema],
        types: dict[str, str] | None = None,
    ) -> str:
        table = table_name(dataset_id)
        types = types or {}
        column_defs = ", ".join(
            f"{quote_ident(name)} {types.get(name) or STORAGE_TYPE_BY_KIND[col.kind]}"
            for name, col in schema.items()
        )
        try:
            cur.execute(f"CREATE TABLE {quote_ident(table)} ({column_defs})")
        except duckdb.Error as exc:
            raise MaterializationError(f"Failed to create table {table}: {exc}") from exc
        return table

    def insert_rows(
        self,
        cur: duckdb.DuckDBPyConnection,
        table: str,
        schema: dict[str, ColumnSchema],
        rows: list[dict[str, Any]],
        types: dict[str, str] | None = None,
    ) -> int:
        types = types or {}
        columns = list(schema.keys())
        converters = [_converter(schema[c].kind, types.get(c)) for c in columns]
        column_sql = ", ".join(quote_ident(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {quote_ident(table)} ({column_sql}) VALUES ({placeholders})"

        inserted = 0
        for start in range(0, len(rows), INSERT_BATCH_SIZE):
            batch = [
                [convert(row.get(col)) for col, convert in zip(columns, converters)]
                for row in rows[start : start + INSERT_BATCH_SIZE]
            ]
            try:
                cur.executemany(sql, batch)
            except duckdb.Error as exc:
                raise MaterializationError(
                    f"Failed to insert rows {start}-{start + len(batch) - 1} "
                    f"into {table}: {exc}"
                ) from exc
            inserted += len(batch)
        return inserted

    def materialize(
        self,
        cur: duckdb.DuckDBPyConnection,
        dataset_id: int,
        schema: dict[str, ColumnSchema],
        rows: list[dict[str, Any]],
    ) -> tuple[str, int]:
        """Create ``dataset_<id>`` and load every row. Run inside a transaction."""
        if not schema:
            raise MaterializationError("Cannot materialize a dataset without columns")
        types = storage_types(schema, rows)
        table = self.create_table(cur, dataset_id, schema, types)
        inserted = self.insert_rows(cur, table, schema, rows, types)
        logger.info("Materialized %d rows into %s", inserted, table)
        return table, inserted
