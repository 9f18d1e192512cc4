"""Validated group-by / aggregate / filter queries over one dataset table."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import duckdb

from errors import PersistenceError, ValidationError
from inference import NUMERIC, parse_number
from logger import get_logger
from registry import Dataset, DatasetRegistry
from storage import Storage, quote_ident

logger = get_logger(__name__)

MAX_RESULT_ROWS = 1000
RESULT_VALUE_KEY = "value"

AGGREGATE_FUNCTIONS: dict[str, str] = {
    "sum": "SUM",
    "avg": "AVG",
    "count": "COUNT",
    "max": "MAX",
    "min": "MIN",
}
NUMERIC_ONLY_FUNCTIONS = {"sum", "avg"}

FILTER_OPERATORS = {"=", "!=", "<", "<=", ">", ">="}


@dataclass
class Aggregation:
    column: str
    function: str


@dataclass
class Filter:
    column: str
    operator: str
    value: Any


@dataclass
class AggregationRequest:
    dataset_id: int
    group_by: str | None = None
    aggregation: Aggregation | None = None
    filters: list[Filter] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AggregationRequest":
        """Build a request from the wire shape used by the query endpoint."""
        if not isinstance(payload, dict):
            raise ValidationError("Query must be an object")

        raw_id = payload.get("datasetId")
        if isinstance(raw_id, bool):
            raise ValidationError("datasetId must be an integer")
        try:
            dataset_id = int(raw_id)
        except (TypeError, ValueError) as exc:
            raise ValidationError("datasetId must be an integer") from exc

        group_by = payload.get("groupBy") or None
        if group_by is not None and not isinstance(group_by, str):
            raise ValidationError("groupBy must be a column name")

        aggregation = None
        raw_agg = payload.get("aggregation")
        if raw_agg:
            if not isinstance(raw_agg, dict):
                raise ValidationError("aggregation must be an object")
            column = raw_agg.get("column")
            function = raw_agg.get("function")
            if not isinstance(column, str) or not column:
                raise ValidationError("Aggregation column is required")
            if not isinstance(function, str) or not function:
                raise ValidationError("Aggregation function is required")
            aggregation = Aggregation(column=column, function=function)

        raw_filters = payload.get("filters") or []
        if not isinstance(raw_filters, list) or not all(
            isinstance(f, dict) for f in raw_filters
        ):
            raise ValidationError("filters must be an array of objects")
        filters = [
            Filter(
                column=f.get("column"),
                operator=f.get("operator"),
                value=f.get("value"),
            )
            for f in raw_filters
        ]

        return cls(
            dataset_id=dataset_id,
            group_by=group_by,
            aggregation=aggregation,
            filters=filters,
        )


@dataclass
class CompiledQuery:
    sql: str
    params: list[Any]


class QueryEngine:
    def __init__(self, storage: Storage, registry: DatasetRegistry) -> None:
        self.storage = storage
        self.registry = registry

    def run(self, request: AggregationRequest) -> list[dict[str, Any]]:
        dataset = self.registry.get(request.dataset_id)
        compiled = self.compile(request, dataset)
        try:
            with self.storage.cursor() as cur:
                result = cur.execute(compiled.sql, compiled.params)
                col_names = [desc[0] for desc in result.description]
                raw_rows = result.fetchall()
        except duckdb.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc

        return [
            {col: normalize_value(raw[idx]) for idx, col in enumerate(col_names)}
            for raw in raw_rows
        ]

    def compile(self, request: AggregationRequest, dataset: Dataset) -> CompiledQuery:
        """Validate ``request`` against the dataset schema and build the statement.

        Nothing here touches storage; every rejection happens before execution.
        """
        schema = dataset.schema
        group_by = request.group_by
        agg = request.aggregation

        if group_by is not None:
            self._check_column(group_by, schema, "group-by")
            if agg is None:
                raise ValidationError("groupBy requires an aggregation")
            if group_by == RESULT_VALUE_KEY:
                raise ValidationError(
                    f"groupBy column {group_by!r} collides with the result key "
                    f"{RESULT_VALUE_KEY!r}"
                )

        agg_sql = None
        if agg is not None:
            function = agg.function.lower()
            if function not in AGGREGATE_FUNCTIONS:
                raise ValidationError(f"Unsupported aggregation function: {agg.function}")
            self._check_column(agg.column, schema, "aggregation")
            if function in NUMERIC_ONLY_FUNCTIONS and schema[agg.column].kind != NUMERIC:
                raise ValidationError(
                    f"Aggregation {function} requires numeric column: {agg.column}"
                )
            agg_sql = (
                f"{AGGREGATE_FUNCTIONS[function]}({quote_ident(agg.column)}) "
                f"AS {quote_ident(RESULT_VALUE_KEY)}"
            )

        filter_clauses: list[str] = []
        params: list[Any] = []
        for f in request.filters:
            clause, value = self._build_filter_clause(f, schema)
            filter_clauses.append(clause)
            params.append(value)

        table_sql = quote_ident(dataset.storage_ref)
        where_sql = f"WHERE {' AND '.join(filter_clauses)}" if filter_clauses else ""

        if group_by is not None:
            group_sql = quote_ident(group_by)
            sql = (
                f"SELECT {group_sql}, {agg_sql} FROM {table_sql} {where_sql} "
                f"GROUP BY {group_sql} ORDER BY {group_sql} NULLS LAST LIMIT ?"
            )
        elif agg_sql is not None:
            sql = f"SELECT {agg_sql} FROM {table_sql} {where_sql} LIMIT ?"
        else:
            sql = f"SELECT * FROM {table_sql} {where_sql} ORDER BY rowid LIMIT ?"

        params.append(MAX_RESULT_ROWS)
        return CompiledQuery(sql=sql, params=params)

    def _check_column(self, column: Any, schema: dict, role: str) -> None:
        if not isinstance(column, str) or not column:
            raise ValidationError(f"{role.capitalize()} column is required")
        if column not in schema:
            raise ValidationError(f"Invalid {role} column: {column}")

    def _build_filter_clause(self, f: Filter, schema: dict) -> tuple[str, Any]:
        self._check_column(f.column, schema, "filter")
        if not isinstance(f.operator, str) or f.operator not in FILTER_OPERATORS:
            raise ValidationError(
                f"Unsupported operator {f.operator!r} for column {f.column!r}"
            )

        kind = schema[f.column].kind
        value = self._coerce_value(f.value, kind, f.column)
        # compared as DOUBLE, never rounded to a DECIMAL column's scale
        placeholder = "CAST(? AS DOUBLE)" if kind == NUMERIC else "?"
        return f"{quote_ident(f.column)} {f.operator} {placeholder}", value

    def _coerce_value(self, value: Any, kind: str, column: str) -> Any:
        if value is None:
            raise ValidationError(f"Filter value is required for column {column!r}")
        if kind == NUMERIC:
            number = parse_number(value)
            if number is None:
                raise ValidationError(
                    f"Invalid numeric value for column {column!r}: {value!r}"
                )
            return number
        if isinstance(value, (dict, list)):
            raise ValidationError(f"Invalid text value for column {column!r}")
        return str(value)


def normalize_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    if isinstance(value, Decimal):
        return normalize_value(float(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if not isinstance(value, (str, int, bool)):
        return str(value)
    return value
