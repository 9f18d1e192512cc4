"""Column kind inference from a bounded row sample."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

SAMPLE_SIZE = 100
SAMPLE_VALUE_LIMIT = 5
# numeric when at least 4 of every 5 non-null values parse as numbers
NUMERIC_RATIO = (4, 5)

NUMERIC = "numeric"
TEXT = "text"


@dataclass
class ColumnSchema:
    kind: str
    has_nulls: bool = False
    unique_values: int = 0
    sample_values: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "hasNulls": self.has_nulls,
            "uniqueValues": self.unique_values,
            "sampleValues": list(self.sample_values),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ColumnSchema":
        return cls(
            kind=payload["kind"],
            has_nulls=bool(payload.get("hasNulls", False)),
            unique_values=int(payload.get("uniqueValues", 0)),
            sample_values=list(payload.get("sampleValues") or []),
        )


def is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def parse_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        n = float(value)
    elif isinstance(value, str):
        text = value.strip()
        # float() accepts "1_000"; spreadsheets and CSV don't mean that as a number
        if not text or "_" in text:
            return None
        try:
            n = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(n) or math.isinf(n):
        return None
    return n


def infer_schema(
    rows: list[dict[str, Any]], sample_size: int = SAMPLE_SIZE
) -> dict[str, ColumnSchema]:
    """Classify every column of ``rows[0]`` using the first ``sample_size`` rows.

    An empty sample yields an empty schema; callers must reject it.
    """
    sample = rows[:sample_size]
    if not sample:
        return {}

    schema: dict[str, ColumnSchema] = {}
    for column in sample[0].keys():
        values: list[Any] = []
        has_nulls = False
        for row in sample:
            value = row.get(column)
            if is_null(value):
                has_nulls = True
                continue
            values.append(value)

        numeric_count = sum(1 for v in values if parse_number(v) is not None)
        num, den = NUMERIC_RATIO
        is_numeric = bool(values) and numeric_count * den >= len(values) * num

        schema[column] = ColumnSchema(
            kind=NUMERIC if is_numeric else TEXT,
            has_nulls=has_nulls,
            unique_values=len(set(values)),
            sample_values=values[:SAMPLE_VALUE_LIMIT],
        )
    return schema


def schema_to_dict(schema: dict[str, ColumnSchema]) -> dict[str, dict[str, Any]]:
    return {name: col.to_dict() for name, col in schema.items()}


def schema_from_dict(payload: dict[str, Any]) -> dict[str, ColumnSchema]:
    return {name: ColumnSchema.from_dict(col) for name, col in payload.items()}
