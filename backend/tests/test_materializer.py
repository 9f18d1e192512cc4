from __future__ import annotations

from decimal import Decimal

import pytest

from errors import MaterializationError
from inference import infer_schema
from materializer import (
    SchemaMaterializer,
    coerce_value,
    numeric_storage_type,
    table_name,
    to_decimal,
)
from storage import Storage, quote_ident


def _column_types(storage: Storage, table: str) -> dict[str, str]:
    with storage.cursor() as cur:
        rows = cur.execute(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_name = ? ORDER BY ordinal_position",
            [table],
        ).fetchall()
    return dict(rows)


def test_table_name_depends_only_on_the_id() -> None:
    assert table_name(7) == "dataset_7"


def test_quote_ident_doubles_embedded_quotes() -> None:
    assert quote_ident('a"b') == '"a""b"'


def test_coerce_value() -> None:
    assert coerce_value("12.5", "numeric") == 12.5
    assert coerce_value("abc", "numeric") is None
    assert coerce_value("", "numeric") is None
    assert coerce_value(3, "text") == "3"
    assert coerce_value("", "text") is None
    assert coerce_value(None, "text") is None


def test_materialize_creates_typed_table(storage: Storage) -> None:
    rows = [
        {"city": "Oslo", "temp": "3.5"},
        {"city": "Lima", "temp": "n/a"},
        {"city": "", "temp": "20"},
        {"city": "Pune", "temp": "31"},
        {"city": "Rome", "temp": "18"},
    ]
    schema = infer_schema(rows)

    with storage.transaction() as cur:
        table, count = SchemaMaterializer().materialize(cur, 1, schema, rows)

    assert table == "dataset_1"
    assert count == 5
    assert _column_types(storage, table) == {"city": "VARCHAR", "temp": "DECIMAL(38,1)"}

    with storage.cursor() as cur:
        stored = cur.execute(f"SELECT * FROM {table} ORDER BY rowid").fetchall()
    assert stored == [
        ("Oslo", 3.5),
        ("Lima", None),
        (None, 20.0),
        ("Pune", 31.0),
        ("Rome", 18.0),
    ]


def test_materialize_loads_all_rows_not_just_the_sample(storage: Storage) -> None:
    rows = [{"n": str(i)} for i in range(1234)]
    schema = infer_schema(rows)
    with storage.transaction() as cur:
        table, count = SchemaMaterializer().materialize(cur, 2, schema, rows)
    assert count == 1234
    with storage.cursor() as cur:
        assert cur.execute(f"SELECT COUNT(*), SUM(n) FROM {table}").fetchone() == (
            1234,
            float(sum(range(1234))),
        )


def test_hostile_column_names_are_quoted(storage: Storage) -> None:
    hostile = 'x"; DROP TABLE t; --'
    rows = [{hostile: "1", "select": "a"}, {hostile: "2", "select": "b"}]
    schema = infer_schema(rows)
    with storage.transaction() as cur:
        table, _ = SchemaMaterializer().materialize(cur, 3, schema, rows)
    assert list(_column_types(storage, table)) == [hostile, "select"]


def test_name_collision_raises_materialization_error(storage: Storage) -> None:
    rows = [{"a": "1"}]
    schema = infer_schema(rows)
    materializer = SchemaMaterializer()
    with storage.transaction() as cur:
        materializer.create_table(cur, 4, schema)
    with pytest.raises(MaterializationError):
        with storage.transaction() as cur:
            materializer.create_table(cur, 4, schema)


def test_failed_transaction_leaves_no_table(storage: Storage) -> None:
    rows = [{"a": "1"}]
    schema = infer_schema(rows)
    with pytest.raises(RuntimeError):
        with storage.transaction() as cur:
            SchemaMaterializer().materialize(cur, 5, schema, rows)
            raise RuntimeError("abort")
    assert _column_types(storage, "dataset_5") == {}


def test_to_decimal_keeps_written_digits() -> None:
    assert to_decimal(" 0.10 ") == Decimal("0.10")
    assert to_decimal("1e3") == Decimal("1000")
    assert to_decimal(2.5) == Decimal("2.5")
    assert to_decimal(7) == Decimal("7")
    assert to_decimal("n/a") is None
    assert to_decimal("") is None


def test_numeric_storage_type_sizes_scale_from_values() -> None:
    assert numeric_storage_type(["1", "2.25", None, "x"]) == "DECIMAL(38, 2)"
    assert numeric_storage_type(["10", "20"]) == "DECIMAL(38, 0)"
    # 19 fractional digits or 29 total digits no longer fit exactly
    assert numeric_storage_type(["0." + "1" * 19]) == "DOUBLE"
    assert numeric_storage_type(["1" * 29]) == "DOUBLE"


def test_wide_values_fall_back_to_double(storage: Storage) -> None:
    rows = [{"big": "1" * 29}, {"big": "2"}]
    schema = infer_schema(rows)
    with storage.transaction() as cur:
        table, _ = SchemaMaterializer().materialize(cur, 6, schema, rows)
    assert _column_types(storage, table) == {"big": "DOUBLE"}


def test_decimal_columns_sum_exactly(storage: Storage) -> None:
    rows = [{"p": "0.1"}, {"p": "0.2"}]
    schema = infer_schema(rows)
    with storage.transaction() as cur:
        table, _ = SchemaMaterializer().materialize(cur, 7, schema, rows)
    with storage.cursor() as cur:
        assert cur.execute(f"SELECT SUM(p) FROM {table}").fetchone()[0] == Decimal("0.3")
