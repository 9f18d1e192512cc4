from __future__ import annotations

from inference import NUMERIC, TEXT, infer_schema, parse_number


def _column(values: list) -> list[dict]:
    return [{"v": v} for v in values]


def test_parse_number_accepts_numeric_strings_and_numbers() -> None:
    assert parse_number(" 12 ") == 12.0
    assert parse_number("1e3") == 1000.0
    assert parse_number("-0.5") == -0.5
    assert parse_number(7) == 7.0
    assert parse_number(2.25) == 2.25


def test_parse_number_rejects_non_numbers() -> None:
    for value in ["abc", "", "   ", "N/A", "1_000", "nan", "inf", None, True]:
        assert parse_number(value) is None, value


def test_column_with_sparse_noise_is_numeric() -> None:
    schema = infer_schema(_column(["1", "2", "3", "4", "N/A"]))
    assert schema["v"].kind == NUMERIC


def test_threshold_boundary_at_eighty_percent() -> None:
    at_boundary = ["1"] * 80 + ["x"] * 20
    below = ["1"] * 79 + ["x"] * 21
    assert infer_schema(_column(at_boundary))["v"].kind == NUMERIC
    assert infer_schema(_column(below))["v"].kind == TEXT


def test_threshold_just_below_boundary_with_larger_sample() -> None:
    values = ["1"] * 799 + ["x"] * 201
    assert infer_schema(_column(values), sample_size=1000)["v"].kind == TEXT
    values = ["1"] * 800 + ["x"] * 200
    assert infer_schema(_column(values), sample_size=1000)["v"].kind == NUMERIC


def test_only_first_hundred_rows_are_sampled() -> None:
    rows = _column(["5"] * 100 + ["text"] * 500)
    schema = infer_schema(rows)
    assert schema["v"].kind == NUMERIC
    assert schema["v"].unique_values == 1


def test_nulls_are_excluded_from_the_ratio() -> None:
    schema = infer_schema(_column(["1", None, "", "  ", "2"]))
    col = schema["v"]
    assert col.kind == NUMERIC
    assert col.has_nulls is True
    assert col.unique_values == 2


def test_all_null_column_is_text() -> None:
    col = infer_schema(_column([None, "", None]))["v"]
    assert col.kind == TEXT
    assert col.has_nulls is True
    assert col.unique_values == 0
    assert col.sample_values == []


def test_sample_values_keep_insertion_order() -> None:
    col = infer_schema(_column(["b", "a", "b", "c", "d", "e", "f"]))["v"]
    assert col.sample_values == ["b", "a", "b", "c", "d"]
    assert col.unique_values == 6
    assert col.has_nulls is False


def test_columns_follow_first_row_order() -> None:
    rows = [{"z": "1", "a": "x", "m": "2"}, {"z": "3", "a": "y", "m": "4"}]
    assert list(infer_schema(rows).keys()) == ["z", "a", "m"]


def test_missing_keys_count_as_nulls() -> None:
    rows = [{"a": "1", "b": "x"}, {"a": "2"}]
    assert infer_schema(rows)["b"].has_nulls is True


def test_empty_sample_yields_empty_schema() -> None:
    assert infer_schema([]) == {}


def test_classification_is_deterministic() -> None:
    rows = [{"cat": c, "val": v} for c, v in [("a", "10"), ("a", "x"), ("b", "5")] * 7]
    first = {k: c.to_dict() for k, c in infer_schema(rows).items()}
    second = {k: c.to_dict() for k, c in infer_schema(list(rows)).items()}
    assert first == second


def test_to_dict_uses_wire_keys() -> None:
    payload = infer_schema(_column(["1", None]))["v"].to_dict()
    assert payload == {
        "kind": "numeric",
        "hasNulls": True,
        "uniqueValues": 1,
        "sampleValues": ["1"],
    }
