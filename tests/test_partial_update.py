import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database
from partial_update import apply_changes, build_update, quote_identifier

LINK_COLUMNS = Database.columns("workout_exercises")


def test_only_supplied_columns_are_set():
    sql, params = build_update(
        "measurements", 7, {"value": 80.5}, Database.columns("measurements")
    )
    assert sql == 'UPDATE "measurements" SET "value" = ? WHERE id = ?;'
    assert params == (80.5, 7)


def test_camel_case_keys_are_translated():
    sql, params = build_update(
        "workout_exercises", 3, {"workoutProgramId": 2, "sets": 4}, LINK_COLUMNS
    )
    assert '"workout_program_id" = ?' in sql
    assert '"sets" = ?' in sql
    assert params == (2, 4, 3)


def test_id_is_skipped_and_empty_patch_compiles_to_nothing():
    assert build_update("workout_exercises", 1, {}, LINK_COLUMNS) is None
    assert build_update("workout_exercises", 1, {"id": 9}, LINK_COLUMNS) is None


def test_explicit_null_is_bound():
    sql, params = build_update("workout_exercises", 1, {"duration": None}, LINK_COLUMNS)
    assert params == (None, 1)


def test_unknown_column_rejected():
    with pytest.raises(ValueError):
        build_update("workout_exercises", 1, {"bogus; DROP TABLE x": 1}, LINK_COLUMNS)


def test_quote_identifier():
    assert quote_identifier("order") == '"order"'
    with pytest.raises(ValueError):
        quote_identifier('a"b')


def test_apply_changes():
    record = {"id": 1, "name": "Push", "colorScheme": "primary"}
    merged = apply_changes(record, {"color_scheme": "red", "id": 5})
    assert merged == {"id": 1, "name": "Push", "colorScheme": "red"}
    assert record["colorScheme"] == "primary"
