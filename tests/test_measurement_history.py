import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from measurement_history import latest_by_type, with_changes


def m(id, type, value, date):
    return {"id": id, "userId": 1, "type": type, "value": value, "unit": "kg", "date": date}


def test_empty_input():
    assert with_changes([]) == []
    assert latest_by_type([]) == {}


def test_single_record_has_no_change():
    result = with_changes([m(1, "weight", 80, "2024-01-01")])
    assert result[0]["change"] is None


def test_change_is_difference_to_previous_of_same_type():
    rows = [
        m(1, "weight", 80, "2024-01-01"),
        m(2, "chest", 100, "2024-01-05"),
        m(3, "weight", 82, "2024-01-10"),
        m(4, "chest", 99, "2024-01-15"),
    ]
    result = with_changes(rows)
    assert [r["id"] for r in result] == [4, 3, 2, 1]
    changes = {r["id"]: r["change"] for r in result}
    assert changes[4] == pytest.approx(-1)
    assert changes[3] == pytest.approx(2)
    assert changes[2] is None
    assert changes[1] is None


def test_input_order_does_not_matter_and_is_not_mutated():
    rows = [m(2, "weight", 81, "2024-02-01"), m(1, "weight", 80, "2024-01-01")]
    result = with_changes(reversed(rows))
    assert [r["change"] for r in result] == [pytest.approx(1), None]
    assert "change" not in rows[0]


def test_mixed_timestamp_formats_compare_chronologically():
    rows = [
        m(1, "weight", 80, "2024-01-01T23:00:00Z"),
        m(2, "weight", 81, "2024-01-02T00:30:00+02:00"),
    ]
    result = with_changes(rows)
    assert [r["id"] for r in result] == [1, 2]


def test_equal_dates_newest_id_first():
    rows = [m(1, "weight", 80, "2024-01-01"), m(2, "weight", 79, "2024-01-01")]
    result = with_changes(rows)
    assert [r["id"] for r in result] == [2, 1]
    assert result[0]["change"] == pytest.approx(-1)


def test_latest_by_type():
    rows = [
        m(1, "weight", 80, "2024-01-01"),
        m(2, "weight", 79, "2024-02-01"),
        m(3, "waist", 90, "2024-01-15"),
    ]
    latest = latest_by_type(rows)
    assert latest["weight"]["id"] == 2
    assert latest["weight"]["change"] == pytest.approx(-1)
    assert latest["waist"]["change"] is None
