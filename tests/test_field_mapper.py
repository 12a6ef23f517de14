import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from field_mapper import camel_keys, snake_keys, to_camel_case, to_snake_case


def test_to_snake_case():
    assert to_snake_case("workoutProgramId") == "workout_program_id"
    assert to_snake_case("photoUrl") == "photo_url"
    assert to_snake_case("id") == "id"
    assert to_snake_case("set_number") == "set_number"


def test_leading_capital_has_no_underscore():
    assert to_snake_case("UserId") == "user_id"


def test_to_camel_case():
    assert to_camel_case("related_measurement_id") == "relatedMeasurementId"
    assert to_camel_case("colorScheme") == "colorScheme"
    assert to_camel_case("id") == "id"


def test_nested_structures():
    data = {
        "workoutProgramId": 1,
        "exercises": [{"exerciseId": 2, "tags": ["upperBody"]}],
        "pair": ({"setNumber": 1},),
    }
    assert snake_keys(data) == {
        "workout_program_id": 1,
        "exercises": [{"exercise_id": 2, "tags": ["upperBody"]}],
        "pair": ({"set_number": 1},),
    }
    assert camel_keys(snake_keys(data)) == data


def test_leaves_are_untouched():
    assert snake_keys("photoUrl") == "photoUrl"
    assert snake_keys([1, "aB"]) == [1, "aB"]
    assert snake_keys(None) is None


def test_snake_case_is_idempotent():
    for key in ("workoutProgramId", "relatedMeasurementId", "user_id", "id"):
        assert to_snake_case(to_snake_case(key)) == to_snake_case(key)
