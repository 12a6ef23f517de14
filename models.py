"""Typed payloads for creating and patching stored records.

Payloads accept camelCase keys (the API convention) or snake_case keys and
serialise back to camelCase records. Patch classes only report the fields the
caller actually supplied, so a partial update can never overwrite a column by
accident.
"""

import datetime
from typing import Annotated, Any, ClassVar, Mapping, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from field_mapper import to_camel_case

UTC = datetime.timezone.utc


def normalize_timestamp(value: Any) -> str:
    """Return ``value`` as an ISO-8601 UTC string with microsecond precision."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"invalid timestamp: {value!r}")
    elif isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time())
    if not isinstance(value, datetime.datetime):
        raise ValueError(f"invalid timestamp: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: Any) -> datetime.datetime:
    return datetime.datetime.fromisoformat(normalize_timestamp(value))


def now_iso() -> str:
    return normalize_timestamp(datetime.datetime.now(UTC))


Id = Annotated[int, Field(ge=1)]
Timestamp = Annotated[str, BeforeValidator(normalize_timestamp)]


class Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel_case,
        populate_by_name=True,
        extra="ignore",
    )

    def record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def coerce(cls, data: "Payload | Mapping[str, Any] | None"):
        if isinstance(data, cls):
            return data
        return cls.model_validate(dict(data or {}))


class Patch(Payload):
    """Base for sparse updates; ``id`` is never part of a patch."""

    NOT_NULL: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_nulls(self):
        for name in self.model_fields_set & self.NOT_NULL:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """camelCase mapping of the fields that were explicitly supplied."""
        return self.model_dump(by_alias=True, include=set(self.model_fields_set))

    def is_empty(self) -> bool:
        return not self.model_fields_set


def _order_to_sequence(data: Any) -> Any:
    # older clients send the position as "order"
    if isinstance(data, Mapping) and "order" in data and "sequence" not in data:
        data = dict(data)
        data["sequence"] = data.pop("order")
    return data


class NewUser(Payload):
    username: str = Field(min_length=1)
    password: str


class NewMeasurement(Payload):
    user_id: Id
    type: str = Field(min_length=1)
    value: float
    unit: str
    date: Timestamp = Field(default_factory=now_iso)


class MeasurementPatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"user_id", "type", "value", "unit", "date"})

    user_id: Optional[Id] = None
    type: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    date: Optional[Timestamp] = None


class NewExercise(Payload):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None


class ExercisePatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"name"})

    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class NewWorkoutProgram(Payload):
    user_id: Id
    name: str = Field(min_length=1)
    description: Optional[str] = None
    color_scheme: str = "primary"
    estimated_duration: Optional[str] = None


class WorkoutProgramPatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"user_id", "name", "color_scheme"})

    user_id: Optional[Id] = None
    name: Optional[str] = None
    description: Optional[str] = None
    color_scheme: Optional[str] = None
    estimated_duration: Optional[str] = None


class NewWorkoutExercise(Payload):
    workout_program_id: Id
    exercise_id: Id
    sets: Optional[int] = Field(default=None, ge=0)
    reps: Optional[int] = Field(default=None, ge=0)
    duration: Optional[str] = None
    sequence: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_order(cls, data: Any) -> Any:
        return _order_to_sequence(data)


class WorkoutExercisePatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"workout_program_id", "exercise_id", "sequence"})

    workout_program_id: Optional[Id] = None
    exercise_id: Optional[Id] = None
    sets: Optional[int] = Field(default=None, ge=0)
    reps: Optional[int] = Field(default=None, ge=0)
    duration: Optional[str] = None
    sequence: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_order(cls, data: Any) -> Any:
        return _order_to_sequence(data)


class NewWorkoutLog(Payload):
    user_id: Id
    workout_program_id: Id
    date: Timestamp = Field(default_factory=now_iso)


class WorkoutLogPatch(Patch):
    # completion is a one-way transition handled by complete_workout_log
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"workout_program_id", "date"})

    workout_program_id: Optional[Id] = None
    date: Optional[Timestamp] = None


class NewExerciseLog(Payload):
    workout_log_id: Id
    exercise_id: Id
    set_number: int = Field(ge=1)
    reps: Optional[int] = Field(default=None, ge=0)
    weight: Optional[float] = Field(default=None, ge=0)
    duration: Optional[str] = None
    completed: bool = False


class ExerciseLogPatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"exercise_id", "set_number", "completed"})

    exercise_id: Optional[Id] = None
    set_number: Optional[int] = Field(default=None, ge=1)
    reps: Optional[int] = Field(default=None, ge=0)
    weight: Optional[float] = Field(default=None, ge=0)
    duration: Optional[str] = None
    completed: Optional[bool] = None


class NewProgressPhoto(Payload):
    user_id: Id
    photo_url: str = Field(min_length=1)
    category: Optional[str] = None
    date: Timestamp = Field(default_factory=now_iso)
    notes: Optional[str] = None
    related_measurement_id: Optional[Id] = None


class ProgressPhotoPatch(Patch):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"photo_url", "date"})

    photo_url: Optional[str] = None
    category: Optional[str] = None
    date: Optional[Timestamp] = None
    notes: Optional[str] = None
    related_measurement_id: Optional[Id] = None
