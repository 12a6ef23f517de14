"""Repository facade shared by the SQLite and in-memory backends.

:class:`Storage` implements every public operation once (payload validation,
referential rules, ordering and derived values) on top of a small set of
backend primitives. Records cross this boundary as camelCase dicts; missing
records are reported as ``None`` or ``False``, never as exceptions.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from db import (
    AsyncExerciseLogRepository,
    AsyncExerciseRepository,
    AsyncMeasurementRepository,
    AsyncProgressPhotoRepository,
    AsyncUserRepository,
    AsyncWorkoutExerciseRepository,
    AsyncWorkoutLogRepository,
    AsyncWorkoutProgramRepository,
    Database,
    require_exercise,
)
from errors import ConstraintViolationError, ReferentialIntegrityError, check_id
from measurement_history import latest_by_type, with_changes
from models import (
    ExerciseLogPatch,
    ExercisePatch,
    MeasurementPatch,
    NewExercise,
    NewExerciseLog,
    NewMeasurement,
    NewProgressPhoto,
    NewUser,
    NewWorkoutExercise,
    NewWorkoutLog,
    NewWorkoutProgram,
    ProgressPhotoPatch,
    WorkoutExercisePatch,
    WorkoutLogPatch,
    WorkoutProgramPatch,
)

logger = logging.getLogger(__name__)

USERS = "users"
MEASUREMENTS = "measurements"
EXERCISES = "exercises"
WORKOUT_PROGRAMS = "workout_programs"
WORKOUT_EXERCISES = "workout_exercises"
WORKOUT_LOGS = "workout_logs"
EXERCISE_LOGS = "exercise_logs"
PROGRESS_PHOTOS = "progress_photos"

Record = dict
Fields = Mapping[str, Any]
NEWEST_FIRST = (("date", True), ("id", True))


class Storage(ABC):
    """Contract for persisting fitness-tracking records."""

    # backend primitives -------------------------------------------------

    @abstractmethod
    async def _insert(self, table: str, record: Record) -> Record: ...

    @abstractmethod
    async def _get(self, table: str, record_id: int) -> Optional[Record]: ...

    @abstractmethod
    async def _find(
        self,
        table: str,
        filters: Optional[Fields] = None,
        order: Iterable[Tuple[str, bool]] = (),
    ) -> List[Record]: ...

    @abstractmethod
    async def _update(self, table: str, record_id: int, changes: Fields) -> Optional[Record]: ...

    @abstractmethod
    async def _delete(self, table: str, record_id: int) -> bool: ...

    @abstractmethod
    async def _delete_workout_program(self, program_id: int) -> bool:
        """Remove a program and all of its exercise links in one step."""

    @abstractmethod
    async def _workout_exercise_rows(self, program_id: int) -> List[Record]:
        """Links of a program with an ``exercise`` key (``None`` if missing)."""

    @abstractmethod
    async def _exercise_log_rows(self, workout_log_id: int) -> List[Record]:
        """Sets of a workout log with an ``exercise`` key (``None`` if missing)."""

    @abstractmethod
    async def _exercise_usage(self, exercise_id: int) -> int: ...

    @abstractmethod
    async def _append_workout_exercise(self, record: Record) -> Record:
        """Insert a link at ``max(sequence) + 1`` of its program, atomically."""

    @abstractmethod
    async def _reorder(self, program_id: int, order: List[int]) -> None: ...

    # users --------------------------------------------------------------

    async def get_user(self, user_id: int) -> Optional[Record]:
        return await self._get(USERS, check_id(user_id))

    async def get_user_by_username(self, username: str) -> Optional[Record]:
        rows = await self._find(USERS, {"username": username})
        return rows[0] if rows else None

    async def create_user(self, user: Fields) -> Record:
        payload = NewUser.coerce(user)
        if await self.get_user_by_username(payload.username) is not None:
            raise ConstraintViolationError(f"username {payload.username!r} already exists")
        return await self._insert(USERS, payload.record())

    # measurements -------------------------------------------------------

    async def list_measurements(self, user_id: int, type: Optional[str] = None) -> List[Record]:
        filters: dict[str, Any] = {"userId": check_id(user_id)}
        if type is not None:
            filters["type"] = type
        return await self._find(MEASUREMENTS, filters, NEWEST_FIRST)

    async def list_measurements_with_change(
        self, user_id: int, type: Optional[str] = None
    ) -> List[Record]:
        return with_changes(await self.list_measurements(user_id, type))

    async def latest_measurements(self, user_id: int) -> dict[str, Record]:
        return latest_by_type(await self.list_measurements(user_id))

    async def get_measurement(self, measurement_id: int) -> Optional[Record]:
        return await self._get(MEASUREMENTS, check_id(measurement_id))

    async def create_measurement(self, measurement: Fields) -> Record:
        return await self._insert(MEASUREMENTS, NewMeasurement.coerce(measurement).record())

    async def update_measurement(self, measurement_id: int, fields: Fields) -> Optional[Record]:
        patch = MeasurementPatch.coerce(fields)
        return await self._update(MEASUREMENTS, check_id(measurement_id), patch.changes())

    async def delete_measurement(self, measurement_id: int) -> bool:
        return await self._delete(MEASUREMENTS, check_id(measurement_id))

    # exercises ----------------------------------------------------------

    async def list_exercises(self, category: Optional[str] = None) -> List[Record]:
        filters = {"category": category} if category is not None else None
        return await self._find(EXERCISES, filters, (("id", False),))

    async def get_exercise(self, exercise_id: int) -> Optional[Record]:
        return await self._get(EXERCISES, check_id(exercise_id))

    async def create_exercise(self, exercise: Fields) -> Record:
        return await self._insert(EXERCISES, NewExercise.coerce(exercise).record())

    async def update_exercise(self, exercise_id: int, fields: Fields) -> Optional[Record]:
        patch = ExercisePatch.coerce(fields)
        return await self._update(EXERCISES, check_id(exercise_id), patch.changes())

    async def delete_exercise(self, exercise_id: int) -> bool:
        """Delete a catalogue entry that no program or workout log refers to."""
        check_id(exercise_id)
        uses = await self._exercise_usage(exercise_id)
        if uses:
            raise ReferentialIntegrityError(
                "exercise", exercise_id, f"still referenced by {uses} record(s)"
            )
        return await self._delete(EXERCISES, exercise_id)

    # workout programs ---------------------------------------------------

    async def list_workout_programs(self, user_id: int) -> List[Record]:
        return await self._find(WORKOUT_PROGRAMS, {"userId": check_id(user_id)}, (("id", False),))

    async def get_workout_program(self, program_id: int) -> Optional[Record]:
        return await self._get(WORKOUT_PROGRAMS, check_id(program_id))

    async def get_workout_program_with_exercises(self, program_id: int) -> Optional[Record]:
        program = await self.get_workout_program(program_id)
        if program is None:
            return None
        return {**program, "exercises": await self.list_workout_exercises(program_id)}

    async def create_workout_program(self, program: Fields) -> Record:
        return await self._insert(WORKOUT_PROGRAMS, NewWorkoutProgram.coerce(program).record())

    async def update_workout_program(self, program_id: int, fields: Fields) -> Optional[Record]:
        patch = WorkoutProgramPatch.coerce(fields)
        return await self._update(WORKOUT_PROGRAMS, check_id(program_id), patch.changes())

    async def delete_workout_program(self, program_id: int) -> bool:
        return await self._delete_workout_program(check_id(program_id))

    # workout exercises --------------------------------------------------

    async def list_workout_exercises(self, program_id: int) -> List[Record]:
        """Exercise links of a program joined with the catalogue, in sequence order."""
        rows = await self._workout_exercise_rows(check_id(program_id))
        return [require_exercise(r, "workout exercise") for r in rows]

    async def get_workout_exercise(self, link_id: int) -> Optional[Record]:
        return await self._get(WORKOUT_EXERCISES, check_id(link_id))

    async def _check_sequence(
        self, program_id: int, sequence: int, exclude_id: Optional[int] = None
    ) -> None:
        rows = await self._find(
            WORKOUT_EXERCISES, {"workoutProgramId": program_id, "sequence": sequence}
        )
        if any(r["id"] != exclude_id for r in rows):
            raise ConstraintViolationError(
                f"sequence {sequence} already used in workout program {program_id}"
            )

    async def _check_link_targets(self, program_id: int, exercise_id: int, owner_id: int) -> None:
        if await self._get(WORKOUT_PROGRAMS, program_id) is None:
            raise ReferentialIntegrityError(
                "workout exercise", owner_id, f"workout program {program_id} not found"
            )
        if await self._get(EXERCISES, exercise_id) is None:
            raise ReferentialIntegrityError(
                "workout exercise", owner_id, f"exercise {exercise_id} not found"
            )

    async def add_exercise_to_workout(self, link: Fields) -> Record:
        payload = NewWorkoutExercise.coerce(link)
        await self._check_link_targets(payload.workout_program_id, payload.exercise_id, 0)
        record = payload.record()
        if payload.sequence is None:
            created = await self._append_workout_exercise(record)
        else:
            await self._check_sequence(payload.workout_program_id, payload.sequence)
            created = await self._insert(WORKOUT_EXERCISES, record)
        logger.debug("added exercise link %s", created)
        return created

    async def update_workout_exercise(self, link_id: int, fields: Fields) -> Optional[Record]:
        patch = WorkoutExercisePatch.coerce(fields)
        current = await self.get_workout_exercise(link_id)
        if current is None:
            return None
        changes = patch.changes()
        program_id = changes.get("workoutProgramId", current["workoutProgramId"])
        exercise_id = changes.get("exerciseId", current["exerciseId"])
        if "workoutProgramId" in changes or "exerciseId" in changes:
            await self._check_link_targets(program_id, exercise_id, link_id)
        if "workoutProgramId" in changes or "sequence" in changes:
            sequence = changes.get("sequence", current["sequence"])
            await self._check_sequence(program_id, sequence, exclude_id=link_id)
        return await self._update(WORKOUT_EXERCISES, link_id, changes)

    async def remove_exercise_from_workout(self, link_id: int) -> bool:
        return await self._delete(WORKOUT_EXERCISES, check_id(link_id))

    async def reorder_workout_exercises(
        self, program_id: int, ordered_ids: List[int]
    ) -> Optional[List[Record]]:
        """Renumber a program's links 1..n following ``ordered_ids``."""
        if await self.get_workout_program(program_id) is None:
            return None
        links = await self._find(WORKOUT_EXERCISES, {"workoutProgramId": program_id})
        ids = [r["id"] for r in links]
        if sorted(ids) != sorted(ordered_ids):
            raise ConstraintViolationError(
                f"order must list every exercise of workout program {program_id} exactly once"
            )
        await self._reorder(program_id, list(ordered_ids))
        return await self.list_workout_exercises(program_id)

    # workout logs -------------------------------------------------------

    async def list_workout_logs(self, user_id: int) -> List[Record]:
        return await self._find(WORKOUT_LOGS, {"userId": check_id(user_id)}, NEWEST_FIRST)

    async def get_workout_log(self, log_id: int) -> Optional[Record]:
        return await self._get(WORKOUT_LOGS, check_id(log_id))

    async def create_workout_log(self, log: Fields) -> Record:
        payload = NewWorkoutLog.coerce(log)
        if await self._get(WORKOUT_PROGRAMS, payload.workout_program_id) is None:
            raise ReferentialIntegrityError(
                "workout log", 0, f"workout program {payload.workout_program_id} not found"
            )
        # sessions always start in progress; complete_workout_log ends them
        return await self._insert(WORKOUT_LOGS, {**payload.record(), "completed": False})

    async def update_workout_log(self, log_id: int, fields: Fields) -> Optional[Record]:
        check_id(log_id)
        patch = WorkoutLogPatch.coerce(fields)
        program_id = patch.changes().get("workoutProgramId")
        if program_id is not None and await self._get(WORKOUT_PROGRAMS, program_id) is None:
            raise ReferentialIntegrityError(
                "workout log", log_id, f"workout program {program_id} not found"
            )
        return await self._update(WORKOUT_LOGS, log_id, patch.changes())

    async def complete_workout_log(self, log_id: int) -> Optional[Record]:
        """Mark a session finished; there is no way back to in-progress."""
        return await self._update(WORKOUT_LOGS, check_id(log_id), {"completed": True})

    async def delete_workout_log(self, log_id: int) -> bool:
        return await self._delete(WORKOUT_LOGS, check_id(log_id))

    # exercise logs ------------------------------------------------------

    async def list_exercise_logs(self, workout_log_id: int) -> List[Record]:
        """Sets of a workout log joined with the catalogue, by set number."""
        rows = await self._exercise_log_rows(check_id(workout_log_id))
        return [require_exercise(r, "exercise log") for r in rows]

    async def get_exercise_log(self, log_id: int) -> Optional[Record]:
        return await self._get(EXERCISE_LOGS, check_id(log_id))

    async def _check_set_number(
        self, workout_log_id: int, exercise_id: int, set_number: int, exclude_id: Optional[int] = None
    ) -> None:
        rows = await self._find(
            EXERCISE_LOGS,
            {"workoutLogId": workout_log_id, "exerciseId": exercise_id, "setNumber": set_number},
        )
        if any(r["id"] != exclude_id for r in rows):
            raise ConstraintViolationError(
                f"set {set_number} of exercise {exercise_id} already logged in workout log {workout_log_id}"
            )

    async def create_exercise_log(self, log: Fields) -> Record:
        payload = NewExerciseLog.coerce(log)
        if await self._get(WORKOUT_LOGS, payload.workout_log_id) is None:
            raise ReferentialIntegrityError(
                "exercise log", 0, f"workout log {payload.workout_log_id} not found"
            )
        if await self._get(EXERCISES, payload.exercise_id) is None:
            raise ReferentialIntegrityError(
                "exercise log", 0, f"exercise {payload.exercise_id} not found"
            )
        await self._check_set_number(payload.workout_log_id, payload.exercise_id, payload.set_number)
        return await self._insert(EXERCISE_LOGS, payload.record())

    async def update_exercise_log(self, log_id: int, fields: Fields) -> Optional[Record]:
        patch = ExerciseLogPatch.coerce(fields)
        current = await self.get_exercise_log(log_id)
        if current is None:
            return None
        changes = patch.changes()
        if "exerciseId" in changes and await self._get(EXERCISES, changes["exerciseId"]) is None:
            raise ReferentialIntegrityError(
                "exercise log", log_id, f"exercise {changes['exerciseId']} not found"
            )
        if "exerciseId" in changes or "setNumber" in changes:
            await self._check_set_number(
                current["workoutLogId"],
                changes.get("exerciseId", current["exerciseId"]),
                changes.get("setNumber", current["setNumber"]),
                exclude_id=log_id,
            )
        return await self._update(EXERCISE_LOGS, log_id, changes)

    async def delete_exercise_log(self, log_id: int) -> bool:
        return await self._delete(EXERCISE_LOGS, check_id(log_id))

    # progress photos ----------------------------------------------------

    async def list_progress_photos(
        self, user_id: int, category: Optional[str] = None
    ) -> List[Record]:
        filters: dict[str, Any] = {"userId": check_id(user_id)}
        if category is not None:
            filters["category"] = category
        return await self._find(PROGRESS_PHOTOS, filters, NEWEST_FIRST)

    async def get_progress_photo(self, photo_id: int) -> Optional[Record]:
        return await self._get(PROGRESS_PHOTOS, check_id(photo_id))

    async def get_progress_photo_with_measurement(self, photo_id: int) -> Optional[Record]:
        """Photo plus its related measurement; a dangling link resolves to ``None``."""
        photo = await self.get_progress_photo(photo_id)
        if photo is None:
            return None
        measurement = None
        if photo["relatedMeasurementId"] is not None:
            measurement = await self._get(MEASUREMENTS, photo["relatedMeasurementId"])
            if measurement is None:
                logger.debug(
                    "photo %s points at missing measurement %s",
                    photo_id,
                    photo["relatedMeasurementId"],
                )
        return {**photo, "relatedMeasurement": measurement}

    async def create_progress_photo(self, photo: Fields) -> Record:
        return await self._insert(PROGRESS_PHOTOS, NewProgressPhoto.coerce(photo).record())

    async def update_progress_photo(self, photo_id: int, fields: Fields) -> Optional[Record]:
        patch = ProgressPhotoPatch.coerce(fields)
        return await self._update(PROGRESS_PHOTOS, check_id(photo_id), patch.changes())

    async def delete_progress_photo(self, photo_id: int) -> bool:
        return await self._delete(PROGRESS_PHOTOS, check_id(photo_id))


class SQLiteStorage(Storage):
    """Storage backed by an SQLite file through aiosqlite repositories."""

    def __init__(
        self,
        db_path: str = "fitness_tracker.db",
        default_username: str = "user",
        default_password: str = "password",
        seed_exercises: bool = True,
    ) -> None:
        self.db_path = db_path
        self.database = Database(db_path)
        self.database.seed(default_username, default_password, seed_exercises)
        self.users = AsyncUserRepository(db_path)
        self.measurements = AsyncMeasurementRepository(db_path)
        self.exercises = AsyncExerciseRepository(db_path)
        self.workout_programs = AsyncWorkoutProgramRepository(db_path)
        self.workout_exercises = AsyncWorkoutExerciseRepository(db_path)
        self.workout_logs = AsyncWorkoutLogRepository(db_path)
        self.exercise_logs = AsyncExerciseLogRepository(db_path)
        self.progress_photos = AsyncProgressPhotoRepository(db_path)
        self._repos = {
            repo.table: repo
            for repo in (
                self.users,
                self.measurements,
                self.exercises,
                self.workout_programs,
                self.workout_exercises,
                self.workout_logs,
                self.exercise_logs,
                self.progress_photos,
            )
        }

    async def _insert(self, table, record):
        return await self._repos[table].insert(record)

    async def _get(self, table, record_id):
        return await self._repos[table].get(record_id)

    async def _find(self, table, filters=None, order=()):
        return await self._repos[table].find(filters, order)

    async def _update(self, table, record_id, changes):
        return await self._repos[table].update(record_id, changes)

    async def _delete(self, table, record_id):
        return await self._repos[table].delete(record_id)

    async def _delete_workout_program(self, program_id):
        return await self.workout_programs.delete(program_id)

    async def _workout_exercise_rows(self, program_id):
        return await self.workout_exercises.fetch_for_program(program_id)

    async def _exercise_log_rows(self, workout_log_id):
        return await self.exercise_logs.fetch_for_workout_log(workout_log_id)

    async def _exercise_usage(self, exercise_id):
        return await self.exercises.usage_count(exercise_id)

    async def _reorder(self, program_id, order):
        await self.workout_exercises.reorder(program_id, order)

    async def _append_workout_exercise(self, record):
        return await self.workout_exercises.append(record)


def create_storage(settings) -> SQLiteStorage:
    """Build the production storage from validated :class:`AppSettings`."""
    logger.info("using SQLite storage at %s", settings.db_path)
    return SQLiteStorage(
        settings.db_path,
        default_username=settings.default_username,
        default_password=settings.default_password,
        seed_exercises=settings.seed_exercises,
    )
