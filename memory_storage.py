"""Dict-backed storage used by tests and the demo command."""

import copy
import itertools
import logging
from typing import Dict, List

from db import DEFAULT_EXERCISES
from errors import ConstraintViolationError
from partial_update import apply_changes
from storage import (
    EXERCISE_LOGS,
    EXERCISES,
    PROGRESS_PHOTOS,
    USERS,
    WORKOUT_EXERCISES,
    WORKOUT_LOGS,
    WORKOUT_PROGRAMS,
    MEASUREMENTS,
    Storage,
)

logger = logging.getLogger(__name__)

TABLES = (
    USERS,
    MEASUREMENTS,
    EXERCISES,
    WORKOUT_PROGRAMS,
    WORKOUT_EXERCISES,
    WORKOUT_LOGS,
    EXERCISE_LOGS,
    PROGRESS_PHOTOS,
)

UNIQUE_KEYS = {
    USERS: [("username",)],
    WORKOUT_EXERCISES: [("workoutProgramId", "sequence")],
    EXERCISE_LOGS: [("workoutLogId", "exerciseId", "setNumber")],
}


class MemStorage(Storage):
    """Keeps every table in a dict keyed by id.

    No method awaits while it mutates state, so each operation is atomic
    with respect to other tasks on the same event loop. Records handed out
    are copies.
    """

    def __init__(
        self,
        default_username: str = "user",
        default_password: str = "password",
        seed_exercises: bool = True,
    ) -> None:
        self._tables: Dict[str, Dict[int, dict]] = {t: {} for t in TABLES}
        self._ids = {t: itertools.count(1) for t in TABLES}
        if seed_exercises:
            for name, category, description in DEFAULT_EXERCISES:
                self._store(
                    EXERCISES,
                    {"name": name, "category": category, "description": description},
                )
        self._store(USERS, {"username": default_username, "password": default_password})

    def _check_unique(self, table: str, record: dict, record_id: int = 0) -> None:
        for keys in UNIQUE_KEYS.get(table, ()):
            wanted = tuple(record.get(k) for k in keys)
            for other_id, other in self._tables[table].items():
                if other_id != record_id and tuple(other.get(k) for k in keys) == wanted:
                    raise ConstraintViolationError(
                        f"UNIQUE constraint failed: {table}.{', '.join(keys)}"
                    )

    def _store(self, table: str, record: dict) -> dict:
        self._check_unique(table, record)
        new_id = next(self._ids[table])
        stored = {**copy.deepcopy(record), "id": new_id}
        self._tables[table][new_id] = stored
        return copy.deepcopy(stored)

    async def _insert(self, table, record):
        record = {k: v for k, v in record.items() if k != "id"}
        return self._store(table, record)

    async def _get(self, table, record_id):
        record = self._tables[table].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def _find(self, table, filters=None, order=()):
        filters = filters or {}
        rows = [
            r
            for r in self._tables[table].values()
            if all(r.get(k) == v for k, v in filters.items())
        ]
        # stable sorts applied from the least significant key
        for key, descending in reversed(list(order)):
            rows.sort(key=lambda r: (r.get(key) is None, r.get(key)), reverse=descending)
        return copy.deepcopy(rows)

    async def _update(self, table, record_id, changes):
        current = self._tables[table].get(record_id)
        if current is None:
            return None
        updated = apply_changes(current, changes)
        self._check_unique(table, updated, record_id)
        self._tables[table][record_id] = updated
        return copy.deepcopy(updated)

    async def _delete(self, table, record_id):
        return self._tables[table].pop(record_id, None) is not None

    async def _delete_workout_program(self, program_id):
        if self._tables[WORKOUT_PROGRAMS].pop(program_id, None) is None:
            return False
        links = self._tables[WORKOUT_EXERCISES]
        doomed = [i for i, r in links.items() if r["workoutProgramId"] == program_id]
        for link_id in doomed:
            del links[link_id]
        logger.info(
            "deleted workout program %s with %d exercise links", program_id, len(doomed)
        )
        return True

    def _joined(self, rows: List[dict]) -> List[dict]:
        exercises = self._tables[EXERCISES]
        return [
            {**copy.deepcopy(r), "exercise": copy.deepcopy(exercises.get(r["exerciseId"]))}
            for r in rows
        ]

    async def _workout_exercise_rows(self, program_id):
        rows = [
            r
            for r in self._tables[WORKOUT_EXERCISES].values()
            if r["workoutProgramId"] == program_id
        ]
        rows.sort(key=lambda r: (r["sequence"], r["id"]))
        return self._joined(rows)

    async def _exercise_log_rows(self, workout_log_id):
        rows = [
            r
            for r in self._tables[EXERCISE_LOGS].values()
            if r["workoutLogId"] == workout_log_id
        ]
        rows.sort(key=lambda r: (r["setNumber"], r["id"]))
        return self._joined(rows)

    async def _exercise_usage(self, exercise_id):
        return sum(
            1
            for table in (WORKOUT_EXERCISES, EXERCISE_LOGS)
            for r in self._tables[table].values()
            if r["exerciseId"] == exercise_id
        )

    async def _append_workout_exercise(self, record):
        program_id = record["workoutProgramId"]
        last = max(
            (
                r["sequence"]
                for r in self._tables[WORKOUT_EXERCISES].values()
                if r["workoutProgramId"] == program_id
            ),
            default=0,
        )
        record = {k: v for k, v in record.items() if k != "id"}
        return self._store(WORKOUT_EXERCISES, {**record, "sequence": last + 1})

    async def _reorder(self, program_id, order):
        links = self._tables[WORKOUT_EXERCISES]
        for position, link_id in enumerate(order, start=1):
            link = links.get(link_id)
            if link is not None and link["workoutProgramId"] == program_id:
                link["sequence"] = position


def create_memory_storage(settings=None) -> MemStorage:
    if settings is None:
        return MemStorage()
    return MemStorage(
        default_username=settings.default_username,
        default_password=settings.default_password,
        seed_exercises=settings.seed_exercises,
    )
