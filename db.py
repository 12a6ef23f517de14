import logging
import os
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Iterable, List, Optional, Tuple

import aiosqlite

from errors import (
    ConstraintViolationError,
    ReferentialIntegrityError,
    StorageUnavailableError,
)
from field_mapper import camel_keys, snake_keys, to_snake_case
from migrate import rename_legacy_columns
from partial_update import build_update, quote_identifier

logger = logging.getLogger(__name__)

DEFAULT_EXERCISES = [
    ("Bench Press", "Upper Body", "Barbell press on a flat bench"),
    ("Bent-Over Row", "Upper Body", "Barbell row to the waist in a hinged position"),
    ("Biceps Curl", "Upper Body", "Dumbbell curl for the biceps"),
    ("Triceps Extension", "Upper Body", "Dumbbell extension for the triceps"),
    ("Shoulder Press", "Upper Body", "Overhead dumbbell press for the shoulders"),
    ("Barbell Squat", "Lower Body", "Classic back squat with a barbell"),
    ("Leg Extension", "Lower Body", "Knee extension on the machine"),
    ("Leg Curl", "Lower Body", "Knee flexion on the machine"),
    ("Calf Raise", "Lower Body", "Standing raise onto the toes for the calves"),
    ("Running", "Cardio", "Treadmill or outdoor run"),
    ("Crunches", "Core", "Abdominal crunches"),
    ("Plank", "Core", "Static plank hold"),
    ("Pull-Up", "Upper Body", "Classic pull-up on a bar"),
    ("Push-Up", "Upper Body", "Push-up from the floor"),
    ("Bodyweight Squat", "Lower Body", "Squat without added weight"),
]


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    password TEXT NOT NULL
                );""",
            ["id", "username", "password"],
        ),
        "measurements": (
            """CREATE TABLE measurements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    value REAL NOT NULL,
                    unit TEXT NOT NULL,
                    date TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id)
                );""",
            ["id", "user_id", "type", "value", "unit", "date"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    category TEXT,
                    description TEXT
                );""",
            ["id", "name", "category", "description"],
        ),
        "workout_programs": (
            """CREATE TABLE workout_programs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    color_scheme TEXT NOT NULL DEFAULT 'primary',
                    estimated_duration TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id)
                );""",
            [
                "id",
                "user_id",
                "name",
                "description",
                "color_scheme",
                "estimated_duration",
            ],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_program_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    sets INTEGER,
                    reps INTEGER,
                    duration TEXT,
                    sequence INTEGER NOT NULL,
                    FOREIGN KEY(workout_program_id) REFERENCES workout_programs(id),
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            [
                "id",
                "workout_program_id",
                "exercise_id",
                "sets",
                "reps",
                "duration",
                "sequence",
            ],
        ),
        "workout_logs": (
            """CREATE TABLE workout_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    workout_program_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(workout_program_id) REFERENCES workout_programs(id)
                );""",
            ["id", "user_id", "workout_program_id", "date", "completed"],
        ),
        "exercise_logs": (
            """CREATE TABLE exercise_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_log_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER,
                    weight REAL,
                    duration TEXT,
                    completed INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(workout_log_id) REFERENCES workout_logs(id),
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            [
                "id",
                "workout_log_id",
                "exercise_id",
                "set_number",
                "reps",
                "weight",
                "duration",
                "completed",
            ],
        ),
        "progress_photos": (
            """CREATE TABLE progress_photos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    photo_url TEXT NOT NULL,
                    category TEXT,
                    date TEXT NOT NULL,
                    notes TEXT,
                    related_measurement_id INTEGER,
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(related_measurement_id) REFERENCES measurements(id)
                );""",
            [
                "id",
                "user_id",
                "photo_url",
                "category",
                "date",
                "notes",
                "related_measurement_id",
            ],
        ),
    }

    _INDEXES = [
        ("idx_measurements_user_id", "measurements", "user_id"),
        ("idx_measurements_type", "measurements", "type"),
        ("idx_workout_programs_user_id", "workout_programs", "user_id"),
        ("idx_workout_exercises_workout_program_id", "workout_exercises", "workout_program_id"),
        ("idx_workout_exercises_exercise_id", "workout_exercises", "exercise_id"),
        ("idx_workout_logs_user_id", "workout_logs", "user_id"),
        ("idx_workout_logs_workout_program_id", "workout_logs", "workout_program_id"),
        ("idx_exercise_logs_workout_log_id", "exercise_logs", "workout_log_id"),
        ("idx_exercise_logs_exercise_id", "exercise_logs", "exercise_id"),
        ("idx_progress_photos_user_id", "progress_photos", "user_id"),
        ("idx_progress_photos_category", "progress_photos", "category"),
        ("idx_progress_photos_related_measurement_id", "progress_photos", "related_measurement_id"),
    ]

    _UNIQUE_INDEXES = [
        ("uq_workout_exercises_sequence", "workout_exercises", ("workout_program_id", "sequence")),
        ("uq_exercise_logs_set", "exercise_logs", ("workout_log_id", "exercise_id", "set_number")),
    ]

    def __init__(self, db_path: str = "fitness_tracker.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            logger.error("cannot open database %s: %s", self._db_path, e)
            raise StorageUnavailableError(str(e)) from e
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            logger.error("database error on %s: %s", self._db_path, e)
            raise StorageUnavailableError(str(e)) from e
        finally:
            connection.close()

    @classmethod
    def columns(cls, table: str) -> List[str]:
        return cls._TABLE_DEFINITIONS[table][1]

    def _ensure_schema(self) -> None:
        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            rename_legacy_columns(conn)
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for name, table, column in self._INDEXES:
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {name} ON {table}({column});"
                )
            for name, table, columns in self._UNIQUE_INDEXES:
                conn.execute(
                    f"CREATE UNIQUE INDEX IF NOT EXISTS {name} ON {table}({', '.join(columns)});"
                )

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("rebuilding table %s with columns %s", table, columns)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(quote_identifier(c) for c in common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "color_scheme":
                        return "'primary'"
                    if col == "completed":
                        return "0"
                    if col == "sequence":
                        return "id"
                    if col == "date":
                        return "strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now')"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def seed(
        self,
        username: str = "user",
        password: str = "password",
        exercises: bool = True,
    ) -> None:
        """Insert the default exercise catalogue and user into an empty database."""
        with self._connection() as conn:
            if exercises:
                count = conn.execute("SELECT COUNT(*) FROM exercises;").fetchone()[0]
                if count == 0:
                    logger.info("adding %d default exercises", len(DEFAULT_EXERCISES))
                    conn.executemany(
                        "INSERT INTO exercises (name, category, description) VALUES (?, ?, ?);",
                        DEFAULT_EXERCISES,
                    )
            count = conn.execute("SELECT COUNT(*) FROM users;").fetchone()[0]
            if count == 0:
                logger.info("creating default user %s", username)
                conn.execute(
                    "INSERT INTO users (username, password) VALUES (?, ?);",
                    (username, password),
                )


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        try:
            conn = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            logger.error("cannot open database %s: %s", self._db_path, e)
            raise StorageUnavailableError(str(e)) from e
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
            await conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConstraintViolationError(str(e)) from e
        except sqlite3.Error as e:
            logger.error("database error on %s: %s", self._db_path, e)
            raise StorageUnavailableError(str(e)) from e
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous repository helpers using aiosqlite."""

    def __init__(self, db_path: str = "fitness_tracker.db") -> None:
        # schema is owned by Database; build one before any repository
        self._db_path = db_path

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[aiosqlite.Row]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()


def _to_record(row: Any) -> dict:
    record = camel_keys(dict(row))
    if "completed" in record:
        record["completed"] = bool(record["completed"])
    return record


class AsyncTableRepository(AsyncBaseRepository):
    """CRUD over a single table; records use camelCase keys."""

    table = ""

    @property
    def table_columns(self) -> List[str]:
        return self.columns(self.table)

    async def insert(self, record: dict) -> dict:
        row = {k: v for k, v in snake_keys(record).items() if k != "id"}
        cols = list(row)
        query = (
            f"INSERT INTO {self.table} ({', '.join(quote_identifier(c) for c in cols)}) "
            f"VALUES ({', '.join('?' for _ in cols)});"
        )
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, tuple(row[c] for c in cols))
            new_id = cursor.lastrowid
            cursor = await conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ?;", (new_id,)
            )
            return _to_record(await cursor.fetchone())

    async def get(self, record_id: int) -> Optional[dict]:
        rows = await self.fetch_all(
            f"SELECT * FROM {self.table} WHERE id = ?;", (record_id,)
        )
        return _to_record(rows[0]) if rows else None

    async def find(
        self,
        filters: Optional[dict] = None,
        order: Iterable[Tuple[str, bool]] = (),
    ) -> List[dict]:
        """Return rows matching every ``filters`` item, sorted by ``order``.

        ``order`` holds ``(camelCaseColumn, descending)`` pairs.
        """
        allowed = set(self.table_columns)
        query = f"SELECT * FROM {self.table}"
        params: list[Any] = []
        where_clauses: list[str] = []
        for key, value in snake_keys(dict(filters or {})).items():
            if key not in allowed:
                raise ValueError(f"unknown column for {self.table}: {key}")
            where_clauses.append(f"{quote_identifier(key)} = ?")
            params.append(value)
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        sort = []
        for key, descending in order:
            column = to_snake_case(key)
            if column not in allowed:
                raise ValueError(f"unknown column for {self.table}: {column}")
            sort.append(f"{quote_identifier(column)} {'DESC' if descending else 'ASC'}")
        if sort:
            query += " ORDER BY " + ", ".join(sort)
        query += ";"
        rows = await self.fetch_all(query, tuple(params))
        return [_to_record(r) for r in rows]

    async def update(self, record_id: int, changes: dict) -> Optional[dict]:
        compiled = build_update(self.table, record_id, changes, self.table_columns)
        async with self._async_connection() as conn:
            if compiled is not None:
                cursor = await conn.execute(*compiled)
                if cursor.rowcount == 0:
                    return None
            cursor = await conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ?;", (record_id,)
            )
            row = await cursor.fetchone()
            return _to_record(row) if row is not None else None

    async def delete(self, record_id: int) -> bool:
        async with self._async_connection() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {self.table} WHERE id = ?;", (record_id,)
            )
            return cursor.rowcount > 0


class AsyncUserRepository(AsyncTableRepository):
    table = "users"


class AsyncMeasurementRepository(AsyncTableRepository):
    table = "measurements"


class AsyncExerciseRepository(AsyncTableRepository):
    table = "exercises"

    async def usage_count(self, exercise_id: int) -> int:
        rows = await self.fetch_all(
            "SELECT (SELECT COUNT(*) FROM workout_exercises WHERE exercise_id = ?)"
            " + (SELECT COUNT(*) FROM exercise_logs WHERE exercise_id = ?);",
            (exercise_id, exercise_id),
        )
        return int(rows[0][0])


class AsyncWorkoutProgramRepository(AsyncTableRepository):
    table = "workout_programs"

    async def delete(self, record_id: int) -> bool:
        async with self._async_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM workout_exercises WHERE workout_program_id = ?;",
                (record_id,),
            )
            removed_links = cursor.rowcount
            cursor = await conn.execute(
                "DELETE FROM workout_programs WHERE id = ?;", (record_id,)
            )
            if cursor.rowcount == 0:
                return False
        logger.info(
            "deleted workout program %s with %d exercise links", record_id, removed_links
        )
        return True


def _split_joined(row: Any, prefix: str = "exercise__") -> dict:
    data = dict(row)
    nested = {
        k[len(prefix):]: data.pop(k) for k in list(data) if k.startswith(prefix)
    }
    record = _to_record(data)
    record["exercise"] = None if nested["id"] is None else camel_keys(nested)
    return record


_EXERCISE_COLUMNS = (
    "e.id AS exercise__id, e.name AS exercise__name, "
    "e.category AS exercise__category, e.description AS exercise__description"
)


class AsyncWorkoutExerciseRepository(AsyncTableRepository):
    table = "workout_exercises"

    async def fetch_for_program(self, program_id: int) -> List[dict]:
        rows = await self.fetch_all(
            f"SELECT we.*, {_EXERCISE_COLUMNS} FROM workout_exercises we "
            "LEFT JOIN exercises e ON e.id = we.exercise_id "
            "WHERE we.workout_program_id = ? ORDER BY we.sequence, we.id;",
            (program_id,),
        )
        return [_split_joined(r) for r in rows]

    async def append(self, record: dict) -> dict:
        """Insert ``record`` after the program's current last exercise.

        The position is read and written by the same statement, so
        concurrent appends to one program never share a sequence.
        """
        row = {
            k: v for k, v in snake_keys(record).items() if k not in ("id", "sequence")
        }
        cols = list(row)
        query = (
            f"INSERT INTO workout_exercises "
            f"({', '.join(quote_identifier(c) for c in cols)}, \"sequence\") "
            f"SELECT {', '.join('?' for _ in cols)}, COALESCE(MAX(sequence), 0) + 1 "
            "FROM workout_exercises WHERE workout_program_id = ?;"
        )
        params = tuple(row[c] for c in cols) + (row["workout_program_id"],)
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            cursor = await conn.execute(
                "SELECT * FROM workout_exercises WHERE id = ?;", (cursor.lastrowid,)
            )
            return _to_record(await cursor.fetchone())

    async def reorder(self, program_id: int, order: List[int]) -> None:
        async with self._async_connection() as conn:
            # park every link on a negative slot first; (program, sequence) is unique
            await conn.execute(
                "UPDATE workout_exercises SET sequence = -sequence - 1 WHERE workout_program_id = ?;",
                (program_id,),
            )
            for position, link_id in enumerate(order, start=1):
                await conn.execute(
                    "UPDATE workout_exercises SET sequence = ? WHERE id = ? AND workout_program_id = ?;",
                    (position, link_id, program_id),
                )


class AsyncWorkoutLogRepository(AsyncTableRepository):
    table = "workout_logs"


class AsyncExerciseLogRepository(AsyncTableRepository):
    table = "exercise_logs"

    async def fetch_for_workout_log(self, workout_log_id: int) -> List[dict]:
        rows = await self.fetch_all(
            f"SELECT el.*, {_EXERCISE_COLUMNS} FROM exercise_logs el "
            "LEFT JOIN exercises e ON e.id = el.exercise_id "
            "WHERE el.workout_log_id = ? ORDER BY el.set_number, el.id;",
            (workout_log_id,),
        )
        return [_split_joined(r) for r in rows]


class AsyncProgressPhotoRepository(AsyncTableRepository):
    table = "progress_photos"


def require_exercise(record: dict, owner: str) -> dict:
    """Raise if a joined row lost its exercise catalogue entry."""
    if record["exercise"] is None:
        raise ReferentialIntegrityError(
            owner, record["id"], f"exercise {record['exerciseId']} not found"
        )
    return record
