import os
import sqlite3
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    AsyncBaseRepository,
    AsyncExerciseLogRepository,
    AsyncExerciseRepository,
    AsyncMeasurementRepository,
    AsyncWorkoutExerciseRepository,
    AsyncWorkoutProgramRepository,
    Database,
)
from errors import ConstraintViolationError, StorageUnavailableError
from storage import SQLiteStorage


def _database(tmp_path, name="fitness.db") -> str:
    db_file = str(tmp_path / name)
    Database(db_file)
    return db_file


class NumberRepository(AsyncBaseRepository):
    async def init_db(self) -> None:
        async with self._async_connection() as conn:
            await conn.execute("CREATE TABLE IF NOT EXISTS numbers (val INTEGER UNIQUE)")

    async def add(self, val: int) -> int:
        return await self.execute("INSERT INTO numbers (val) VALUES (?)", (val,))

    async def all(self):
        rows = await self.fetch_all("SELECT val FROM numbers")
        return [r[0] for r in rows]


@pytest.mark.asyncio
async def test_async_repository(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    await repo.init_db()
    await repo.add(5)
    assert await repo.all() == [5]


@pytest.mark.asyncio
async def test_integrity_errors_become_constraint_violations(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    await repo.init_db()
    await repo.add(5)
    with pytest.raises(ConstraintViolationError) as info:
        await repo.add(5)
    assert isinstance(info.value.__cause__, sqlite3.IntegrityError)
    assert await repo.all() == [5]


@pytest.mark.asyncio
async def test_sql_errors_become_storage_unavailable(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    with pytest.raises(StorageUnavailableError) as info:
        await repo.fetch_all("SELECT * FROM missing_table")
    assert isinstance(info.value.__cause__, sqlite3.Error)


@pytest.mark.asyncio
async def test_rows_come_back_camel_cased(tmp_path):
    repo = AsyncMeasurementRepository(_database(tmp_path))
    record = await repo.insert(
        {"userId": 1, "type": "weight", "value": 80.0, "unit": "kg", "date": "2024-01-01"}
    )
    assert record == {
        "id": 1,
        "userId": 1,
        "type": "weight",
        "value": 80.0,
        "unit": "kg",
        "date": "2024-01-01",
    }
    assert await repo.find({"type": "weight"}) == [record]
    assert await repo.find({"type": "waist"}) == []


@pytest.mark.asyncio
async def test_find_rejects_unknown_columns(tmp_path):
    repo = AsyncMeasurementRepository(_database(tmp_path))
    with pytest.raises(ValueError):
        await repo.find({"nope": 1})
    with pytest.raises(ValueError):
        await repo.find(order=[("nope", True)])


@pytest.mark.asyncio
async def test_sequence_column_is_quoted_safely(tmp_path):
    db_file = _database(tmp_path)
    programs = AsyncWorkoutProgramRepository(db_file)
    links = AsyncWorkoutExerciseRepository(db_file)
    exercises = AsyncExerciseRepository(db_file)
    ex = await exercises.insert({"name": "Squat"})
    program = await programs.insert({"userId": 1, "name": "Legs", "colorScheme": "primary"})
    link = await links.append({"workoutProgramId": program["id"], "exerciseId": ex["id"]})
    assert link["sequence"] == 1
    second = await links.append(
        {"workoutProgramId": program["id"], "exerciseId": ex["id"], "sequence": 9}
    )
    assert second["sequence"] == 2
    updated = await links.update(link["id"], {"sequence": 4})
    assert updated["sequence"] == 4
    rows = await links.fetch_for_program(program["id"])
    assert rows[0]["exercise"] == {"id": ex["id"], "name": "Squat", "category": None, "description": None}
    assert await exercises.usage_count(ex["id"]) == 2


@pytest.mark.asyncio
async def test_joined_row_without_exercise(tmp_path):
    db_file = _database(tmp_path)
    links = AsyncWorkoutExerciseRepository(db_file)
    await links.insert({"workoutProgramId": 1, "exerciseId": 42, "sequence": 1})
    rows = await links.fetch_for_program(1)
    assert rows[0]["exercise"] is None


@pytest.mark.asyncio
async def test_program_delete_cascades_links(tmp_path):
    db_file = _database(tmp_path)
    programs = AsyncWorkoutProgramRepository(db_file)
    links = AsyncWorkoutExerciseRepository(db_file)
    program = await programs.insert({"userId": 1, "name": "Legs", "colorScheme": "primary"})
    await links.insert({"workoutProgramId": program["id"], "exerciseId": 1, "sequence": 1})
    assert await programs.delete(program["id"]) is True
    assert await links.find({"workoutProgramId": program["id"]}) == []
    assert await programs.delete(program["id"]) is False


def test_seed_only_fills_empty_tables(tmp_path):
    db_file = str(tmp_path / "seed.db")
    db = Database(db_file)
    db.seed()
    db.seed("other", "pw")
    conn = sqlite3.connect(db_file)
    assert conn.execute("SELECT username FROM users").fetchall() == [("user",)]
    assert conn.execute("SELECT COUNT(*) FROM exercises").fetchone()[0] == 15
    conn.close()


@pytest.mark.asyncio
async def test_duplicate_positions_violate_unique_indexes(tmp_path):
    db_file = _database(tmp_path)
    links = AsyncWorkoutExerciseRepository(db_file)
    await links.insert({"workoutProgramId": 1, "exerciseId": 1, "sequence": 1})
    with pytest.raises(ConstraintViolationError):
        await links.insert({"workoutProgramId": 1, "exerciseId": 2, "sequence": 1})
    await links.insert({"workoutProgramId": 2, "exerciseId": 2, "sequence": 1})

    sets = AsyncExerciseLogRepository(db_file)
    await sets.insert({"workoutLogId": 1, "exerciseId": 1, "setNumber": 1, "completed": 0})
    with pytest.raises(ConstraintViolationError):
        await sets.insert({"workoutLogId": 1, "exerciseId": 1, "setNumber": 1, "completed": 0})
    assert len(await sets.find({"workoutLogId": 1})) == 1


@pytest.mark.asyncio
async def test_reorder_swaps_positions_under_unique_index(tmp_path):
    links = AsyncWorkoutExerciseRepository(_database(tmp_path))
    first = await links.append({"workoutProgramId": 1, "exerciseId": 1})
    second = await links.append({"workoutProgramId": 1, "exerciseId": 2})
    await links.reorder(1, [second["id"], first["id"]])
    rows = await links.fetch_for_program(1)
    assert [(r["id"], r["sequence"]) for r in rows] == [(second["id"], 1), (first["id"], 2)]


def test_storage_checks_schema_once(tmp_path, monkeypatch):
    calls = []
    original = Database._ensure_schema

    def counting(self):
        calls.append(self._db_path)
        original(self)

    monkeypatch.setattr(Database, "_ensure_schema", counting)
    SQLiteStorage(str(tmp_path / "fitness.db"))
    assert len(calls) == 1
