import logging
import sqlite3
import sys

logger = logging.getLogger(__name__)


def rename_legacy_columns(conn: sqlite3.Connection) -> None:
    """Rename the reserved-word ``"order"`` column of older databases to ``sequence``."""
    cur = conn.execute("PRAGMA table_info(workout_exercises);")
    cols = [r[1] for r in cur.fetchall()]
    if "order" in cols and "sequence" not in cols:
        logger.info('renaming workout_exercises."order" to sequence')
        conn.execute('ALTER TABLE workout_exercises RENAME COLUMN "order" TO sequence;')


def migrate(db_path='fitness_tracker.db'):
    conn = sqlite3.connect(db_path)
    rename_legacy_columns(conn)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(workout_logs);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'completed' not in cols:
        cur.execute("ALTER TABLE workout_logs ADD COLUMN completed INTEGER NOT NULL DEFAULT 0;")
    cur.execute("PRAGMA table_info(progress_photos);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'related_measurement_id' not in cols:
        cur.execute("ALTER TABLE progress_photos ADD COLUMN related_measurement_id INTEGER;")
    conn.commit()
    conn.close()


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'fitness_tracker.db'
    migrate(path)
