import argparse
import asyncio
import datetime
import logging
import shutil
from typing import Optional

from config import load_settings
from memory_storage import create_memory_storage
from migrate import migrate
from models import now_iso
from settings_schema import AppSettings
from storage import Storage, create_storage

logger = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


async def demo_data(storage: Storage, user_id: int) -> bool:
    """Populate ``storage`` with a sample program, session and measurements.

    Returns ``False`` when the user already owns a workout program.
    """
    if await storage.list_workout_programs(user_id):
        return False
    now = datetime.datetime.now(datetime.timezone.utc)
    for days_ago, weight in ((14, 82.4), (7, 81.6), (0, 80.9)):
        await storage.create_measurement(
            {
                "userId": user_id,
                "type": "weight",
                "value": weight,
                "unit": "kg",
                "date": now - datetime.timedelta(days=days_ago),
            }
        )
    await storage.create_measurement(
        {"userId": user_id, "type": "waist", "value": 86.0, "unit": "cm"}
    )
    program = await storage.create_workout_program(
        {
            "userId": user_id,
            "name": "Full Body",
            "description": "Demo session",
            "estimatedDuration": "45 min",
        }
    )
    catalogue = {e["name"]: e["id"] for e in await storage.list_exercises()}
    for name in ("Barbell Squat", "Bench Press", "Bent-Over Row"):
        if name in catalogue:
            await storage.add_exercise_to_workout(
                {
                    "workoutProgramId": program["id"],
                    "exerciseId": catalogue[name],
                    "sets": 3,
                    "reps": 8,
                }
            )
    log = await storage.create_workout_log(
        {"userId": user_id, "workoutProgramId": program["id"], "date": now_iso()}
    )
    for link in await storage.list_workout_exercises(program["id"]):
        for set_number in range(1, 4):
            await storage.create_exercise_log(
                {
                    "workoutLogId": log["id"],
                    "exerciseId": link["exerciseId"],
                    "setNumber": set_number,
                    "reps": 8,
                    "weight": 60.0,
                    "completed": True,
                }
            )
    await storage.complete_workout_log(log["id"])
    return True


async def print_history(storage: Storage, user_id: int, type: Optional[str] = None) -> None:
    for m in await storage.list_measurements_with_change(user_id, type):
        change = "" if m["change"] is None else f" ({m['change']:+.2f})"
        print(f"{m['date'][:10]}  {m['type']:<12} {m['value']:g} {m['unit']}{change}")


def _settings(args) -> AppSettings:
    settings = load_settings(args.config)
    if getattr(args, "db", None):
        settings = settings.model_copy(update={"db_path": args.db})
    return settings


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Fitness tracker utility commands")
    parser.add_argument("--config", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init")
    init.add_argument("--db")

    serve = sub.add_parser("serve")
    serve.add_argument("--db")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    demo = sub.add_parser("demo")
    demo.add_argument("--db")
    demo.add_argument("--memory", action="store_true")

    hist = sub.add_parser("history")
    hist.add_argument("--db")
    hist.add_argument("--type")
    hist.add_argument("--user", type=int)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db")

    args = parser.parse_args(argv)
    settings = _settings(args)
    logging.basicConfig(level=settings.log_level)

    if args.cmd == "init":
        create_storage(settings)
        print(f"Database ready at {settings.db_path}")
    elif args.cmd == "serve":
        import uvicorn

        from rest_api import create_app

        uvicorn.run(create_app(settings), host=args.host, port=args.port)
    elif args.cmd == "demo":
        storage = create_memory_storage(settings) if args.memory else create_storage(settings)
        if asyncio.run(demo_data(storage, settings.default_user_id)):
            print("Demo data inserted")
            if args.memory:
                asyncio.run(print_history(storage, settings.default_user_id))
        else:
            print("User already has workout programs")
    elif args.cmd == "history":
        storage = create_storage(settings)
        asyncio.run(print_history(storage, args.user or settings.default_user_id, args.type))
    elif args.cmd == "backup":
        backup_db(settings.db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, settings.db_path)
        logger.info("restored %s from %s", settings.db_path, args.src)
    elif args.cmd == "migrate":
        migrate(settings.db_path)
        print(f"Migrated {settings.db_path}")


if __name__ == "__main__":
    main()
