import argparse
import asyncio
import datetime

from algorithms import WeightConverter
from backup_service import BackupService
from config import APP_NAME, APP_VERSION, AppConfig, configure_logging
from db import Database
from migrate import migrate
from seed_sample_data import seed_defaults
from stats_service import StatisticsService


async def _export(db_path: str) -> str:
    async with Database(db_path) as db:
        return await BackupService(db).export()


async def _import(db_path: str, text: str) -> dict:
    async with Database(db_path) as db:
        return await BackupService(db).import_data(text)


async def _clear(db_path: str) -> None:
    async with Database(db_path) as db:
        await BackupService(db).clear_all()


async def _seed(db_path: str) -> dict:
    async with Database(db_path) as db:
        return await seed_defaults(db)


async def _records(db_path: str, formula: str, unit: str | None) -> list[dict]:
    async with Database(db_path) as db:
        return await StatisticsService(db, formula).all_personal_records(unit)


async def _history(db_path: str, exercise_id: int, limit: int) -> list[dict]:
    async with Database(db_path) as db:
        return await StatisticsService(db).exercise_history(exercise_id, limit)


def export_backup(db_path: str, out_path: str | None = None) -> str:
    """Write a backup document and return its path."""
    path = out_path or f"workout-tracker-backup-{datetime.date.today().isoformat()}.json"
    data = asyncio.run(_export(db_path))
    with open(path, "w", encoding="utf-8") as f:
        f.write(data)
    return path


def import_backup(db_path: str, in_path: str) -> dict:
    with open(in_path, "r", encoding="utf-8") as f:
        text = f.read()
    return asyncio.run(_import(db_path, text))


def clear_data(db_path: str) -> None:
    asyncio.run(_clear(db_path))


def seed_data(db_path: str) -> dict:
    return asyncio.run(_seed(db_path))


def personal_records(db_path: str, formula: str = "epley", unit: str | None = None) -> list[dict]:
    return asyncio.run(_records(db_path, formula, unit))


def exercise_history(db_path: str, exercise_id: int, limit: int = 50) -> list[dict]:
    """Most recent ledger entries for one exercise, newest first."""
    return asyncio.run(_history(db_path, exercise_id, limit))


def main(argv: list[str] | None = None) -> None:
    cfg = AppConfig.load()
    configure_logging(cfg.log_level)

    parser = argparse.ArgumentParser(description=f"{APP_NAME} maintenance commands")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--db", default=cfg.db_path)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("migrate")
    sub.add_parser("seed")

    exp = sub.add_parser("export")
    exp.add_argument("--out", default=None)

    imp = sub.add_parser("import")
    imp.add_argument("--in", dest="src", required=True)

    clr = sub.add_parser("clear")
    clr.add_argument("--yes", action="store_true")

    prs = sub.add_parser("prs")
    prs.add_argument("--formula", choices=["epley", "brzycki", "lombardi"], default=cfg.one_rm_formula)
    prs.add_argument("--unit", choices=["lbs", "kg"], default=None)

    hist = sub.add_parser("history")
    hist.add_argument("--exercise", type=int, required=True)
    hist.add_argument("--limit", type=int, default=cfg.history_limit)

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lbs"], required=True)

    args = parser.parse_args(argv)

    if args.cmd == "migrate":
        print(f"schema version {migrate(args.db)}")
        if cfg.seed_defaults:
            seed_data(args.db)
    elif args.cmd == "seed":
        print(f"seeded {seed_data(args.db)}")
    elif args.cmd == "export":
        print(f"backup written to {export_backup(args.db, args.out)}")
    elif args.cmd == "import":
        print(f"imported {import_backup(args.db, args.src)}")
    elif args.cmd == "clear":
        if not args.yes:
            parser.error("clear permanently deletes everything; pass --yes")
        clear_data(args.db)
        print("all data cleared")
    elif args.cmd == "prs":
        for rec in personal_records(args.db, args.formula, args.unit):
            print(
                f"{rec['name']}: 1RM {rec['max_1rm']:g}, max weight {rec['max_weight']:g}, "
                f"max reps {rec['max_reps']}, volume {rec['total_volume']:g}"
            )
    elif args.cmd == "history":
        for entry in exercise_history(args.db, args.exercise, args.limit):
            rpe = f" @ RPE {entry['rpe']}" if entry.get("rpe") else ""
            print(f"{entry['timestamp']}: {entry['weight']:g} x {entry['reps']}{rpe}")
    elif args.cmd == "convert":
        other = "lbs" if args.unit == "kg" else "kg"
        print(f"{args.weight} {args.unit} = {WeightConverter.convert(args.weight, args.unit, other)} {other}")


if __name__ == "__main__":
    main()
