import argparse
import datetime
import json
import shutil

from migrate import migrate
from rest_api import PlannerAPI


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str, user_id: str) -> None:
    """Populate the database with demo workouts if the user has none."""
    api = PlannerAPI(db_path=db_path, yaml_path=yaml_path)
    if api.workouts.fetch_for_user(user_id):
        print("Database already contains workouts")
        return
    wid = api.planner.create_workout(
        user_id,
        {"name": "Full Body", "plan": "Squat 3x8\nPush-ups 3x12\nPlank 3x45s"},
    )
    api.planner.create_workout(
        user_id,
        {"name": "Easy Run", "plan": ["Warm up 5 min", "Run 25 min"], "category": "cardio"},
    )
    now = api.clock()
    for days_ago in (2, 1, 0):
        stamp = (now - datetime.timedelta(days=days_ago)).isoformat()
        api.completions.add(user_id, wid, stamp)
        api.ledger.award(user_id, api.config.completion_points)
    print("Demo data inserted")


def print_dashboard(db_path: str, yaml_path: str, user_id: str) -> None:
    api = PlannerAPI(db_path=db_path, yaml_path=yaml_path)
    print(json.dumps(api.statistics.dashboard(user_id).model_dump(mode="json"), indent=2))


def print_timeline(db_path: str, yaml_path: str, user_id: str, days: int) -> None:
    api = PlannerAPI(db_path=db_path, yaml_path=yaml_path)
    for bucket in api.statistics.timeline(user_id, days):
        marker = " <" if bucket.is_today else ""
        print(f"{bucket.date_key} {'#' * bucket.completion_count}{marker}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Workout planner utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve")
    serve.add_argument("--db", default=None)
    serve.add_argument("--yaml", default="planner.yaml")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reminders", action="store_true")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="planner.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="planner.db")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default="planner.db")

    for name in ("demo", "dashboard", "timeline"):
        p = sub.add_parser(name)
        p.add_argument("--db", default=None)
        p.add_argument("--yaml", default="planner.yaml")
        p.add_argument("--user", required=True)
        if name == "timeline":
            p.add_argument("--days", type=int, default=14)

    args = parser.parse_args()

    if args.cmd == "serve":
        import uvicorn

        api = PlannerAPI(db_path=args.db, yaml_path=args.yaml, start_reminder=args.reminders)
        uvicorn.run(api.app, host=args.host, port=args.port)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "migrate":
        print(f"Migrated {migrate(args.db)} completions")
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml, args.user)
    elif args.cmd == "dashboard":
        print_dashboard(args.db, args.yaml, args.user)
    elif args.cmd == "timeline":
        print_timeline(args.db, args.yaml, args.user, args.days)


if __name__ == "__main__":
    main()
