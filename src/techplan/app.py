from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

from techplan.data.db import Db
from techplan.data.repository import Repository
from techplan.logging_conf import configure_logging
from techplan.planning.orchestrator import DeliveryPlanner
from techplan.settings import Settings, default_db_path
from techplan.workload import WorkloadLookup


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Technician delivery and workload planning")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Workload lookup timeout in seconds (defaults to app_config, then 8)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    p_sched = sub.add_parser("import-schedules", help="Import technician work schedules from .xlsx")
    p_sched.add_argument("path", type=Path)

    p_serv = sub.add_parser("import-services", help="Import service types from .xlsx")
    p_serv.add_argument("path", type=Path)

    p_work = sub.add_parser("workload", help="Show a technician's current workload")
    p_work.add_argument("technician_id")

    p_plan = sub.add_parser("plan", help="Project the delivery date of an order")
    p_plan.add_argument("order_id")
    p_plan.add_argument("--support", dest="support_technician_id", default=None)
    p_plan.add_argument("--no-auto-support", dest="auto_support", action="store_false")
    p_plan.add_argument("--dry-run", dest="persist", action="store_false", help="Do not write the result back")

    return parser


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def run(args: argparse.Namespace) -> int:
    settings = Settings(
        db_path=args.db or default_db_path(),
        log_level=args.log_level,
    )
    configure_logging(settings.log_level)

    db = Db(settings.db_path)
    db.ensure_schema()
    repo = Repository(db)

    timeout = args.timeout if args.timeout is not None else repo.get_workload_timeout_seconds(
        default=settings.workload_timeout_seconds
    )
    lookup = WorkloadLookup(repo, timeout_seconds=timeout)

    if args.command == "init-db":
        _print_json({"status": "success", "db_path": str(settings.db_path)})
        return 0

    if args.command == "import-schedules":
        count = repo.import_work_schedules_bytes(content=args.path.read_bytes())
        _print_json({"status": "success", "imported": count})
        return 0

    if args.command == "import-services":
        count = repo.import_service_types_bytes(content=args.path.read_bytes())
        _print_json({"status": "success", "imported": count})
        return 0

    if args.command == "workload":
        result = asyncio.run(lookup.lookup(args.technician_id))
        _print_json({"technician_id": args.technician_id, **asdict(result)})
        return 0

    if args.command == "plan":
        planner = DeliveryPlanner(repo, lookup=lookup)
        result = asyncio.run(
            planner.plan_order(
                args.order_id,
                support_technician_id=args.support_technician_id,
                auto_support=args.auto_support,
                persist=args.persist,
            )
        )
        _print_json(result)
        return 0 if result.get("status") == "success" else 1

    return 2


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
