#!/usr/bin/env python3
"""
Operator CLI for the approval engine.

Usage:
  python3 scripts/approval_cli.py init-db
  python3 scripts/approval_cli.py seed-workflows
  python3 scripts/approval_cli.py sweep
  python3 scripts/approval_cli.py sweep --loop --interval 60

Options common to every command:
  --database-url URL   defaults to $DATABASE_URL, else sqlite:///approvals.db
  --config PATH        approval engine YAML (default: packaged defaults)

Each command prints a JSON summary on stdout and returns 0 on success.
"""

import argparse
import json
import os
import signal
import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///approvals.db")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Approval engine operator commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        default=DEFAULT_DB_URL,
        help=f"Database URL (default: {DEFAULT_DB_URL!r}, or DATABASE_URL)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to approval_engine.yaml (default: packaged defaults)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level for the approval_kernel logger",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="Create all approval tables")
    commands.add_parser("seed-workflows", help="Register configured workflows that are missing")
    sweep = commands.add_parser("sweep", help="Run the escalation sweep")
    sweep.add_argument(
        "--loop",
        action="store_true",
        help="Keep sweeping on an interval until interrupted",
    )
    sweep.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between sweeps with --loop (default: engine.sweep_interval_seconds)",
    )
    return parser.parse_args(argv)


def _emit(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _build_engine(args):
    from approval_config import get_active_config
    from approval_kernel.db.engine import get_session_factory
    from approval_services import ApprovalEngine

    return ApprovalEngine(get_session_factory(), config=get_active_config(args.config))


def cmd_init_db(args) -> int:
    from approval_kernel.db.engine import create_tables

    create_tables()
    _emit({"command": "init-db", "database_url": args.database_url, "status": "ok"})
    return 0


def cmd_seed_workflows(args) -> int:
    engine = _build_engine(args)
    registered = engine.seed_workflows()
    _emit({
        "command": "seed-workflows",
        "registered": [
            {
                "workflow_id": str(w.workflow_id),
                "entity_type": w.entity_type,
                "name": w.name,
                "version": w.version,
                "steps": len(w.steps),
            }
            for w in registered
        ],
    })
    return 0


def cmd_sweep(args) -> int:
    engine = _build_engine(args)
    scheduler = engine.scheduler(sweep_interval_seconds=args.interval)
    if not args.loop:
        _emit({"command": "sweep", **scheduler.run_sweep().to_dict()})
        return 0

    done = threading.Event()

    def _shutdown(signum, frame):
        done.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    scheduler.start()
    done.wait()
    scheduler.stop()
    _emit({"command": "sweep", "loop": True, "status": "stopped"})
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "seed-workflows": cmd_seed_workflows,
    "sweep": cmd_sweep,
}


def main(argv=None) -> int:
    args = _parse_args(argv)

    from approval_kernel.db.engine import init_engine_from_url
    from approval_kernel.logging_config import configure_logging

    configure_logging(level=args.log_level.upper())
    try:
        init_engine_from_url(args.database_url, echo=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
