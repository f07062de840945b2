from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from agent_economy.config.settings import AppSettings
from agent_economy.simulation.runner import EconomyRunner
from agent_economy.utils.errors import EconomyError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-economy",
        description="Closed multi-agent economy: run epochs, anchor and inspect them.",
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="use a process-local store seeded with the default roster",
    )
    parser.add_argument("--output-dir", type=Path, default=None, help="write per-epoch JSON here")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run one or more epochs")
    mode = run.add_mutually_exclusive_group()
    mode.add_argument("--single", action="store_true", help="run exactly one epoch")
    mode.add_argument("--count", type=int, default=None, help="number of epochs to run")
    run.add_argument("--delay", type=float, default=None, help="seconds between epochs")

    anchor = sub.add_parser("anchor", help="compute and attach epoch anchors")
    target = anchor.add_mutually_exclusive_group(required=True)
    target.add_argument("--epoch", type=int)
    target.add_argument("--pending", action="store_true", help="retry every unanchored epoch")

    verify = sub.add_parser("verify", help="recompute an epoch anchor and compare")
    verify.add_argument("--epoch", type=int, required=True)

    sub.add_parser("stats", help="economy-wide statistics")

    agent = sub.add_parser("agent", help="report for one agent")
    agent.add_argument("--id", dest="agent_id", required=True)

    sub.add_parser("seed", help="register the default roster in an empty store")
    sub.add_parser("init-db", help="apply the database schema")

    admin = sub.add_parser("admin", help="administrative overrides")
    admin_sub = admin.add_subparsers(dest="admin_command", required=True)
    revive = admin_sub.add_parser("revive", help="return a bankrupt agent to active")
    revive.add_argument("--id", dest="agent_id", required=True)
    revive.add_argument("--balance", type=float, required=True)
    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _dispatch(runner: EconomyRunner, args: argparse.Namespace) -> int:
    settings = runner.settings
    if args.command == "run":
        if args.single:
            count = 1
        elif args.count is not None:
            count = args.count
        else:
            count = settings.scheduler.epoch_count
        delay = args.delay if args.delay is not None else settings.scheduler.epoch_delay_s
        summaries = runner.run(count, delay)
        _print_json([s.as_dict() for s in summaries])
    elif args.command == "anchor":
        if args.pending:
            _print_json({str(k): v for k, v in runner.anchor_pending().items()})
        else:
            _print_json({"epoch": args.epoch, "anchor_hash": runner.anchor(args.epoch)})
    elif args.command == "verify":
        report = runner.verify(args.epoch)
        _print_json(report)
        if report["matches"] is False:
            return 1
    elif args.command == "stats":
        _print_json(runner.stats())
    elif args.command == "agent":
        report = runner.agent_report(args.agent_id)
        if report is None:
            logging.getLogger("agent_economy.entrypoint").error("Agent %s not found", args.agent_id)
            return 1
        _print_json(report)
    elif args.command == "seed":
        _print_json({"seeded": runner.seed_agents()})
    elif args.command == "init-db":
        runner.init_db()
    elif args.command == "admin" and args.admin_command == "revive":
        agent = runner.revive(args.agent_id, args.balance)
        _print_json({"id": agent.id, "status": agent.status.value, "balance": agent.balance})
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("agent_economy.entrypoint")
    args = build_parser().parse_args(argv)

    settings = AppSettings.from_env()
    if args.output_dir is not None:
        settings = replace(settings, output_dir=args.output_dir)

    try:
        runner = EconomyRunner(settings, in_memory=args.in_memory)
    except EconomyError as exc:
        logger.error("Startup failed: %s", exc)
        return 1
    try:
        return _dispatch(runner, args)
    except (EconomyError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        runner.close()


if __name__ == "__main__":
    raise SystemExit(main())
