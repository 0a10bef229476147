# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import os


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ProcWarden - Worker Process Supervisor"
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Override runtime data directory (default: ~/.procwarden or PROCWARDEN_DATA_DIR)",
    )
    sub = parser.add_subparsers(dest="command")

    # ── Run ───────────────────────────────────────────────
    p_run = sub.add_parser(
        "run", help="Start the supervisor and report the larger of two integers",
    )
    p_run.add_argument("first", type=_lazy_int32, help="First integer (wins ties)")
    p_run.add_argument("second", type=_lazy_int32, help="Second integer")
    p_run.add_argument(
        "--timeout", type=float, default=None,
        help="Per-worker timeout in seconds (default: pool.worker_timeout)",
    )
    p_run.add_argument(
        "--foreground", action="store_true",
        help="Do not detach; log to the console as well as the log file",
    )
    p_run.add_argument(
        "--log-level", default=None,
        help="Log level for the supervisor and its workers (default: logging.level)",
    )
    p_run.set_defaults(func=_lazy_run)

    # ── Stop ──────────────────────────────────────────────
    p_stop = sub.add_parser("stop", help="Shut down the running supervisor")
    p_stop.add_argument(
        "--wait", type=float, default=10.0,
        help="Seconds to wait for the supervisor to exit (default: 10)",
    )
    p_stop.set_defaults(func=_lazy_stop)

    # ── Reload ────────────────────────────────────────────
    p_reload = sub.add_parser("reload", help="Ask the running supervisor to reload its configuration")
    p_reload.set_defaults(func=_lazy_reload)

    # ── Status ────────────────────────────────────────────
    p_status = sub.add_parser("status", help="Log the running supervisor's worker table")
    p_status.set_defaults(func=_lazy_status)

    # ── Config ────────────────────────────────────────────
    from procwarden.config.cli import (
        cmd_config_dispatch,
        cmd_config_get,
        cmd_config_list,
        cmd_config_set,
    )

    p_config = sub.add_parser("config", help="Manage configuration")
    p_config.set_defaults(func=cmd_config_dispatch, config_parser=p_config)
    config_sub = p_config.add_subparsers(dest="config_command")

    p_cfg_get = config_sub.add_parser("get", help="Get a config value")
    p_cfg_get.add_argument("key", help="Dot-notation key (e.g. pool.worker_timeout)")
    p_cfg_get.set_defaults(func=cmd_config_get)

    p_cfg_set = config_sub.add_parser("set", help="Set a config value")
    p_cfg_set.add_argument("key", help="Dot-notation key (e.g. pool.worker_timeout)")
    p_cfg_set.add_argument("value", help="Value to set")
    p_cfg_set.set_defaults(func=cmd_config_set)

    p_cfg_list = config_sub.add_parser("list", help="List all config values")
    p_cfg_list.add_argument(
        "--section", default=None,
        help="Only show keys under this section (e.g. pool)",
    )
    p_cfg_list.set_defaults(func=cmd_config_list)

    return parser


def cli_main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.data_dir:
        os.environ["PROCWARDEN_DATA_DIR"] = args.data_dir

    if args.command != "run":
        from procwarden.logging_config import setup_logging

        setup_logging(level=os.environ.get("PROCWARDEN_LOG_LEVEL", "WARNING"))

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


# ── Lazy command wrappers ─────────────────────────────────


def _lazy_int32(raw: str) -> int:
    from procwarden.cli.commands.supervisor import _parse_int32

    return _parse_int32(raw)


def _lazy_run(args: argparse.Namespace) -> None:
    from procwarden.cli.commands.supervisor import cmd_run

    cmd_run(args)


def _lazy_stop(args: argparse.Namespace) -> None:
    from procwarden.cli.commands.supervisor import cmd_stop

    cmd_stop(args)


def _lazy_reload(args: argparse.Namespace) -> None:
    from procwarden.cli.commands.supervisor import cmd_reload

    cmd_reload(args)


def _lazy_status(args: argparse.Namespace) -> None:
    from procwarden.cli.commands.supervisor import cmd_status

    cmd_status(args)
