# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from pathlib import Path

from procwarden.supervisor.daemon import (
    StartupReporter,
    daemonize,
    is_process_alive,
    read_pid,
    remove_pid_file,
    write_pid_file,
)

logger = logging.getLogger("procwarden")

EXIT_SETUP_FAILURE = 1
EXIT_USAGE = 2


# ── Helpers ───────────────────────────────────────────────


def _parse_int32(raw: str) -> int:
    from procwarden.supervisor.channels import INT32_MAX, INT32_MIN

    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from None
    if not INT32_MIN <= value <= INT32_MAX:
        raise argparse.ArgumentTypeError(f"out of 32-bit range: {value}")
    return value


def _running_pid() -> int | None:
    """PID of a live supervisor, cleaning up a stale PID file."""
    pid = read_pid()
    if pid is None:
        return None
    if not is_process_alive(pid):
        logger.info("Stale PID file found (pid=%d). Cleaning up.", pid)
        remove_pid_file()
        return None
    return pid


def _signal_supervisor(sig: signal.Signals) -> int | None:
    """Send *sig* to the running supervisor. Returns its pid, or None."""
    pid = _running_pid()
    if pid is None:
        print("Supervisor is not running.")
        return None
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        print("Supervisor already exited.")
        remove_pid_file()
        return None
    except PermissionError:
        print(f"Error: Permission denied sending signal to pid={pid}.")
        sys.exit(1)
    return pid


# ── Run ───────────────────────────────────────────────────


def _run_supervisor(args: argparse.Namespace, reporter: StartupReporter) -> int:
    """Daemon body: the supervisor lifetime after detaching."""
    from procwarden.config import load_config
    from procwarden.exceptions import SetupError
    from procwarden.logging_config import setup_logging
    from procwarden.paths import get_data_dir, resolve_in_data_dir
    from procwarden.supervisor.channels import ChannelTransport, PairPayload
    from procwarden.supervisor.manager import (
        MonitorConfig,
        WorkerSupervisor,
        pipeline_specs,
    )

    config = load_config()
    log_file = resolve_in_data_dir(config.logging.file)
    setup_logging(
        level=args.log_level or config.logging.level,
        log_file=log_file,
        json_lines=config.logging.json_lines,
        console=args.foreground,
    )

    channel_dir = (
        resolve_in_data_dir(config.channels.directory)
        if config.channels.directory else get_data_dir()
    )
    transport = ChannelTransport(
        channel_dir, config.channels.request_name, config.channels.result_name,
    )

    monitor_config = MonitorConfig.from_pool_config(config.pool)
    if args.timeout is not None:
        monitor_config.worker_timeout = args.timeout

    supervisor = WorkerSupervisor(
        transport,
        monitor_config,
        # Workers share the event log through their stderr
        log_file=log_file,
    )
    specs = pipeline_specs(
        transport,
        report_delay=config.pool.report_delay,
        log_level=args.log_level or config.logging.level,
        json_lines=config.logging.json_lines,
    )

    logger.info(
        "Supervisor starting: pid=%d inputs=(%d, %d) workers=%d timeout=%.1fs",
        os.getpid(), args.first, args.second, len(specs), monitor_config.worker_timeout,
    )
    write_pid_file()
    try:
        code = asyncio.run(
            supervisor.run(
                specs,
                request=PairPayload(args.first, args.second),
                on_ready=reporter.ready,
            )
        )
    except SetupError as e:
        logger.error("Supervisor setup failed: %s", e)
        reporter.failed(str(e))
        return EXIT_SETUP_FAILURE
    finally:
        remove_pid_file()

    logger.info("Supervisor exiting with code %d", code)
    return code


def cmd_run(args: argparse.Namespace) -> None:
    """Start the supervisor for one pair of inputs."""
    from procwarden.config import load_config
    from procwarden.exceptions import ConfigError, SetupError
    from procwarden.paths import resolve_in_data_dir

    existing = _running_pid()
    if existing is not None:
        print(f"Error: Supervisor is already running (pid={existing}).")
        print("Use 'procwarden stop' first.")
        sys.exit(EXIT_SETUP_FAILURE)

    if args.timeout is not None and args.timeout <= 0:
        print("Error: --timeout must be positive", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_SETUP_FAILURE)

    try:
        code = daemonize(
            lambda reporter: _run_supervisor(args, reporter),
            log_file=resolve_in_data_dir(config.logging.file),
            foreground=args.foreground,
        )
    except SetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_SETUP_FAILURE)
    sys.exit(code)


# ── Control commands ──────────────────────────────────────


def cmd_stop(args: argparse.Namespace) -> None:
    """Ask the running supervisor to shut down and wait for it to exit."""
    pid = _signal_supervisor(signal.SIGTERM)
    if pid is None:
        return
    print(f"Stopping supervisor (pid={pid})...")

    deadline = time.monotonic() + args.wait
    while time.monotonic() < deadline:
        if not is_process_alive(pid):
            print("Supervisor stopped.")
            return
        time.sleep(0.2)

    print(f"Error: Supervisor (pid={pid}) did not stop within {args.wait}s.")
    sys.exit(1)


def cmd_reload(args: argparse.Namespace) -> None:
    """Send a configuration reload request (SIGHUP)."""
    pid = _signal_supervisor(signal.SIGHUP)
    if pid is not None:
        print(f"Reload requested (pid={pid}).")


def cmd_status(args: argparse.Namespace) -> None:
    """Report whether a supervisor is running; ask it to log its worker table."""
    pid = _running_pid()
    if pid is None:
        print("Supervisor is not running.")
        return
    os.kill(pid, signal.SIGUSR1)
    from procwarden.config import load_config
    from procwarden.paths import resolve_in_data_dir

    log_file: Path = resolve_in_data_dir(load_config().logging.file)
    print(f"Supervisor running (pid={pid}). Worker status written to {log_file}")
