# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""
Worker process entry point.

Usage:
    python -m procwarden.worker compare \\
        --source ~/.procwarden/fifo1 --sink ~/.procwarden/fifo2
    python -m procwarden.worker report --source ~/.procwarden/fifo2
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from enum import Enum
from pathlib import Path

from procwarden.exceptions import TransportError
from procwarden.supervisor.channels import (
    REQUEST_FORMAT,
    RESULT_FORMAT,
    PairPayload,
    ResultPayload,
    read_exact,
    write_exact,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_TRANSPORT_FAILURE = 3


class WorkerPhase(Enum):
    """Lifecycle phase of a worker process."""
    SPAWNED = "spawned"
    AWAITING_CHANNEL = "awaiting_channel"   # Blocked on FIFO open
    PROCESSING = "processing"
    WRITING = "writing"
    EXITED = "exited"


def larger(first: int, second: int) -> int:
    """Return the larger of two integers; ties go to *first*."""
    return first if first >= second else second


class _PhaseTracker:
    def __init__(self, role: str):
        self.role = role
        self.phase = WorkerPhase.SPAWNED
        logger.info("Worker %s: %s", role, self.phase.value)

    def enter(self, phase: WorkerPhase) -> None:
        self.phase = phase
        logger.info("Worker %s: %s", self.role, phase.value)


def run_compare(source: Path, sink: Path) -> int:
    """Read a pair from *source*, write the larger value to *sink*."""
    tracker = _PhaseTracker("compare")

    tracker.enter(WorkerPhase.AWAITING_CHANNEL)
    pair = PairPayload.from_bytes(read_exact(source, REQUEST_FORMAT.size))

    tracker.enter(WorkerPhase.PROCESSING)
    result = larger(pair.first, pair.second)
    logger.info(
        "Comparing %d and %d, larger is %d", pair.first, pair.second, result,
    )

    tracker.enter(WorkerPhase.WRITING)
    write_exact(sink, ResultPayload(result).to_bytes())

    tracker.enter(WorkerPhase.EXITED)
    return EXIT_OK


def run_report(source: Path, delay: float = 0.0) -> int:
    """Read the result from *source* and report it in the log."""
    tracker = _PhaseTracker("report")
    if delay > 0:
        time.sleep(delay)

    tracker.enter(WorkerPhase.AWAITING_CHANNEL)
    payload = ResultPayload.from_bytes(read_exact(source, RESULT_FORMAT.size))

    tracker.enter(WorkerPhase.PROCESSING)
    logger.info("Result: %d", payload.value)

    tracker.enter(WorkerPhase.EXITED)
    return EXIT_OK


# ── CLI Entry Point ────────────────────────────────────────────────

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Run a ProcWarden worker")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-lines", action="store_true")
    sub = parser.add_subparsers(dest="role", required=True)

    p_compare = sub.add_parser("compare", help="Return the larger of two integers")
    p_compare.add_argument("--source", required=True, type=Path, help="Request channel path")
    p_compare.add_argument("--sink", required=True, type=Path, help="Result channel path")

    p_report = sub.add_parser("report", help="Report the computed result")
    p_report.add_argument("--source", required=True, type=Path, help="Result channel path")
    p_report.add_argument(
        "--delay", type=float, default=0.0,
        help="Seconds to wait before opening the channel",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    from procwarden.logging_config import setup_worker_logging

    setup_worker_logging(args.role, level=args.log_level, json_lines=args.json_lines)

    try:
        if args.role == "compare":
            return run_compare(args.source, args.sink)
        return run_report(args.source, delay=args.delay)
    except TransportError as e:
        logger.error("Transport failure in %s worker: %s", args.role, e)
        return EXIT_TRANSPORT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
