"""
Worker specs and handles for spawned worker processes.
"""

# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from procwarden.supervisor.reaper import ExitKind, TerminationRecord

logger = logging.getLogger(__name__)


# ── Worker Spec ────────────────────────────────────────────────────

def _worker_argv(log_level: str, json_lines: bool) -> tuple[str, ...]:
    argv = (sys.executable, "-m", "procwarden.worker", "--log-level", log_level)
    if json_lines:
        argv += ("--json-lines",)
    return argv


@dataclass(frozen=True)
class WorkerSpec:
    """What to run. Nothing but *argv* is passed to the child."""
    role: str
    argv: tuple[str, ...]

    @classmethod
    def compare(
        cls,
        source: Path,
        sink: Path,
        log_level: str = "INFO",
        json_lines: bool = False,
    ) -> WorkerSpec:
        return cls(
            role="compare",
            argv=_worker_argv(log_level, json_lines)
            + ("compare", "--source", str(source), "--sink", str(sink)),
        )

    @classmethod
    def report(
        cls,
        source: Path,
        delay: float = 0.0,
        log_level: str = "INFO",
        json_lines: bool = False,
    ) -> WorkerSpec:
        return cls(
            role="report",
            argv=_worker_argv(log_level, json_lines)
            + ("report", "--source", str(source), "--delay", str(delay)),
        )


# ── Worker Handle ──────────────────────────────────────────────────

@dataclass
class WorkerHandle:
    """
    A spawned worker.

    The ``subprocess.Popen`` object is kept only to own the child; its
    waiting methods (``poll``, ``wait``, ``send_signal``...) are never
    used because they would collect the child behind the reaper's back.
    """
    pid: int
    start_time: float
    role: str
    process: subprocess.Popen | None = field(default=None, repr=False)

    def send(self, sig: signal.Signals) -> bool:
        """Deliver *sig*. Returns False if the process no longer exists."""
        try:
            os.kill(self.pid, sig)
        except ProcessLookupError:
            return False
        return True

    def kill(self) -> bool:
        return self.send(signal.SIGKILL)

    def collected(self, termination: TerminationRecord) -> None:
        """Record on the Popen object that the child has been waited for."""
        if self.process is not None and self.process.returncode is None:
            if termination.kind == ExitKind.KILLED:
                self.process.returncode = -termination.code
            else:
                self.process.returncode = termination.code


def spawn(spec: WorkerSpec, stderr: IO[Any] | None = None) -> WorkerHandle:
    """Start a worker process for *spec*.

    Args:
        spec: The worker to run
        stderr: Where the worker's log output goes (default: inherited)

    Raises:
        OSError: If the process cannot be started
    """
    process = subprocess.Popen(
        list(spec.argv),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=stderr,
        close_fds=True,
    )
    handle = WorkerHandle(
        pid=process.pid,
        start_time=time.monotonic(),
        role=spec.role,
        process=process,
    )
    logger.debug("Command: %s", " ".join(spec.argv))
    return handle
