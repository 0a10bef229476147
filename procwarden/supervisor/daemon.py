# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""
Daemonization and PID file handling.

``daemonize()`` detaches with the classic double fork and then calls the
supplied continuation in the detached process. The invoking process
stays around only long enough to learn whether the daemon got through
setup, so that a setup failure still yields a nonzero exit status.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path

from procwarden.exceptions import DaemonizeError
from procwarden.paths import get_pid_file

logger = logging.getLogger(__name__)

_READY = b"ready"
_FAILED = b"failed"


# ── Startup reporting ──────────────────────────────────────────────

class StartupReporter:
    """Reports the outcome of daemon setup back to the invoking process.

    Each report is written at most once; the first call wins. In
    foreground mode there is no pipe and reports are only recorded.
    """

    def __init__(self, fd: int | None = None):
        self._fd = fd
        self.outcome: str | None = None

    def ready(self) -> None:
        self._report(_READY, f"{os.getpid()}")

    def failed(self, message: str) -> None:
        self._report(_FAILED, message)

    def _report(self, status: bytes, detail: str) -> None:
        if self.outcome is not None:
            return
        self.outcome = status.decode()
        logger.debug("Startup outcome: %s %s", self.outcome, detail)
        if self._fd is None:
            return
        try:
            os.write(self._fd, status + b" " + detail.encode("utf-8", "replace") + b"\n")
        except OSError as e:
            logger.warning("Cannot report startup outcome: %s", e)
        finally:
            self.close()

    def close(self) -> None:
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None


def _await_startup(fd: int) -> int:
    """Read the daemon's startup report. Returns the invoking process exit code."""
    chunks: list[bytes] = []
    try:
        while True:
            chunk = os.read(fd, 4096)
            if not chunk:
                break
            chunks.append(chunk)
    finally:
        os.close(fd)

    line = b"".join(chunks).decode("utf-8", "replace").strip()
    status, _, detail = line.partition(" ")
    if status == _READY.decode():
        print(f"Supervisor started in background (pid={detail})")
        return 0
    if status == _FAILED.decode():
        print(f"Error: supervisor setup failed: {detail}", file=sys.stderr)
        return 1
    print("Error: supervisor exited before completing setup", file=sys.stderr)
    return 1


# ── Daemonize ──────────────────────────────────────────────────────

def _redirect_stdio(log_file: Path) -> None:
    sys.stdout.flush()
    sys.stderr.flush()

    # Descriptors 0-2 are what spawned workers inherit
    with open(os.devnull) as devnull:
        os.dup2(devnull.fileno(), 0)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(log_file, "a") as f:
        os.dup2(f.fileno(), 1)
        os.dup2(f.fileno(), 2)


def daemonize(
    body: Callable[[StartupReporter], int],
    *,
    log_file: Path,
    foreground: bool = False,
) -> int:
    """Run *body* as a detached background process.

    Args:
        body: Continuation executed in the daemon. It receives a
            :class:`StartupReporter` and returns the daemon's exit code.
        log_file: Where the daemon's stdout/stderr are appended.
        foreground: Skip detaching and run *body* in this process.

    Returns:
        In foreground mode, the result of *body*. Otherwise the exit code
        for the invoking process: 0 once the daemon reported ready,
        1 if setup failed. The daemon itself never returns.

    Raises:
        DaemonizeError: If the first fork or the status pipe fails.
    """
    if foreground:
        return body(StartupReporter())

    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        raise DaemonizeError(f"Cannot create startup pipe: {e}") from e

    sys.stdout.flush()
    sys.stderr.flush()

    try:
        pid = os.fork()
    except OSError as e:
        os.close(read_fd)
        os.close(write_fd)
        raise DaemonizeError(f"fork #1 failed: {e}") from e

    if pid > 0:
        # Invoking process: wait for the intermediate child, then for the report
        os.close(write_fd)
        os.waitpid(pid, 0)
        return _await_startup(read_fd)

    # Intermediate child: new session, then fork again so the daemon can
    # never reacquire a controlling terminal.
    os.close(read_fd)
    try:
        os.setsid()
        os.umask(0o022)
        pid = os.fork()
    except OSError as e:
        os.write(write_fd, _FAILED + f" fork #2 failed: {e}\n".encode())
        os._exit(1)
    if pid > 0:
        os._exit(0)

    # Daemon
    reporter = StartupReporter(write_fd)
    code = 1
    try:
        _redirect_stdio(log_file)
        code = body(reporter)
    except Exception as e:
        reporter.failed(str(e) or type(e).__name__)
        logger.exception("Supervisor daemon crashed")
    finally:
        reporter.close()
        logging.shutdown()
        os._exit(code)


# ── PID file ────────────────────────────────────────────────────────

def write_pid_file(pid_file: Path | None = None) -> Path:
    """Write the current process PID to the PID file."""
    pid_file = pid_file or get_pid_file()
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()), encoding="utf-8")
    logger.info("PID file written: %s (pid=%d)", pid_file, os.getpid())
    return pid_file


def remove_pid_file(pid_file: Path | None = None) -> None:
    """Remove the PID file if it exists."""
    pid_file = pid_file or get_pid_file()
    try:
        pid_file.unlink(missing_ok=True)
        logger.debug("PID file removed: %s", pid_file)
    except OSError as exc:
        logger.warning("Failed to remove PID file %s: %s", pid_file, exc)


def read_pid(pid_file: Path | None = None) -> int | None:
    """Read and validate the PID from the PID file.

    Returns the PID if the file exists and contains a valid integer,
    or None if the file is missing or contains invalid data.
    """
    pid_file = pid_file or get_pid_file()
    if not pid_file.exists():
        return None
    try:
        return int(pid_file.read_text(encoding="utf-8").strip())
    except (ValueError, OSError) as exc:
        logger.warning("Invalid PID file %s: %s", pid_file, exc)
        return None


def is_process_alive(pid: int) -> bool:
    """Check whether a process with the given PID is currently running."""
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
