# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for daemonization and PID file helpers."""

from __future__ import annotations

import os
import time
from pathlib import Path

from procwarden.supervisor.daemon import (
    StartupReporter,
    _await_startup,
    daemonize,
    is_process_alive,
    read_pid,
    remove_pid_file,
    write_pid_file,
)


# ── StartupReporter ──────────────────────────────────────


class TestStartupReporter:
    def test_ready_reaches_invoking_side(self, capsys):
        r, w = os.pipe()
        StartupReporter(w).ready()
        assert _await_startup(r) == 0
        assert f"pid={os.getpid()}" in capsys.readouterr().out

    def test_failed_reaches_invoking_side(self, capsys):
        r, w = os.pipe()
        StartupReporter(w).failed("mkfifo failed")
        assert _await_startup(r) == 1
        assert "mkfifo failed" in capsys.readouterr().err

    def test_first_report_wins(self):
        r, w = os.pipe()
        reporter = StartupReporter(w)
        reporter.ready()
        reporter.failed("too late")
        assert reporter.outcome == "ready"
        assert _await_startup(r) == 0

    def test_silent_exit_is_failure(self, capsys):
        r, w = os.pipe()
        StartupReporter(w).close()
        assert _await_startup(r) == 1
        assert "before completing setup" in capsys.readouterr().err

    def test_foreground_reporter_has_no_pipe(self):
        reporter = StartupReporter()
        reporter.ready()
        assert reporter.outcome == "ready"


# ── daemonize ─────────────────────────────────────────────


class TestDaemonize:
    def test_foreground_runs_body_inline(self, tmp_path: Path):
        seen: list[StartupReporter] = []

        def body(reporter: StartupReporter) -> int:
            seen.append(reporter)
            return 7

        assert daemonize(body, log_file=tmp_path / "log.txt", foreground=True) == 7
        assert seen and seen[0].outcome is None

    def test_background_body_runs_detached(self, tmp_path: Path, capsys):
        marker = tmp_path / "marker"
        log_file = tmp_path / "daemon_log.txt"

        def body(reporter: StartupReporter) -> int:
            reporter.ready()
            print("hello from the daemon")
            tmp = marker.with_suffix(".tmp")
            tmp.write_text(f"{os.getpid()} {os.getsid(0)}", encoding="utf-8")
            os.replace(tmp, marker)
            return 0

        code = daemonize(body, log_file=log_file)
        assert code == 0

        deadline = time.monotonic() + 10
        while not marker.exists():
            assert time.monotonic() < deadline, "daemon never ran"
            time.sleep(0.05)

        daemon_pid, daemon_sid = map(int, marker.read_text(encoding="utf-8").split())
        assert daemon_pid != os.getpid()
        assert daemon_sid != os.getsid(0)
        assert "Supervisor started in background" in capsys.readouterr().out

    def test_background_setup_failure(self, tmp_path: Path, capsys):
        def body(reporter: StartupReporter) -> int:
            reporter.failed("channel setup failed")
            return 1

        assert daemonize(body, log_file=tmp_path / "log.txt") == 1
        assert "channel setup failed" in capsys.readouterr().err

    def test_background_crash_is_failure(self, tmp_path: Path, capsys):
        def body(reporter: StartupReporter) -> int:
            raise RuntimeError("boom")

        assert daemonize(body, log_file=tmp_path / "log.txt") == 1
        assert "boom" in capsys.readouterr().err


# ── PID file ──────────────────────────────────────────────


class TestPidFile:
    def test_write_read_remove(self, data_dir: Path):
        path = write_pid_file()
        assert path == data_dir / "run" / "supervisor.pid"
        assert read_pid() == os.getpid()

        remove_pid_file()
        assert read_pid() is None
        remove_pid_file()  # idempotent

    def test_invalid_contents(self, tmp_path: Path):
        pid_file = tmp_path / "supervisor.pid"
        pid_file.write_text("not-a-pid", encoding="utf-8")
        assert read_pid(pid_file) is None

    def test_is_process_alive(self):
        assert is_process_alive(os.getpid())

    def test_dead_process(self):
        pid = os.fork()
        if pid == 0:
            os._exit(0)
        os.waitpid(pid, 0)
        assert not is_process_alive(pid)

