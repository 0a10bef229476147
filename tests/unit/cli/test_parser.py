"""Unit tests for procwarden/cli: argparse configuration and command handlers."""
# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from procwarden.cli.parser import build_parser, cli_main


class TestParserCommands:
    def _parse(self, *args: str) -> argparse.Namespace:
        return build_parser().parse_args(list(args))

    def test_run_two_integers(self):
        args = self._parse("run", "5", "2")
        assert (args.first, args.second) == (5, 2)
        assert args.timeout is None
        assert args.foreground is False

    def test_run_negative_integers(self):
        args = self._parse("run", "-3", "-3")
        assert (args.first, args.second) == (-3, -3)

    def test_run_options(self):
        args = self._parse("run", "1", "2", "--timeout", "4", "--foreground", "--log-level", "DEBUG")
        assert args.timeout == 4.0
        assert args.foreground is True
        assert args.log_level == "DEBUG"

    @pytest.mark.parametrize("argv", [
        ["run", "5"],
        ["run", "five", "2"],
        ["run", "2147483648", "0"],
        ["run", "0", "-2147483649"],
    ])
    def test_run_usage_errors_exit_2(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            self._parse(*argv)
        assert exc_info.value.code == 2

    def test_stop_default_wait(self):
        assert self._parse("stop").wait == 10.0

    def test_config_subcommands(self):
        args = self._parse("config", "set", "pool.worker_timeout", "3")
        assert args.config_command == "set"
        assert (args.key, args.value) == ("pool.worker_timeout", "3")

        args = self._parse("config", "list", "--section", "pool")
        assert args.section == "pool"


class TestCliMain:
    def test_no_command_prints_help(self, capsys):
        with patch("dotenv.load_dotenv"):
            cli_main([])
        assert "usage" in capsys.readouterr().out.lower()

    def test_data_dir_override(self, tmp_path: Path, monkeypatch, capsys):
        monkeypatch.setenv("PROCWARDEN_DATA_DIR", str(tmp_path / "default"))
        target = tmp_path / "custom"
        with patch("dotenv.load_dotenv"):
            cli_main(["--data-dir", str(target), "config", "get", "pool.capacity"])
        assert os.environ["PROCWARDEN_DATA_DIR"] == str(target)
        assert capsys.readouterr().out.strip() == "10"

    def test_run_dispatches(self):
        with (
            patch("dotenv.load_dotenv"),
            patch("procwarden.cli.commands.supervisor.cmd_run") as mock_run,
        ):
            cli_main(["run", "5", "2", "--foreground"])
        args = mock_run.call_args[0][0]
        assert (args.first, args.second, args.foreground) == (5, 2, True)


# ── Command handlers ──────────────────────────────────────


class TestSupervisorCommands:
    def test_run_rejects_non_positive_timeout(self, data_dir: Path):
        from procwarden.cli.commands.supervisor import cmd_run

        args = argparse.Namespace(first=1, second=2, timeout=0.0, foreground=True, log_level=None)
        with pytest.raises(SystemExit) as exc_info:
            cmd_run(args)
        assert exc_info.value.code == 2

    def test_run_refuses_second_instance(self, data_dir: Path, capsys):
        from procwarden.cli.commands.supervisor import cmd_run
        from procwarden.supervisor.daemon import write_pid_file

        write_pid_file()  # this test process is alive
        args = argparse.Namespace(first=1, second=2, timeout=None, foreground=True, log_level=None)
        with pytest.raises(SystemExit) as exc_info:
            cmd_run(args)
        assert exc_info.value.code == 1
        assert "already running" in capsys.readouterr().out

    def test_run_exits_with_daemon_code(self, data_dir: Path):
        from procwarden.cli.commands.supervisor import cmd_run

        args = argparse.Namespace(first=1, second=2, timeout=None, foreground=True, log_level=None)
        with patch("procwarden.cli.commands.supervisor.daemonize", return_value=0) as mock_d:
            with pytest.raises(SystemExit) as exc_info:
                cmd_run(args)
        assert exc_info.value.code == 0
        assert mock_d.call_args.kwargs["log_file"] == data_dir / "daemon_log.txt"
        assert mock_d.call_args.kwargs["foreground"] is True

    def test_stop_when_not_running(self, data_dir: Path, capsys):
        from procwarden.cli.commands.supervisor import cmd_stop

        cmd_stop(argparse.Namespace(wait=1.0))
        assert "not running" in capsys.readouterr().out

    def test_stale_pid_file_cleaned(self, data_dir: Path, capsys):
        from procwarden.cli.commands.supervisor import cmd_reload
        from procwarden.paths import get_pid_file

        pid_file = get_pid_file()
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text("999999999", encoding="utf-8")

        cmd_reload(argparse.Namespace())
        assert not pid_file.exists()
        assert "not running" in capsys.readouterr().out

    def test_reload_sends_sighup(self, data_dir: Path, capsys):
        from procwarden.cli.commands.supervisor import cmd_reload

        with (
            patch("procwarden.cli.commands.supervisor.read_pid", return_value=4242),
            patch("procwarden.cli.commands.supervisor.is_process_alive", return_value=True),
            patch("procwarden.cli.commands.supervisor.os.kill") as mock_kill,
        ):
            cmd_reload(argparse.Namespace())
        mock_kill.assert_called_once_with(4242, signal.SIGHUP)
        assert "Reload requested (pid=4242)" in capsys.readouterr().out

    def test_stop_waits_for_exit(self, data_dir: Path, capsys):
        from procwarden.cli.commands.supervisor import cmd_stop

        alive = iter([True, False])
        with (
            patch("procwarden.cli.commands.supervisor.read_pid", return_value=4242),
            patch(
                "procwarden.cli.commands.supervisor.is_process_alive",
                side_effect=lambda pid: next(alive),
            ),
            patch("procwarden.cli.commands.supervisor.os.kill") as mock_kill,
        ):
            cmd_stop(argparse.Namespace(wait=5.0))
        mock_kill.assert_called_once_with(4242, signal.SIGTERM)
        assert "Supervisor stopped." in capsys.readouterr().out
