# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of ProcWarden, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized logging configuration for ProcWarden.

Uses structlog in stdlib-compatible mode so that plain
``logging.getLogger()`` calls are rendered through structlog's
processor pipeline (ISO timestamps, context binding, JSON output).

Provides:
- setup_logging(): supervisor logging (append-only file + optional console)
- setup_worker_logging(): worker logging to stderr, tagged with role and pid
- bind_worker_context(): tags worker log lines through contextvars
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import orjson
import structlog


def bind_worker_context(role: str, pid: int | None = None) -> None:
    """Tag every subsequent log line of this process with *role* and *pid*."""
    structlog.contextvars.bind_contextvars(
        role=role, pid=pid if pid is not None else os.getpid(),
    )


# ── Shared Processors ──────────────────────────────────────────


def _build_shared_processors() -> list:
    """Build the shared processor chain used by both structlog and stdlib."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _orjson_serializer(obj: object, **_kw) -> str:  # noqa: ANN001
    return orjson.dumps(obj).decode("utf-8")


def _line_formatter(json_lines: bool, foreign_pre_chain: list) -> structlog.stdlib.ProcessorFormatter:
    renderer: Any
    if json_lines:
        renderer = structlog.processors.JSONRenderer(serializer=_orjson_serializer)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=foreign_pre_chain,
    )


def _configure_structlog(shared_processors: list) -> None:
    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ── Supervisor Setup ───────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_lines: bool = False,
    console: bool = True,
) -> None:
    """Configure logging for the supervisor process.

    The log file is opened in append mode and never rotated: worker
    processes write to the same file through their inherited stderr, so
    renaming it underneath them would split the event history.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, etc.).
        log_file: Append-only event log. If None, file logging is disabled.
        json_lines: Render the file as JSON lines instead of plain text.
        console: Also log to stderr (disabled once daemonized, because
            stderr then points at the log file itself).
    """
    shared_processors = _build_shared_processors()
    _configure_structlog(shared_processors)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    foreign_pre_chain = list(shared_processors)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(),
                ],
                foreign_pre_chain=foreign_pre_chain,
            )
        )
        root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_line_formatter(json_lines, foreign_pre_chain))
        root.addHandler(file_handler)


# ── Worker Setup ───────────────────────────────────────────────


def setup_worker_logging(
    role: str,
    level: str = "INFO",
    json_lines: bool = False,
) -> None:
    """Configure logging for a worker process.

    Workers log to stderr only; the supervisor points a worker's stderr at
    the shared event log when it spawns it.
    """
    shared_processors = _build_shared_processors()
    _configure_structlog(shared_processors)
    bind_worker_context(role)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_line_formatter(json_lines, list(shared_processors)))
    root.addHandler(handler)
