# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of ProcWarden, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized path resolution for ProcWarden.

All modules import directory paths from here instead of computing them ad-hoc.
Runtime data directory can be overridden via PROCWARDEN_DATA_DIR environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default runtime data directory
_DEFAULT_DATA_DIR = Path.home() / ".procwarden"


def get_data_dir() -> Path:
    """Return the runtime data directory, respecting PROCWARDEN_DATA_DIR env var."""
    env_val = os.environ.get("PROCWARDEN_DATA_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return _DEFAULT_DATA_DIR


def get_run_dir() -> Path:
    return get_data_dir() / "run"


def get_pid_file() -> Path:
    """Return the path to the supervisor PID file."""
    return get_run_dir() / "supervisor.pid"


def resolve_in_data_dir(path: Path | str) -> Path:
    """Resolve *path* relative to the data directory unless it is absolute."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return get_data_dir() / p
