# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for ProcWarden.

Provides data directory isolation, config cache management and
root logger restoration.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an isolated runtime data directory.

    Sets PROCWARDEN_DATA_DIR and invalidates the config cache so every
    test sees its own config.json.
    """
    from procwarden.config import invalidate_cache

    d = tmp_path / "procwarden"
    d.mkdir()
    monkeypatch.setenv("PROCWARDEN_DATA_DIR", str(d))
    invalidate_cache()

    yield d

    # Cleanup: invalidate again to avoid leaking between tests
    invalidate_cache()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handler changes made by setup_logging() / setup_worker_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
