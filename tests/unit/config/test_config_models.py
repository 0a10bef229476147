# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for procwarden/config/models.py."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from procwarden.config.models import (
    ChannelConfig,
    PoolConfig,
    ProcWardenConfig,
    get_config_path,
    invalidate_cache,
    load_config,
    save_config,
)
from procwarden.exceptions import ConfigValidationError


class TestDefaults:
    def test_pool_defaults(self):
        pool = PoolConfig()
        assert pool.capacity == 10
        assert pool.worker_timeout == 30.0
        assert pool.grace_period == 1.0
        assert pool.tick_interval == 2.0

    def test_channel_defaults(self):
        ch = ChannelConfig()
        assert ch.directory is None
        assert (ch.request_name, ch.result_name) == ("fifo1", "fifo2")

    def test_logging_defaults(self):
        cfg = ProcWardenConfig()
        assert cfg.logging.file == "daemon_log.txt"
        assert cfg.logging.level == "INFO"
        assert cfg.logging.json_lines is False


class TestValidation:
    def test_capacity_must_be_positive(self):
        with pytest.raises(ValidationError):
            PoolConfig(capacity=0)

    def test_grace_must_be_shorter_than_tick(self):
        with pytest.raises(ValidationError, match="grace_period"):
            PoolConfig(grace_period=2.0, tick_interval=2.0)

    def test_channel_names_must_differ(self):
        with pytest.raises(ValidationError, match="must differ"):
            ChannelConfig(request_name="same", result_name="same")


class TestLoadSave:
    def test_get_config_path_uses_data_dir(self, data_dir: Path):
        assert get_config_path() == data_dir / "config.json"

    def test_missing_file_returns_defaults(self, data_dir: Path):
        cfg = load_config()
        assert cfg == ProcWardenConfig()

    def test_save_then_load(self, data_dir: Path):
        cfg = ProcWardenConfig()
        cfg.pool.worker_timeout = 5.0
        save_config(cfg)

        invalidate_cache()
        loaded = load_config()
        assert loaded.pool.worker_timeout == 5.0

        on_disk = json.loads((data_dir / "config.json").read_text(encoding="utf-8"))
        assert on_disk["pool"]["worker_timeout"] == 5.0

    def test_cache_returns_same_instance(self, data_dir: Path):
        save_config(ProcWardenConfig())
        assert load_config() is load_config()

    def test_cache_reloads_when_file_changes(self, data_dir: Path):
        path = data_dir / "config.json"
        save_config(ProcWardenConfig())
        first = load_config()

        path.write_text(json.dumps({"pool": {"capacity": 3}}), encoding="utf-8")
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 5))

        second = load_config()
        assert second is not first
        assert second.pool.capacity == 3

    def test_invalid_json_raises(self, data_dir: Path):
        (data_dir / "config.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="Invalid JSON"):
            load_config()

    def test_invalid_values_raise(self, data_dir: Path):
        (data_dir / "config.json").write_text(
            json.dumps({"pool": {"capacity": -1}}), encoding="utf-8",
        )
        with pytest.raises(ConfigValidationError):
            load_config()
