# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of ProcWarden, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Central configuration module for ProcWarden.

Defines Pydantic models for config.json and provides load / save
helpers with a module-level singleton cache.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from procwarden.exceptions import ConfigValidationError

logger = logging.getLogger("procwarden.config")

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class PoolConfig(BaseModel):
    """Worker pool sizing and lifetime limits (seconds)."""

    capacity: int = Field(default=10, ge=1)
    worker_timeout: float = Field(default=30.0, gt=0)
    grace_period: float = Field(default=1.0, gt=0)
    tick_interval: float = Field(default=2.0, gt=0)
    feed_poll_interval: float = Field(default=0.1, gt=0)
    report_delay: float = Field(default=0.0, ge=0)  # startup delay of the report worker

    @model_validator(mode="after")
    def _grace_shorter_than_tick(self) -> "PoolConfig":
        if self.grace_period >= self.tick_interval:
            raise ValueError(
                f"grace_period ({self.grace_period}) must be shorter than "
                f"tick_interval ({self.tick_interval})"
            )
        return self


class ChannelConfig(BaseModel):
    directory: str | None = None  # None = data dir
    request_name: str = "fifo1"
    result_name: str = "fifo2"

    @model_validator(mode="after")
    def _distinct_names(self) -> "ChannelConfig":
        if self.request_name == self.result_name:
            raise ValueError("request_name and result_name must differ")
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = "daemon_log.txt"
    json_lines: bool = False


class ProcWardenConfig(BaseModel):
    pool: PoolConfig = PoolConfig()
    channels: ChannelConfig = ChannelConfig()
    logging: LoggingConfig = LoggingConfig()


# ---------------------------------------------------------------------------
# Singleton cache
# ---------------------------------------------------------------------------

_config: ProcWardenConfig | None = None
_config_path: Path | None = None
_config_mtime: float = 0.0


def invalidate_cache() -> None:
    """Drop the cached configuration so the next load re-reads the file."""
    global _config, _config_path, _config_mtime
    _config = None
    _config_path = None
    _config_mtime = 0.0


def get_config_path(data_dir: Path | None = None) -> Path:
    """Return the path to config.json inside *data_dir*.

    If *data_dir* is not given, it is resolved via ``procwarden.paths.get_data_dir``
    (imported lazily to avoid circular imports).
    """
    if data_dir is None:
        from procwarden.paths import get_data_dir

        data_dir = get_data_dir()
    return data_dir / "config.json"


# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None) -> ProcWardenConfig:
    """Load configuration from disk, returning cached instance when possible.

    If *path* is ``None``, :func:`get_config_path` determines the location.
    When the file does not exist the default configuration is returned.

    The cache is invalidated when the file's mtime changes, so edits made
    through ``procwarden config set`` are picked up by a later reload.
    """
    global _config, _config_path, _config_mtime

    if path is None:
        path = get_config_path()

    if _config is not None and _config_path == path:
        try:
            disk_mtime = path.stat().st_mtime
        except OSError:
            disk_mtime = 0.0
        if disk_mtime == _config_mtime:
            return _config
        logger.debug("Config file changed on disk (mtime %.3f → %.3f); reloading", _config_mtime, disk_mtime)

    if path.is_file():
        logger.debug("Loading config from %s", path)
        try:
            data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            config = ProcWardenConfig.model_validate(data)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse %s: %s", path, exc)
            raise ConfigValidationError(f"Invalid JSON in {path}: {exc}") from exc
        except ValidationError as exc:
            logger.error("Invalid config in %s: %s", path, exc)
            raise ConfigValidationError(str(exc)) from exc
    else:
        logger.debug("Config file not found at %s; using defaults", path)
        config = ProcWardenConfig()

    _config = config
    _config_path = path
    try:
        _config_mtime = path.stat().st_mtime
    except OSError:
        _config_mtime = 0.0
    return config


def save_config(config: ProcWardenConfig, path: Path | None = None) -> None:
    """Persist *config* to disk as pretty-printed JSON.

    Updates the module-level singleton cache so subsequent :func:`load_config`
    calls return the freshly saved config.
    """
    global _config, _config_path, _config_mtime

    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    payload = config.model_dump(mode="json")
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    path.write_text(text, encoding="utf-8")

    logger.debug("Config saved to %s", path)

    _config = config
    _config_path = path
    try:
        _config_mtime = path.stat().st_mtime
    except OSError:
        _config_mtime = 0.0
