# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from procwarden.config.models import (
    ChannelConfig,
    LoggingConfig,
    PoolConfig,
    ProcWardenConfig,
    get_config_path,
    invalidate_cache,
    load_config,
    save_config,
)

__all__ = [
    "ChannelConfig",
    "LoggingConfig",
    "PoolConfig",
    "ProcWardenConfig",
    "get_config_path",
    "invalidate_cache",
    "load_config",
    "save_config",
]
