from __future__ import annotations
# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of ProcWarden, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for ProcWarden.

All domain-specific exceptions derive from :class:`ProcWardenError`,
enabling callers to catch the entire family with a single clause::

    try:
        ...
    except ProcWardenError as e:
        logger.error("Domain error: %s", e)
"""


class ProcWardenError(Exception):
    """Base exception for all ProcWarden errors."""


# ── Setup ────────────────────────────────────────────────────


class SetupError(ProcWardenError):
    """Fatal failure before any worker has been spawned."""


class ChannelSetupError(SetupError):
    """Channel endpoints could not be created."""


class DaemonizeError(SetupError):
    """Detaching into the background failed."""


# ── Worker Table ─────────────────────────────────────────────


class WorkerTableError(ProcWardenError):
    """Worker table bookkeeping errors."""


class CapacityExceededError(WorkerTableError):
    """Table already holds ``capacity`` records."""

    def __init__(self, capacity: int) -> None:
        super().__init__(f"Worker table is full (capacity={capacity})")
        self.capacity = capacity


class DuplicateWorkerError(WorkerTableError):
    """An active record with the same pid already exists."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Worker already registered: pid={pid}")
        self.pid = pid


# ── Transport ────────────────────────────────────────────────


class TransportError(ProcWardenError):
    """Channel open/read/write failure inside a worker."""


class ShortTransferError(TransportError):
    """Fewer bytes than the fixed payload size were transferred."""

    def __init__(self, channel: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Short transfer on {channel}: expected {expected} bytes, got {actual}"
        )
        self.channel = channel
        self.expected = expected
        self.actual = actual


# ── Configuration ────────────────────────────────────────────


class ConfigError(ProcWardenError):
    """Configuration errors."""


class ConfigValidationError(ConfigError):
    """Configuration validation failure."""
