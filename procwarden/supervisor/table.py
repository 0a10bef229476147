"""
Worker table: the supervisor's single-owner record of active workers.
"""

# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from procwarden.exceptions import CapacityExceededError, DuplicateWorkerError
from procwarden.supervisor.reaper import TerminationRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


# ── Worker State ───────────────────────────────────────────────────

class WorkerState(Enum):
    """State of a tracked worker."""
    ACTIVE = "active"          # Spawned, not yet observed terminated
    TIMED_OUT = "timed_out"    # Terminated by the timeout escalation
    REAPED = "reaped"          # Termination collected by the reaper or shutdown


@dataclass
class WorkerRecord:
    """One spawned worker."""
    pid: int
    start_time: float                      # time.monotonic() at spawn
    role: str = "worker"
    started_at: datetime = field(default_factory=datetime.now)
    state: WorkerState = WorkerState.ACTIVE
    termination: TerminationRecord | None = None

    @property
    def is_active(self) -> bool:
        return self.state == WorkerState.ACTIVE

    def age(self, now: float) -> float:
        return now - self.start_time


class TableSnapshot:
    """Restartable view of the records that were active when it was taken.

    Iterating yields records lazily and skips those that became terminal
    in the meantime, so the timeout sweep never acts on a reaped worker.
    """

    def __init__(self, table: WorkerTable):
        self._table = table
        self._pids = tuple(r.pid for r in table._records.values() if r.is_active)

    def __iter__(self) -> Iterator[WorkerRecord]:
        for pid in self._pids:
            record = self._table.get(pid)
            if record is not None and record.is_active:
                yield record

    def __len__(self) -> int:
        return len(self._pids)


# ── Worker Table ────────────────────────────────────────────────────

class WorkerTable:
    """
    Bounded, insertion-ordered set of worker records.

    Invariants:
    - ``count() <= capacity``
    - no two active records share a pid

    Only the supervisor's monitor loop mutates the table.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._records: dict[int, WorkerRecord] = {}

    def register(
        self,
        pid: int,
        start_time: float,
        role: str = "worker",
    ) -> WorkerRecord:
        """Add an active record for *pid*.

        Raises:
            CapacityExceededError: If the table is full
            DuplicateWorkerError: If *pid* is already tracked
        """
        if pid in self._records:
            raise DuplicateWorkerError(pid)
        if len(self._records) >= self.capacity:
            raise CapacityExceededError(self.capacity)

        record = WorkerRecord(pid=pid, start_time=start_time, role=role)
        self._records[pid] = record
        logger.debug("Registered worker pid=%d role=%s (%d/%d)",
                     pid, role, len(self._records), self.capacity)
        return record

    def mark_terminal(
        self,
        pid: int,
        state: WorkerState,
        termination: TerminationRecord | None = None,
    ) -> bool:
        """Move *pid* from ACTIVE to a terminal *state*.

        Returns:
            True if the record transitioned, False if *pid* is unknown or
            already terminal (the call is then a no-op).
        """
        if state == WorkerState.ACTIVE:
            raise ValueError("mark_terminal requires a terminal state")
        record = self._records.get(pid)
        if record is None or not record.is_active:
            return False
        record.state = state
        record.termination = termination
        return True

    def get(self, pid: int) -> WorkerRecord | None:
        return self._records.get(pid)

    def remove(self, pid: int) -> WorkerRecord | None:
        """Drop a fully processed record."""
        return self._records.pop(pid, None)

    def snapshot(self) -> TableSnapshot:
        return TableSnapshot(self)

    def active_pids(self) -> list[int]:
        return [r.pid for r in self._records.values() if r.is_active]

    def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, pid: object) -> bool:
        return pid in self._records

    def __len__(self) -> int:
        return len(self._records)


# ── Completion Counter ──────────────────────────────────────────────

class CompletionCounter:
    """Monotonic count of workers whose termination has been observed.

    Each distinct pid contributes exactly once, whichever path saw it first.
    """

    def __init__(self) -> None:
        self._counted: set[int] = set()

    def record(self, pid: int) -> bool:
        """Count *pid*. Returns False if it was already counted."""
        if pid in self._counted:
            return False
        self._counted.add(pid)
        return True

    def __contains__(self, pid: object) -> bool:
        return pid in self._counted

    @property
    def value(self) -> int:
        return len(self._counted)
