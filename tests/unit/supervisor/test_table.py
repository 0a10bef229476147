# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the worker table and completion counter."""

from __future__ import annotations

import pytest

from procwarden.exceptions import CapacityExceededError, DuplicateWorkerError
from procwarden.supervisor.reaper import ExitKind, TerminationRecord
from procwarden.supervisor.table import (
    DEFAULT_CAPACITY,
    CompletionCounter,
    WorkerState,
    WorkerTable,
)


class TestRegister:
    def test_default_capacity(self):
        assert WorkerTable().capacity == DEFAULT_CAPACITY == 10

    def test_register_active(self):
        table = WorkerTable()
        record = table.register(100, start_time=1.0, role="compare")
        assert record.is_active
        assert record.role == "compare"
        assert 100 in table
        assert table.count() == 1

    def test_capacity_enforced(self):
        table = WorkerTable(capacity=2)
        table.register(1, 0.0)
        table.register(2, 0.0)
        with pytest.raises(CapacityExceededError):
            table.register(3, 0.0)
        assert table.count() == 2

    def test_duplicate_pid_rejected(self):
        table = WorkerTable()
        table.register(7, 0.0)
        with pytest.raises(DuplicateWorkerError):
            table.register(7, 1.0)

    def test_pid_reusable_after_remove(self):
        table = WorkerTable()
        table.register(7, 0.0)
        table.mark_terminal(7, WorkerState.REAPED)
        table.remove(7)
        table.register(7, 5.0)
        assert table.get(7).start_time == 5.0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            WorkerTable(capacity=0)


class TestMarkTerminal:
    def test_transition_once(self):
        table = WorkerTable()
        table.register(10, 0.0)
        term = TerminationRecord(10, ExitKind.NORMAL, 0)

        assert table.mark_terminal(10, WorkerState.REAPED, term) is True
        assert table.get(10).state == WorkerState.REAPED
        assert table.get(10).termination is term

        assert table.mark_terminal(10, WorkerState.TIMED_OUT) is False
        assert table.get(10).state == WorkerState.REAPED

    def test_unknown_pid(self):
        assert WorkerTable().mark_terminal(999, WorkerState.REAPED) is False

    def test_active_is_not_terminal(self):
        table = WorkerTable()
        table.register(1, 0.0)
        with pytest.raises(ValueError):
            table.mark_terminal(1, WorkerState.ACTIVE)


class TestSnapshot:
    def test_skips_records_that_became_terminal(self):
        table = WorkerTable()
        for pid in (1, 2, 3):
            table.register(pid, 0.0)

        snap = table.snapshot()
        assert len(snap) == 3

        table.mark_terminal(2, WorkerState.REAPED)
        assert [r.pid for r in snap] == [1, 3]

    def test_restartable(self):
        table = WorkerTable()
        table.register(1, 0.0)
        snap = table.snapshot()
        assert [r.pid for r in snap] == [1]
        assert [r.pid for r in snap] == [1]

    def test_does_not_see_later_registrations(self):
        table = WorkerTable()
        table.register(1, 0.0)
        snap = table.snapshot()
        table.register(2, 0.0)
        assert [r.pid for r in snap] == [1]

    def test_active_pids_and_age(self):
        table = WorkerTable()
        table.register(1, start_time=10.0)
        table.register(2, start_time=12.0)
        table.mark_terminal(1, WorkerState.TIMED_OUT)
        assert table.active_pids() == [2]
        assert table.get(2).age(now=15.0) == 3.0


class TestCompletionCounter:
    def test_counts_each_pid_once(self):
        counter = CompletionCounter()
        assert counter.record(5) is True
        assert counter.record(5) is False
        assert counter.record(6) is True
        assert counter.value == 2
        assert 5 in counter
        assert 7 not in counter

    def test_starts_at_zero(self):
        assert CompletionCounter().value == 0
