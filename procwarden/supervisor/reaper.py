"""
Termination reaper and the handoff queue it feeds.

The reaper runs from the SIGCHLD handler. It collects every terminated
child without blocking and hands a record per pid to the monitor loop;
it never logs and never touches the worker table.
"""

# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import os
import signal
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum


class ExitKind(Enum):
    NORMAL = "normal"    # exited; code is the exit status
    KILLED = "killed"    # terminated by a signal; code is the signal number


@dataclass(frozen=True)
class TerminationRecord:
    """How one worker terminated."""
    pid: int
    kind: ExitKind
    code: int

    @classmethod
    def from_wait_status(cls, pid: int, status: int) -> TerminationRecord:
        """Classify a raw ``waitpid`` status."""
        if os.WIFSIGNALED(status):
            return cls(pid=pid, kind=ExitKind.KILLED, code=os.WTERMSIG(status))
        if os.WIFEXITED(status):
            return cls(pid=pid, kind=ExitKind.NORMAL, code=os.WEXITSTATUS(status))
        raise ValueError(f"Status {status:#x} for pid {pid} is not a termination")

    def describe(self) -> str:
        if self.kind == ExitKind.KILLED:
            try:
                name = signal.Signals(self.code).name
            except ValueError:
                name = "unknown"
            return f"killed by signal {self.code} ({name})"
        return f"exited with status {self.code}"


# ── Handoff Queue ──────────────────────────────────────────────────

class TerminationHandoff:
    """
    Bounded single-producer/single-consumer queue of termination records.

    Backed by :class:`collections.deque`, whose ``append`` and ``popleft``
    are atomic, so the reaper may push while the monitor loop drains.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._queue: deque[TerminationRecord] = deque()

    def push(self, record: TerminationRecord) -> bool:
        """Enqueue *record*. Returns False when the queue is full."""
        if len(self._queue) >= self.capacity:
            return False
        self._queue.append(record)
        return True

    def drain(self) -> Iterator[TerminationRecord]:
        """Yield and remove records until the queue is empty."""
        while self._queue:
            yield self._queue.popleft()

    def full(self) -> bool:
        return len(self._queue) >= self.capacity

    def __len__(self) -> int:
        return len(self._queue)


# ── Reaper ──────────────────────────────────────────────────────────

WaitPid = Callable[[int, int], tuple[int, int]]


class TerminationReaper:
    """Collects terminated children and pushes records onto a handoff queue."""

    def __init__(
        self,
        handoff: TerminationHandoff,
        waitpid: WaitPid = os.waitpid,
        on_collected: Callable[[], None] | None = None,
    ):
        self.handoff = handoff
        self._waitpid = waitpid
        self._on_collected = on_collected
        self._pushed: set[int] = set()
        self._installed_loop: asyncio.AbstractEventLoop | None = None

    def reap(self) -> int:
        """Collect every terminated child that is currently collectible.

        Stops early when the handoff queue is full; the remaining children
        stay collectible and are picked up by the next invocation.

        Returns:
            Number of records pushed.
        """
        pushed = 0
        while not self.handoff.full():
            try:
                pid, status = self._waitpid(-1, os.WNOHANG)
            except ChildProcessError:
                break
            if pid == 0:
                break
            if pid in self._pushed:
                continue
            try:
                record = TerminationRecord.from_wait_status(pid, status)
            except ValueError:
                continue
            self.handoff.push(record)
            self._pushed.add(pid)
            pushed += 1
        return pushed

    def forget(self, pid: int) -> None:
        """Allow *pid* to be pushed again (after the kernel recycles it)."""
        self._pushed.discard(pid)

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Run :meth:`reap` whenever SIGCHLD is delivered to *loop*'s process.

        ``on_collected`` is called after an invocation that pushed records.
        """
        loop.add_signal_handler(signal.SIGCHLD, self._on_sigchld)
        self._installed_loop = loop

    def _on_sigchld(self) -> None:
        if self.reap() and self._on_collected is not None:
            self._on_collected()

    def uninstall(self) -> None:
        if self._installed_loop is not None:
            self._installed_loop.remove_signal_handler(signal.SIGCHLD)
            self._installed_loop = None
