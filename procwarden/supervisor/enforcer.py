"""
Timeout enforcer: terminate → grace → kill escalation for overdue workers.
"""

# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Awaitable, Callable, Iterable

from procwarden.supervisor.reaper import TerminationRecord, WaitPid
from procwarden.supervisor.table import WorkerRecord, WorkerState, WorkerTable

logger = logging.getLogger(__name__)

# settle(pid, state, termination) applies a terminal observation to the table
SettleFn = Callable[[int, WorkerState, "TerminationRecord | None"], bool]


class TimeoutEnforcer:
    """
    Detects workers that outlived ``timeout`` and terminates them.

    Runs only from the supervisor's monitor loop. The escalation is:

    1. SIGTERM every target
    2. wait ``grace_period`` once (the reaper may collect targets meanwhile)
    3. drain the handoff queue; for each target still active, collect it
       if it has exited, otherwise SIGKILL it and wait for it synchronously
    4. settle the target, unless the reaper path already counted it
    """

    def __init__(
        self,
        table: WorkerTable,
        *,
        timeout: float,
        grace_period: float,
        drain: Callable[[], object],
        settle: SettleFn,
        waitpid: WaitPid = os.waitpid,
        kill: Callable[[int, int], None] = os.kill,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self.table = table
        self.timeout = timeout
        self.grace_period = grace_period
        self._drain = drain
        self._settle = settle
        self._waitpid = waitpid
        self._kill = kill
        self._clock = clock
        self._sleep = sleep

    def overdue(self) -> list[WorkerRecord]:
        """Active records whose age exceeds the timeout."""
        now = self._clock()
        return [r for r in self.table.snapshot() if r.age(now) > self.timeout]

    async def sweep(self) -> int:
        """Escalate every overdue worker. Returns how many this sweep settled."""
        overdue = self.overdue()
        if not overdue:
            return 0

        now = self._clock()
        for record in overdue:
            logger.warning(
                "Worker timed out: pid=%d role=%s age=%.1fs limit=%.1fs",
                record.pid, record.role, record.age(now), self.timeout,
            )
        return await self.escalate(
            [r.pid for r in overdue], WorkerState.TIMED_OUT, reason="timeout",
        )

    async def escalate(
        self,
        pids: Iterable[int],
        state: WorkerState,
        reason: str = "timeout",
    ) -> int:
        """Terminate *pids*, then kill survivors after one grace period.

        Returns:
            Number of workers settled by this call (the rest were already
            observed through the reaper).
        """
        targets = list(pids)
        if not targets:
            return 0

        for pid in targets:
            self._send(pid, signal.SIGTERM)
            logger.info("Sent SIGTERM (%s): pid=%d", reason, pid)

        await self._sleep(self.grace_period)
        self._drain()

        settled = 0
        for pid in targets:
            record = self.table.get(pid)
            if record is None or not record.is_active:
                logger.debug("Worker already reaped during grace period: pid=%d", pid)
                continue

            termination = self._collect(pid)
            if termination is None:
                record = self.table.get(pid)
                if record is None or not record.is_active:
                    continue
                logger.warning("Exit status unavailable: pid=%d", pid)

            if self._settle(pid, state, termination):
                settled += 1
        return settled

    def _send(self, pid: int, sig: signal.Signals) -> None:
        try:
            self._kill(pid, sig)
        except ProcessLookupError:
            # Already exited; still needs collecting
            logger.debug("Signal %s to exited pid=%d ignored", sig.name, pid)

    def _collect(self, pid: int) -> TerminationRecord | None:
        """Collect *pid*, force-killing it if it survived SIGTERM.

        Returns None when the child was collected elsewhere.
        """
        try:
            wpid, status = self._waitpid(pid, os.WNOHANG)
            if wpid == 0:
                logger.warning("Worker survived SIGTERM, sending SIGKILL: pid=%d", pid)
                self._send(pid, signal.SIGKILL)
                # SIGKILL cannot be caught, so this wait is short
                wpid, status = self._waitpid(pid, 0)
        except ChildProcessError:
            self._drain()
            return None
        return TerminationRecord.from_wait_status(wpid, status)
