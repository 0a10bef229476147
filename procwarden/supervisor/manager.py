"""
Worker Supervisor - Spawns workers, reaps them and enforces their lifetime.
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
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from procwarden.config.models import PoolConfig, invalidate_cache
from procwarden.exceptions import (
    CapacityExceededError,
    SetupError,
    TransportError,
)
from procwarden.supervisor.channels import ChannelTransport, PairPayload
from procwarden.supervisor.enforcer import TimeoutEnforcer
from procwarden.supervisor.process_handle import WorkerHandle, WorkerSpec, spawn
from procwarden.supervisor.reaper import (
    TerminationHandoff,
    TerminationReaper,
    TerminationRecord,
)
from procwarden.supervisor.table import (
    CompletionCounter,
    WorkerState,
    WorkerTable,
)

logger = logging.getLogger(__name__)


# ── Configuration ──────────────────────────────────────────────────

@dataclass
class MonitorConfig:
    """Monitor loop timing (seconds) and pool size."""
    capacity: int = 10                     # Maximum concurrent workers
    worker_timeout: float = 30.0           # Lifetime before escalation
    grace_period: float = 1.0              # SIGTERM → SIGKILL delay
    tick_interval: float = 2.0             # Monitor loop period
    feed_poll_interval: float = 0.1        # Request channel open retry

    @classmethod
    def from_pool_config(cls, pool: PoolConfig) -> MonitorConfig:
        return cls(
            capacity=pool.capacity,
            worker_timeout=pool.worker_timeout,
            grace_period=pool.grace_period,
            tick_interval=pool.tick_interval,
            feed_poll_interval=pool.feed_poll_interval,
        )


def pipeline_specs(
    transport: ChannelTransport,
    report_delay: float = 0.0,
    log_level: str = "INFO",
    json_lines: bool = False,
) -> list[WorkerSpec]:
    """The compare → report worker pair wired to *transport*."""
    return [
        WorkerSpec.compare(transport.request_path, transport.result_path, log_level, json_lines),
        WorkerSpec.report(transport.result_path, report_delay, log_level, json_lines),
    ]


# ── Worker Supervisor ──────────────────────────────────────────────

class WorkerSupervisor:
    """
    Supervisor for a bounded pool of short-lived workers.

    Responsibilities:
    - Create and tear down the channel transport
    - Spawn workers and register them in the worker table
    - Drain reaper records and count each worker exactly once
    - Escalate termination of workers that exceed their timeout
    - Honor shutdown (SIGTERM/SIGINT), reload (SIGHUP) and status (SIGUSR1)

    The worker table and completion counter are only ever touched from
    the monitor loop; the SIGCHLD reaper talks to it through the handoff
    queue.
    """

    def __init__(
        self,
        transport: ChannelTransport,
        monitor_config: MonitorConfig | None = None,
        log_file: Path | None = None,
    ):
        self.transport = transport
        self.config = monitor_config or MonitorConfig()
        self.log_file = log_file

        self.table = WorkerTable(self.config.capacity)
        self._wake = asyncio.Event()
        self.handoff = TerminationHandoff(self.config.capacity)
        # A collected worker wakes the monitor loop before the next tick
        self.reaper = TerminationReaper(self.handoff, on_collected=self._wake.set)
        self.counter = CompletionCounter()
        self.enforcer = TimeoutEnforcer(
            self.table,
            timeout=self.config.worker_timeout,
            grace_period=self.config.grace_period,
            drain=self.drain_handoff,
            settle=self._settle,
        )

        self.handles: dict[int, WorkerHandle] = {}
        self.expected = 0
        self._shutdown_requested = False
        self._feed_task: asyncio.Task | None = None
        self._stderr_file: IO[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def completed(self) -> bool:
        return self.expected > 0 and self.counter.value >= self.expected

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    # ── Lifecycle ──────────────────────────────────────────────

    async def run(
        self,
        specs: Sequence[WorkerSpec],
        request: PairPayload | None = None,
        on_ready: Callable[[], None] | None = None,
    ) -> int:
        """
        Start the workers and supervise them until all are accounted for.

        Args:
            specs: Workers to spawn, in order
            request: Payload to feed into the request channel, if any
            on_ready: Called once every worker has been spawned

        Returns:
            Exit code (0 on completion or honored shutdown)

        Raises:
            SetupError: If the request does not fit the channel payload,
                the transport cannot be created or the first worker cannot
                be spawned
        """
        if not specs:
            raise SetupError("No workers to run")
        if len(specs) > self.config.capacity:
            raise SetupError(
                f"{len(specs)} workers requested but capacity is {self.config.capacity}"
            )
        if request is not None:
            try:
                request.to_bytes()
            except ValueError as e:
                raise SetupError(f"Invalid request: {e}") from e

        self.transport.create()
        self._loop = asyncio.get_running_loop()
        try:
            self._install_signal_handlers(self._loop)
            self.reaper.install(self._loop)
            self._open_worker_log()

            self.expected = len(specs)
            self._spawn_all(specs)
            if on_ready is not None:
                on_ready()

            if request is not None:
                self._feed_task = asyncio.create_task(self._feed(request))

            await self._monitor_loop()

            if self._shutdown_requested and not self.completed:
                await self.shutdown()
        finally:
            await self._teardown()

        logger.info(
            "Supervisor finished: %d/%d workers accounted for",
            self.counter.value, self.expected,
        )
        return 0

    def _spawn_all(self, specs: Sequence[WorkerSpec]) -> None:
        for spec in specs:
            try:
                self.spawn(spec)
            except OSError as e:
                logger.error("Failed to spawn %s worker: %s", spec.role, e)
                if self.table.count() == 0:
                    raise SetupError(f"Failed to spawn {spec.role} worker: {e}") from e
                # Already spawned workers still have to be collected
                self.expected = len(self.handles)
                self._shutdown_requested = True
                return

    def spawn(self, spec: WorkerSpec) -> WorkerHandle:
        """Spawn one worker and register it.

        Raises:
            CapacityExceededError: If the table is full (nothing is spawned)
            OSError: If the process cannot be started
        """
        if self.table.count() >= self.table.capacity:
            raise CapacityExceededError(self.table.capacity)

        handle = spawn(spec, stderr=self._stderr_file)
        self.reaper.forget(handle.pid)
        self.table.register(handle.pid, handle.start_time, role=spec.role)
        self.handles[handle.pid] = handle
        logger.info("Worker spawned: pid=%d role=%s", handle.pid, spec.role)
        return handle

    async def _monitor_loop(self) -> None:
        """
        Monitor loop.

        Every tick: drain reaper records, run the timeout sweep, check
        for completion. A shutdown request wakes the loop immediately.
        """
        logger.info(
            "Monitor loop started (workers=%d, tick=%.1fs, timeout=%.1fs)",
            self.expected, self.config.tick_interval, self.config.worker_timeout,
        )

        while True:
            self.drain_handoff()
            if self.completed or self._shutdown_requested:
                break

            await self.enforcer.sweep()
            if self.completed or self._shutdown_requested:
                break

            logger.debug(
                "Monitor tick: completed=%d/%d active=%d",
                self.counter.value, self.expected, self.table.count(),
            )
            try:
                await asyncio.wait_for(
                    self._wake.wait(), timeout=self.config.tick_interval,
                )
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

        if self.completed:
            logger.info("All workers have exited (%d/%d)", self.counter.value, self.expected)
        logger.info("Monitor loop stopped")

    async def shutdown(self) -> None:
        """Terminate every active worker, killing survivors after one grace period."""
        active = self.table.active_pids()
        logger.info("Shutting down: %d active worker(s)", len(active))

        if active:
            await self.enforcer.escalate(active, WorkerState.REAPED, reason="shutdown")
        self.drain_handoff()

        leftover = self.table.active_pids()
        if leftover:
            logger.error("Workers left uncollected after shutdown: %s", leftover)

    async def _teardown(self) -> None:
        if self._feed_task is not None:
            self._feed_task.cancel()
            try:
                await self._feed_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Request feed failed")
            self._feed_task = None

        self.reaper.uninstall()
        if self._loop is not None:
            self._remove_signal_handlers(self._loop)
            self._loop = None

        self._kill_leftovers()
        self.transport.teardown()
        self.table.clear()

        if self._stderr_file is not None:
            try:
                self._stderr_file.close()
            except OSError:
                logger.debug("Failed to close worker log stream", exc_info=True)
            self._stderr_file = None

    def _kill_leftovers(self) -> None:
        """SIGKILL and collect workers still active after an aborted run."""
        self.drain_handoff()
        for pid in self.table.active_pids():
            handle = self.handles.get(pid)
            logger.warning("Killing leftover worker: pid=%d", pid)
            if handle is not None:
                handle.kill()
            try:
                _, status = os.waitpid(pid, 0)
            except ChildProcessError:
                status = None
            termination = (
                TerminationRecord.from_wait_status(pid, status) if status is not None else None
            )
            self._settle(pid, WorkerState.REAPED, termination)

    def _open_worker_log(self) -> None:
        if self.log_file is None:
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self._stderr_file = open(self.log_file, "a")  # noqa: SIM115

    # ── Termination bookkeeping ───────────────────────────────

    def drain_handoff(self) -> int:
        """Apply every pending reaper record. Returns how many were counted."""
        counted = 0
        while True:
            for termination in self.handoff.drain():
                if self._settle(termination.pid, WorkerState.REAPED, termination):
                    counted += 1
            # Collect anything the reaper left behind (full queue, coalesced SIGCHLD)
            if self.reaper.reap() == 0:
                break
        return counted

    def _settle(
        self,
        pid: int,
        state: WorkerState,
        termination: TerminationRecord | None,
    ) -> bool:
        """Apply a terminal observation for *pid*.

        Returns True only for the first observation of a tracked worker;
        later ones are ignored.
        """
        record = self.table.get(pid)
        if not self.table.mark_terminal(pid, state, termination):
            if record is None and pid not in self.counter:
                logger.debug("Ignoring termination of untracked pid=%d", pid)
            else:
                logger.debug("Duplicate termination ignored: pid=%d", pid)
            return False

        handle = self.handles.pop(pid, None)
        if handle is not None and termination is not None:
            handle.collected(termination)

        outcome = termination.describe() if termination is not None else "exit status unavailable"
        if state == WorkerState.TIMED_OUT:
            logger.warning("Worker terminated after timeout, %s: pid=%d role=%s",
                           outcome, pid, record.role)
        else:
            logger.info("Worker %s: pid=%d role=%s", outcome, pid, record.role)

        counted = self.counter.record(pid)
        self.table.remove(pid)
        logger.info("Completion: %d/%d", self.counter.value, self.expected)
        return counted

    # ── Channel A feed ─────────────────────────────────────────

    def _reader_alive(self, role: str) -> bool:
        return any(r.role == role for r in self.table.snapshot())

    async def _feed(self, request: PairPayload) -> None:
        try:
            await self.transport.feed_request(
                request,
                poll_interval=self.config.feed_poll_interval,
                reader_alive=lambda: self._reader_alive("compare"),
            )
        except TransportError as e:
            logger.error("Failed to send request: %s", e)

    # ── Signals ─────────────────────────────────────────────────

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.add_signal_handler(signal.SIGTERM, self.request_shutdown, signal.SIGTERM)
        loop.add_signal_handler(signal.SIGINT, self.request_shutdown, signal.SIGINT)
        loop.add_signal_handler(signal.SIGHUP, self._on_reload)
        loop.add_signal_handler(signal.SIGUSR1, self._on_status)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP, signal.SIGUSR1):
            loop.remove_signal_handler(sig)

    def request_shutdown(self, sig: signal.Signals | None = None) -> None:
        """Ask the monitor loop to stop and shut the workers down."""
        name = sig.name if sig is not None else "Shutdown request"
        if self._shutdown_requested:
            logger.debug("%s received again; shutdown already in progress", name)
            return
        logger.warning("%s received - supervisor shutting down", name)
        self._shutdown_requested = True
        self._wake.set()

    def _on_reload(self) -> None:
        # Configuration is only read at startup; the next run sees the change.
        invalidate_cache()
        logger.info("SIGHUP received - configuration reload requested (no state change)")

    def _on_status(self) -> None:
        status = self.get_status()
        logger.info(
            "SIGUSR1 received - status: completed=%d/%d active=%d",
            status["completed"], status["expected"], len(status["workers"]),
        )
        for worker in status["workers"]:
            logger.info(
                "  worker pid=%d role=%s state=%s age=%.1fs",
                worker["pid"], worker["role"], worker["state"], worker["age_sec"],
            )

    # ── Status ──────────────────────────────────────────────────

    def get_status(self) -> dict[str, Any]:
        """Get a snapshot of supervisor state."""
        now = time.monotonic()
        return {
            "expected": self.expected,
            "completed": self.counter.value,
            "shutdown_requested": self._shutdown_requested,
            "workers": [
                {
                    "pid": r.pid,
                    "role": r.role,
                    "state": r.state.value,
                    "age_sec": r.age(now),
                    "started_at": r.started_at.isoformat(),
                }
                for r in self.table.snapshot()
            ],
        }
