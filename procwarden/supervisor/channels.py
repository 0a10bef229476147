"""
Channel transport: named FIFOs carrying fixed-size binary payloads.
"""

# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import errno
import logging
import os
import stat
import struct
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from procwarden.exceptions import (
    ChannelSetupError,
    ShortTransferError,
    TransportError,
)

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────
REQUEST_FORMAT = struct.Struct("=ii")  # two signed 32-bit ints, native order
RESULT_FORMAT = struct.Struct("=i")
FIFO_MODE = 0o600

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


# ── Payload Types ──────────────────────────────────────────────────

@dataclass(frozen=True)
class PairPayload:
    """Channel A payload: the two workload inputs."""

    first: int
    second: int

    def to_bytes(self) -> bytes:
        try:
            return REQUEST_FORMAT.pack(self.first, self.second)
        except struct.error as e:
            raise ValueError(f"Inputs out of int32 range: {self.first}, {self.second}") from e

    @classmethod
    def from_bytes(cls, data: bytes) -> PairPayload:
        if len(data) != REQUEST_FORMAT.size:
            raise ShortTransferError("request", REQUEST_FORMAT.size, len(data))
        first, second = REQUEST_FORMAT.unpack(data)
        return cls(first=first, second=second)


@dataclass(frozen=True)
class ResultPayload:
    """Channel B payload: the computed result."""

    value: int

    def to_bytes(self) -> bytes:
        try:
            return RESULT_FORMAT.pack(self.value)
        except struct.error as e:
            raise ValueError(f"Result out of int32 range: {self.value}") from e

    @classmethod
    def from_bytes(cls, data: bytes) -> ResultPayload:
        if len(data) != RESULT_FORMAT.size:
            raise ShortTransferError("result", RESULT_FORMAT.size, len(data))
        (value,) = RESULT_FORMAT.unpack(data)
        return cls(value=value)


# ── Blocking endpoint I/O (worker side) ───────────────────────────────

def read_exact(path: Path, size: int) -> bytes:
    """Open *path* for reading and read one *size*-byte payload.

    The open blocks until a writer opens the same FIFO. The payload is
    small enough to be written atomically, so anything shorter than
    *size* is reported as :class:`ShortTransferError`.
    """
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError as e:
        raise TransportError(f"Cannot open {path} for reading: {e}") from e
    try:
        data = os.read(fd, size)
    except OSError as e:
        raise TransportError(f"Read from {path} failed: {e}") from e
    finally:
        os.close(fd)
    if len(data) != size:
        raise ShortTransferError(path.name, size, len(data))
    return data


def write_exact(path: Path, data: bytes) -> None:
    """Open *path* for writing (blocking until a reader opens) and write *data* once."""
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as e:
        raise TransportError(f"Cannot open {path} for writing: {e}") from e
    try:
        written = os.write(fd, data)
    except OSError as e:
        raise TransportError(f"Write to {path} failed: {e}") from e
    finally:
        os.close(fd)
    if written != len(data):
        raise ShortTransferError(path.name, len(data), written)


# ── Channel Transport (supervisor side) ───────────────────────────────

class ChannelTransport:
    """
    The two named channels shared by the supervisor and its workers.

    Channel A (``request``) carries a :class:`PairPayload` from the
    supervisor to the compare worker; channel B (``result``) carries a
    :class:`ResultPayload` from the compare worker to the report worker.
    """

    def __init__(
        self,
        directory: Path,
        request_name: str = "fifo1",
        result_name: str = "fifo2",
    ):
        self.directory = directory
        self.request_path = directory / request_name
        self.result_path = directory / result_name

    @property
    def paths(self) -> tuple[Path, Path]:
        return self.request_path, self.result_path

    def create(self) -> None:
        """Create both FIFOs, replacing stale endpoints left by a previous run."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ChannelSetupError(f"Cannot create channel directory {self.directory}: {e}") from e

        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
                os.mkfifo(path, FIFO_MODE)
            except OSError as e:
                self.teardown()
                raise ChannelSetupError(f"mkfifo {path} failed: {e}") from e
            logger.info("Channel created: %s", path)

    def teardown(self) -> None:
        """Remove both FIFOs. Safe to call more than once."""
        for path in self.paths:
            try:
                if path.exists() and stat.S_ISFIFO(path.stat().st_mode):
                    path.unlink()
                    logger.debug("Channel removed: %s", path)
            except OSError as exc:
                logger.warning("Failed to remove channel %s: %s", path, exc)

    async def feed_request(
        self,
        payload: PairPayload,
        *,
        poll_interval: float = 0.1,
        reader_alive: Callable[[], bool] = lambda: True,
    ) -> bool:
        """Write *payload* to channel A once its reader has opened it.

        Never blocks the event loop: a non-blocking writer open fails with
        ``ENXIO`` until a reader is present, so the open is retried every
        *poll_interval* seconds. Data is therefore only written after the
        rendezvous, as with a blocking open.

        Returns:
            True once written, False if ``reader_alive()`` turned false first.

        Raises:
            TransportError: On any other open/write failure.
        """
        data = payload.to_bytes()
        while True:
            try:
                fd = os.open(self.request_path, os.O_WRONLY | os.O_NONBLOCK)
            except OSError as e:
                if e.errno != errno.ENXIO:
                    raise TransportError(f"Cannot open {self.request_path} for writing: {e}") from e
                if not reader_alive():
                    logger.warning("Request channel reader gone before payload was sent")
                    return False
                await asyncio.sleep(poll_interval)
                continue

            try:
                written = os.write(fd, data)
            except OSError as e:
                raise TransportError(f"Write to {self.request_path} failed: {e}") from e
            finally:
                os.close(fd)

            if written != len(data):
                raise ShortTransferError("request", len(data), written)
            logger.info(
                "Request sent: first=%d second=%d", payload.first, payload.second,
            )
            return True
