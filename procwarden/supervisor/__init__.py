# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""
Worker supervision package.

Runs a bounded pool of short-lived worker processes that talk over
named FIFOs, reaps them on SIGCHLD and escalates termination of workers
that outlive their timeout.
"""

from __future__ import annotations

from procwarden.supervisor.channels import ChannelTransport, PairPayload, ResultPayload
from procwarden.supervisor.enforcer import TimeoutEnforcer
from procwarden.supervisor.manager import MonitorConfig, WorkerSupervisor
from procwarden.supervisor.process_handle import WorkerHandle, WorkerSpec
from procwarden.supervisor.reaper import (
    ExitKind,
    TerminationHandoff,
    TerminationReaper,
    TerminationRecord,
)
from procwarden.supervisor.table import (
    CompletionCounter,
    WorkerRecord,
    WorkerState,
    WorkerTable,
)

__all__ = [
    "ChannelTransport",
    "PairPayload",
    "ResultPayload",
    "TimeoutEnforcer",
    "MonitorConfig",
    "WorkerSupervisor",
    "WorkerHandle",
    "WorkerSpec",
    "ExitKind",
    "TerminationHandoff",
    "TerminationReaper",
    "TerminationRecord",
    "CompletionCounter",
    "WorkerRecord",
    "WorkerState",
    "WorkerTable",
]
