# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
"""ProcWarden - supervises a bounded pool of short-lived worker processes."""

__version__ = "0.1.0"
