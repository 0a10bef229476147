# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from procwarden.cli.parser import cli_main

if __name__ == "__main__":
    cli_main()
