# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
