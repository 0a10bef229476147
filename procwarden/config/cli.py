# ProcWarden - Worker Process Supervisor
# Copyright (C) 2026 ProcWarden Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of ProcWarden, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""CLI handlers for the ``procwarden config`` subcommand."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterator
from typing import Any, NoReturn

from pydantic import TypeAdapter, ValidationError
from pydantic.fields import FieldInfo

from procwarden.config.models import (
    ProcWardenConfig,
    invalidate_cache,
    load_config,
    save_config,
)


# ---------------------------------------------------------------------------
# Helper utilities
# ---------------------------------------------------------------------------

_NULL_WORDS = ("null", "none")


def _iter_settings(config: ProcWardenConfig) -> Iterator[tuple[str, Any]]:
    """Yield ``(section.field, value)`` for every setting in declaration order."""
    for section in ProcWardenConfig.model_fields:
        values = getattr(config, section)
        for name in type(values).model_fields:
            yield f"{section}.{name}", getattr(values, name)


def _lookup_field(key: str) -> FieldInfo:
    """Return the model field addressed by a ``section.field`` key.

    Raises:
        KeyError: If *key* does not name a setting.
    """
    section, _, name = key.partition(".")
    section_field = ProcWardenConfig.model_fields.get(section)
    if section_field is None:
        raise KeyError(key)
    fields = section_field.annotation.model_fields
    if name not in fields:
        raise KeyError(key)
    return fields[name]


def _parse_value(field: FieldInfo, raw: str) -> Any:
    """Convert the CLI string *raw* to the type *field* declares.

    ``null`` / ``none`` (case-insensitive) become ``None`` where the field
    accepts it. Range constraints are checked later by model validation.

    Raises:
        ValidationError: If *raw* cannot be read as that type.
    """
    adapter = TypeAdapter(field.annotation)
    if raw.lower() in _NULL_WORDS:
        try:
            return adapter.validate_python(None)
        except ValidationError:
            pass
    return adapter.validate_python(raw)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_config_dispatch(args: argparse.Namespace) -> None:
    """Entry point for ``procwarden config`` without a subcommand."""
    if not getattr(args, "config_command", None):
        args.config_parser.print_help()


def _key_not_found(key: str) -> NoReturn:
    print(f"Error: key '{key}' not found in configuration", file=sys.stderr)
    sys.exit(1)


def cmd_config_get(args: argparse.Namespace) -> None:
    """Print a single configuration value identified by a ``section.field`` key."""
    key: str = args.key
    settings = dict(_iter_settings(load_config()))
    if key not in settings:
        _key_not_found(key)
    print(settings[key])


def cmd_config_set(args: argparse.Namespace) -> None:
    """Set a configuration value identified by a ``section.field`` key.

    The value is parsed as the type the setting declares, then the whole
    configuration is re-validated before it is written.
    """
    key: str = args.key
    try:
        field = _lookup_field(key)
    except KeyError:
        _key_not_found(key)

    data = load_config().model_dump()
    section, _, name = key.partition(".")
    try:
        value = _parse_value(field, args.value)
        data[section][name] = value
        new_config = ProcWardenConfig.model_validate(data)
    except ValidationError as exc:
        print(f"Error: invalid value for {key}: {exc}", file=sys.stderr)
        sys.exit(1)

    invalidate_cache()
    save_config(new_config)
    print(f"Set {key} = {value}")


def cmd_config_list(args: argparse.Namespace) -> None:
    """List configuration values as flat ``section.field = value`` lines."""
    section: str | None = getattr(args, "section", None)
    for key, value in _iter_settings(load_config()):
        if section and key.partition(".")[0] != section:
            continue
        print(f"{key} = {value}")
