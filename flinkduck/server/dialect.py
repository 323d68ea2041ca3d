"""Statement translation for the gateway emulator.

Flink session commands (``SET``/``RESET``) are handled against the session
properties; everything else is transpiled to DuckDB SQL with sqlglot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import sqlglot
from sqlglot.errors import SqlglotError

_SET_RE = re.compile(
    r"^\s*SET\s*(?:'(?P<key>[^']+)'\s*=\s*'(?P<value>[^']*)')?\s*;?\s*$",
    re.IGNORECASE,
)
_RESET_RE = re.compile(r"^\s*RESET\s*(?:'(?P<key>[^']+)')?\s*;?\s*$", re.IGNORECASE)


@dataclass
class SessionCommand:
    """Outcome of a session command: result columns and rows."""

    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)


def handle_session_command(
    sql: str, properties: dict[str, str], defaults: dict[str, str] | None = None
) -> SessionCommand | None:
    """Apply ``SET``/``RESET`` to ``properties`` in place.

    Args:
        sql: Statement text
        properties: The session's properties
        defaults: Properties the session was created with; ``RESET`` restores them

    Returns:
        The command result, or None if ``sql`` is not a session command
    """
    defaults = defaults or {}

    match = _SET_RE.match(sql)
    if match:
        key = match.group("key")
        if key is None:
            return SessionCommand(["key", "value"], sorted(properties.items()))
        properties[key] = match.group("value")
        return SessionCommand(["result"], [("OK",)])

    match = _RESET_RE.match(sql)
    if match:
        key = match.group("key")
        if key is None:
            properties.clear()
            properties.update(defaults)
        elif key in defaults:
            properties[key] = defaults[key]
        else:
            properties.pop(key, None)
        return SessionCommand(["result"], [("OK",)])

    return None


def translate(sql: str, read: str = "spark") -> str:
    """Transpile a Flink-flavoured statement to DuckDB SQL.

    Statements sqlglot cannot parse are passed through unchanged and left for
    DuckDB to reject.
    """
    try:
        statements = sqlglot.transpile(sql, read=read, write="duckdb")
    except SqlglotError:
        return sql
    return ";\n".join(statements) if statements else sql
