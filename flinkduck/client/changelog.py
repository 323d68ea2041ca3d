"""Changelog folding.

The gateway streams a changelog rather than a snapshot: every row arrives as
an INSERT, UPDATE_BEFORE, UPDATE_AFTER or DELETE event. Folding the events in
arrival order into a list of rows reconstructs the current result set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .types import ChangeEvent, Diagnostic, Row, RowKind

logger = logging.getLogger(__name__)


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality for a single field value.

    None matches only None. Lists and tuples compare element-wise, mappings
    compare by key set and values regardless of key order. Booleans never
    equal numbers.
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False
    return left == right


def rows_match(left: Row, right: Row) -> bool:
    """True when both rows have the same width and every field is equal."""
    return len(left) == len(right) and all(
        values_equal(a, b) for a, b in zip(left, right)
    )


def find_row(rows: list[Row], target: Row) -> int:
    """Index of the first row matching ``target``, or -1."""
    for index, row in enumerate(rows):
        if rows_match(row, target):
            return index
    return -1


@dataclass(frozen=True)
class FoldOutcome:
    """What folding one event did to the row list."""

    inserted: Row | None = None
    removed: Row | None = None
    diagnostic: Diagnostic | None = None


def apply_change(rows: list[Row], event: ChangeEvent, statement_id: str) -> FoldOutcome:
    """Fold one change event into ``rows`` in place."""
    kind = RowKind.parse(event.kind)
    fields = tuple(event.fields)

    if kind in (RowKind.INSERT, RowKind.UPDATE_AFTER):
        rows.append(fields)
        return FoldOutcome(inserted=fields)

    if kind in (RowKind.UPDATE_BEFORE, RowKind.DELETE):
        index = find_row(rows, fields)
        if index == -1:
            message = f"{kind.value} row not found for removal"
            logger.warning("[%s] %s: %r", statement_id, message, fields)
            return FoldOutcome(
                diagnostic=Diagnostic(
                    statement_id=statement_id,
                    kind=kind.value,
                    fields=fields,
                    message=message,
                )
            )
        removed = rows.pop(index)
        return FoldOutcome(removed=removed)

    # Unknown kinds fold as INSERT
    message = f"Unknown row kind {kind!r}, treating as INSERT"
    logger.warning("[%s] %s", statement_id, message)
    rows.append(fields)
    return FoldOutcome(
        inserted=fields,
        diagnostic=Diagnostic(
            statement_id=statement_id,
            kind=str(kind),
            fields=fields,
            message=message,
        ),
    )
