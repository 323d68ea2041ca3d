"""Data model for the statement execution core.

Holds the enums and immutable records exchanged between the gateway client,
the session coordinator, statement executors and their listeners.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Phase(str, Enum):
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class RowKind(str, Enum):
    INSERT = "INSERT"
    UPDATE_BEFORE = "UPDATE_BEFORE"
    UPDATE_AFTER = "UPDATE_AFTER"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Any) -> RowKind | str:
        """Return the matching member, or the raw value when unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return str(value)


class ResultType:
    """Result-type markers. ERROR and CANCELLED are local only."""

    NOT_READY = "NOT_READY"
    PAYLOAD = "PAYLOAD"
    EOS = "EOS"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class ResultKind:
    """Result-kind markers. ERROR and CANCELLED are local only."""

    SUCCESS = "SUCCESS"
    SUCCESS_WITH_CONTENT = "SUCCESS_WITH_CONTENT"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class Outcome(str, Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


Row = tuple[Any, ...]

# Matches the page token in ".../result/<token>?rowFormat=JSON"
_NEXT_TOKEN_RE = re.compile(r"result/(\d+)")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Column:
    """Column metadata as reported by the gateway.

    Attributes:
        name: Column name
        logical_type: Logical type name (e.g. INT, STRING)
        nullable: Whether the column accepts nulls
        comment: Optional column comment
    """

    name: str
    logical_type: str = "STRING"
    nullable: bool = True
    comment: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Column:
        """Build a column from a ``columns`` or ``columnInfos`` entry.

        ``columns`` entries carry ``logicalType`` as an object with ``type``
        and ``nullable``; ``columnInfos`` entries carry a ``dataType`` string
        such as ``"INT NOT NULL"``.
        """
        logical = data.get("logicalType")
        if isinstance(logical, dict):
            type_name = str(logical.get("type", "STRING"))
            nullable = bool(logical.get("nullable", True))
        elif "dataType" in data:
            data_type = str(data["dataType"])
            nullable = "NOT NULL" not in data_type.upper()
            type_name = re.sub(r"\s+NOT\s+NULL", "", data_type, flags=re.IGNORECASE).strip()
        else:
            type_name = str(logical or "STRING")
            nullable = True
        return cls(
            name=str(data.get("name", "")),
            logical_type=type_name,
            nullable=nullable,
            comment=data.get("comment"),
        )


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level change: a kind plus positional field values."""

    kind: RowKind | str
    fields: Row

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ChangeEvent:
        return cls(
            kind=RowKind.parse(data.get("kind", RowKind.INSERT.value)),
            fields=tuple(data.get("fields") or ()),
        )


@dataclass(frozen=True)
class ResultPage:
    """One page of an operation's result stream."""

    result_type: str
    result_kind: str | None = None
    columns: tuple[Column, ...] | None = None
    rows: tuple[ChangeEvent, ...] = ()
    next_page_token: int | None = None
    job_id: str | None = None

    @property
    def has_content(self) -> bool:
        return self.result_kind == ResultKind.SUCCESS_WITH_CONTENT and bool(self.rows)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ResultPage:
        """Parse a ``/result/{token}`` response body."""
        results = data.get("results") or {}
        columns: tuple[Column, ...] | None = None
        rows: tuple[ChangeEvent, ...] = ()

        if isinstance(results, dict):
            raw_columns = results.get("columns") or results.get("columnInfos") or []
            if raw_columns:
                columns = tuple(Column.from_json(c) for c in raw_columns)
            rows = tuple(
                ChangeEvent.from_json(r)
                for r in results.get("data") or []
                if isinstance(r, dict) and isinstance(r.get("fields"), list)
            )

        return cls(
            result_type=str(data.get("resultType", ResultType.EOS)),
            result_kind=data.get("resultKind"),
            columns=columns,
            rows=rows,
            next_page_token=parse_page_token(data.get("nextResultUri")),
            job_id=data.get("jobID"),
        )


def parse_page_token(uri: str | None) -> int | None:
    """Extract the page token from a ``nextResultUri``."""
    if not uri:
        return None
    match = _NEXT_TOKEN_RE.search(uri)
    return int(match.group(1)) if match else None


@dataclass
class Session:
    """A remote execution context."""

    handle: str
    properties: dict[str, str]
    created_at: float = field(default_factory=time.time)
    last_used: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionInfo:
    handle: str | None
    is_active: bool
    started_at: float | None
    age: float
    properties: dict[str, str]

    def describe_age(self) -> str:
        if self.started_at is None:
            return "No active session"
        minutes, seconds = divmod(int(self.age), 60)
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"


@dataclass(frozen=True)
class Diagnostic:
    """A change event that could not be reconciled with the local rows."""

    statement_id: str
    kind: str
    fields: Row
    message: str


@dataclass(frozen=True)
class StatementSnapshot:
    """Immutable copy of a statement executor's state."""

    statement_id: str
    operation_handle: str | None
    phase: Phase
    result_type: str
    result_kind: str
    rows: tuple[Row, ...]
    columns: tuple[Column, ...]
    last_update: int | None
    error: str | None = None
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def as_dicts(self) -> list[dict[str, Any]]:
        """Rows keyed by column name, or ``field_<i>`` before a schema is known."""
        if self.columns:
            names = [c.name for c in self.columns]
        else:
            width = max((len(r) for r in self.rows), default=0)
            names = [f"field_{i}" for i in range(width)]
        result = []
        for row in self.rows:
            result.append(
                {
                    (names[i] if i < len(names) else f"column_{i}"): value
                    for i, value in enumerate(row)
                }
            )
        return result


@dataclass(frozen=True)
class ExecutionResult:
    outcome: Outcome
    statement_id: str
    message: str
    snapshot: StatementSnapshot


class EventKind(str, Enum):
    LIFECYCLE = "lifecycle"
    STATE_SNAPSHOT = "state_snapshot"
    STATE_DELTA = "state_delta"


class LifecycleType(str, Enum):
    STARTED = "statement_started"
    COMPLETED = "statement_completed"
    ERRORED = "statement_error"
    CANCELLED = "statement_cancelled"
    ALL_CANCELLED = "all_statements_cancelled"


@dataclass(frozen=True)
class StateDelta:
    """Row changes applied by one result page."""

    inserted: tuple[Row, ...] = ()
    removed: tuple[Row, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()


@dataclass(frozen=True)
class StatementEvent:
    """Notification published to statement and global listeners.

    ``kind`` selects which payload is set: ``lifecycle`` (with ``detail``),
    ``snapshot`` or ``delta``.
    """

    kind: EventKind
    statement_id: str | None
    timestamp: int = field(default_factory=now_ms)
    lifecycle: LifecycleType | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    snapshot: StatementSnapshot | None = None
    delta: StateDelta | None = None

    @classmethod
    def for_lifecycle(
        cls, lifecycle: LifecycleType, statement_id: str | None, **detail: Any
    ) -> StatementEvent:
        return cls(
            kind=EventKind.LIFECYCLE,
            statement_id=statement_id,
            lifecycle=lifecycle,
            detail=detail,
        )

    @classmethod
    def for_snapshot(cls, snapshot: StatementSnapshot) -> StatementEvent:
        return cls(
            kind=EventKind.STATE_SNAPSHOT,
            statement_id=snapshot.statement_id,
            snapshot=snapshot,
        )

    @classmethod
    def for_delta(cls, statement_id: str, delta: StateDelta) -> StatementEvent:
        return cls(kind=EventKind.STATE_DELTA, statement_id=statement_id, delta=delta)


@dataclass(frozen=True)
class CancelReport:
    statement_id: str
    found: bool
    success: bool
    message: str = ""
