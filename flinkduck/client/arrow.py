import re

import pyarrow as pa

from .types import Column, StatementSnapshot

# Flink logical type name -> Arrow type
TYPE_MAP = {
    "TINYINT": pa.int8(),
    "SMALLINT": pa.int16(),
    "INT": pa.int32(),
    "INTEGER": pa.int32(),
    "BIGINT": pa.int64(),
    "FLOAT": pa.float32(),
    "REAL": pa.float32(),
    "DOUBLE": pa.float64(),
    "BOOLEAN": pa.bool_(),
    "CHAR": pa.string(),
    "VARCHAR": pa.string(),
    "STRING": pa.string(),
    "DATE": pa.date32(),
    "TIMESTAMP": pa.timestamp("us"),
    "TIMESTAMP_WITHOUT_TIME_ZONE": pa.timestamp("us"),
    "TIMESTAMP_LTZ": pa.timestamp("us", tz="UTC"),
    "TIMESTAMP_WITH_LOCAL_TIME_ZONE": pa.timestamp("us", tz="UTC"),
    "BINARY": pa.binary(),
    "VARBINARY": pa.binary(),
    "BYTES": pa.binary(),
}

_TEMPORAL = ("DATE", "TIMESTAMP")


def base_type_name(logical_type: str) -> str:
    """Strip parameters from a type name, e.g. ``VARCHAR(10)`` -> ``VARCHAR``."""
    return re.split(r"[\s(<]", logical_type.strip().upper(), maxsplit=1)[0]


def to_arrow_type(column: Column) -> pa.DataType:
    """
    Map a column's logical type to an Arrow type.

    Types without a direct mapping (DECIMAL, ROW, ARRAY, MAP, ...) are
    carried as strings.
    """
    return TYPE_MAP.get(base_type_name(column.logical_type), pa.string())


def to_arrow_schema(columns: tuple[Column, ...]) -> pa.Schema:
    return pa.schema(
        [
            pa.field(
                c.name,
                to_arrow_type(c),
                nullable=c.nullable,
                metadata={"logicalType": c.logical_type},
            )
            for c in columns
        ]
    )


def _to_array(values: list, column: Column, arrow_type: pa.DataType) -> pa.Array:
    if pa.types.is_string(arrow_type):
        return pa.array([None if v is None else _as_text(v) for v in values], pa.string())
    if base_type_name(column.logical_type).startswith(_TEMPORAL):
        # Gateway sends temporal values as ISO strings
        strings = pa.array([None if v is None else str(v) for v in values], pa.string())
        if pa.types.is_timestamp(arrow_type) and arrow_type.tz:
            return strings.cast(pa.timestamp(arrow_type.unit)).cast(arrow_type)
        return strings.cast(arrow_type)
    if pa.types.is_binary(arrow_type):
        return pa.array(
            [None if v is None else (v if isinstance(v, bytes) else str(v).encode()) for v in values],
            arrow_type,
        )
    return pa.array(values, arrow_type)


def _as_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_arrow(snapshot: StatementSnapshot) -> pa.Table:
    """
    Convert a statement snapshot into a PyArrow table.

    Args:
        snapshot (StatementSnapshot): State captured from an executor.

    Returns:
        pa.Table: One column per schema column, one row per accumulated row.

    Raises:
        ValueError: If a row's width does not match the schema.
    """
    columns = snapshot.columns
    for index, row in enumerate(snapshot.rows):
        if len(row) != len(columns):
            raise ValueError(
                f"Row {index} has {len(row)} fields but the schema has {len(columns)} columns"
            )

    schema = to_arrow_schema(columns)
    arrays = [
        _to_array([row[i] for row in snapshot.rows], column, schema.field(i).type)
        for i, column in enumerate(columns)
    ]
    return pa.Table.from_arrays(arrays, schema=schema)
