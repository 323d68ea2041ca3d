"""Type conversion utilities for the gateway emulator.

Maps Arrow types (as produced by DuckDB) to Flink logical types for result
column metadata.
"""

from __future__ import annotations

from typing import Any

import pyarrow as pa

# Flink's VARCHAR length for STRING
MAX_VARCHAR_LENGTH = 2147483647


def arrow_to_logical_type(arrow_type: pa.DataType, nullable: bool = True) -> dict[str, Any]:
    """Convert an Arrow type to a Flink ``logicalType`` JSON object.

    Args:
        arrow_type: Arrow type of a result column
        nullable: Whether the column may contain nulls

    Returns:
        Logical type object with at least ``type`` and ``nullable``
    """
    logical: dict[str, Any] = {"nullable": nullable}

    if pa.types.is_boolean(arrow_type):
        logical["type"] = "BOOLEAN"
    elif pa.types.is_int8(arrow_type):
        logical["type"] = "TINYINT"
    elif pa.types.is_int16(arrow_type) or pa.types.is_uint8(arrow_type):
        logical["type"] = "SMALLINT"
    elif pa.types.is_int32(arrow_type) or pa.types.is_uint16(arrow_type):
        logical["type"] = "INTEGER"
    elif pa.types.is_integer(arrow_type):
        logical["type"] = "BIGINT"
    elif pa.types.is_float32(arrow_type):
        logical["type"] = "FLOAT"
    elif pa.types.is_floating(arrow_type):
        logical["type"] = "DOUBLE"
    elif pa.types.is_decimal(arrow_type):
        logical.update(type="DECIMAL", precision=arrow_type.precision, scale=arrow_type.scale)
    elif pa.types.is_string(arrow_type) or pa.types.is_large_string(arrow_type):
        logical.update(type="VARCHAR", length=MAX_VARCHAR_LENGTH)
    elif pa.types.is_binary(arrow_type) or pa.types.is_large_binary(arrow_type):
        logical.update(type="VARBINARY", length=MAX_VARCHAR_LENGTH)
    elif pa.types.is_date(arrow_type):
        logical["type"] = "DATE"
    elif pa.types.is_time(arrow_type):
        logical.update(type="TIME_WITHOUT_TIME_ZONE", precision=0)
    elif pa.types.is_timestamp(arrow_type):
        if arrow_type.tz:
            logical.update(type="TIMESTAMP_WITH_LOCAL_TIME_ZONE", precision=6)
        else:
            logical.update(type="TIMESTAMP_WITHOUT_TIME_ZONE", precision=6)
    elif pa.types.is_list(arrow_type) or pa.types.is_large_list(arrow_type):
        logical.update(
            type="ARRAY",
            elementType=arrow_to_logical_type(arrow_type.value_type),
        )
    elif pa.types.is_map(arrow_type):
        logical.update(
            type="MAP",
            keyType=arrow_to_logical_type(arrow_type.key_type, nullable=False),
            valueType=arrow_to_logical_type(arrow_type.item_type),
        )
    elif pa.types.is_struct(arrow_type):
        logical.update(
            type="ROW",
            fields=[
                {"name": f.name, "fieldType": arrow_to_logical_type(f.type, f.nullable)}
                for f in arrow_type
            ],
        )
    elif pa.types.is_null(arrow_type):
        logical["type"] = "NULL"
    else:
        logical.update(type="VARCHAR", length=MAX_VARCHAR_LENGTH)

    return logical


def build_columns(schema: pa.Schema) -> list[dict[str, Any]]:
    """Build Flink ``columns`` metadata from an Arrow schema."""
    return [
        {
            "name": field.name,
            "logicalType": arrow_to_logical_type(field.type, field.nullable),
            "comment": None,
        }
        for field in schema
    ]


def string_column(name: str) -> dict[str, Any]:
    """Column descriptor for single-string results such as ``OK``."""
    return {
        "name": name,
        "logicalType": {"type": "VARCHAR", "nullable": True, "length": MAX_VARCHAR_LENGTH},
        "comment": None,
    }
