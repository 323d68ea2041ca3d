from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, List


def serialize_item(item: Any) -> Any:
    """
    Serializes a single cell value to the JSON representation used by the
    gateway's JSON row format.
    """
    if item is None:
        return None
    if isinstance(item, (date, datetime, time)):
        return item.isoformat()
    if isinstance(item, timedelta):
        return str(item)
    if isinstance(item, Decimal):
        # str() preserves precision
        return str(item)
    if isinstance(item, bytes):
        return item.hex()
    if isinstance(item, dict):
        return {str(k): serialize_item(v) for k, v in item.items()}
    if isinstance(item, (list, tuple)):
        return [serialize_item(v) for v in item]
    return item


def serialize_changelog(rows: List[tuple], kind: str = "INSERT") -> List[dict]:
    """
    Converts result rows into changelog entries
    ``{"kind": ..., "fields": [...]}``.
    """
    return [{"kind": kind, "fields": [serialize_item(cell) for cell in row]} for row in rows]
