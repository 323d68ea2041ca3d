from .sql import format_for_display, split_statements, statement_type

__all__ = [
    "format_for_display",
    "split_statements",
    "statement_type",
]
