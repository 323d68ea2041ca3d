from sqlglot.dialects.dialect import Dialect
from sqlglot.errors import TokenError
from sqlglot.tokens import Token, TokenType

# Flink SQL shares backtick identifiers and quoting rules with Spark SQL
SPLIT_DIALECT = "spark"

_STATEMENT_TYPES = (
    (("SELECT", "WITH", "VALUES"), "QUERY"),
    (("CREATE", "ALTER", "DROP"), "DDL"),
    (("INSERT", "UPDATE", "DELETE"), "DML"),
    (("SHOW", "DESCRIBE", "DESC", "EXPLAIN"), "SHOW"),
    (("USE", "SET", "RESET"), "COMMAND"),
)


def split_statements(sql: str) -> list[str]:
    """
    Splits SQL text into individual statements on top-level semicolons.
    Semicolons inside string literals, quoted identifiers and comments do not
    split. Comment-only fragments are dropped and the terminating semicolon
    is not included.
    """
    if not sql or not sql.strip():
        return []

    try:
        tokens = Dialect.get_or_raise(SPLIT_DIALECT).tokenize(sql)
    except TokenError as e:
        raise ValueError(f"Cannot split SQL text: {e}") from e

    statements: list[str] = []
    current: list[Token] = []
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            _flush(sql, current, statements)
            current = []
        else:
            current.append(token)
    _flush(sql, current, statements)
    return statements


def _flush(sql: str, tokens: list[Token], statements: list[str]) -> None:
    if not tokens:
        return
    text = sql[tokens[0].start : tokens[-1].end + 1].strip()
    if text:
        statements.append(text)


def statement_type(statement: str) -> str:
    """Classifies a statement as QUERY, DDL, DML, SHOW, COMMAND or OTHER."""
    words = statement.strip().split(None, 1)
    keyword = words[0].upper() if words else ""
    for keywords, kind in _STATEMENT_TYPES:
        if keyword in keywords:
            return kind
    return "OTHER"


def format_for_display(statement: str, max_length: int = 100) -> str:
    """Collapses whitespace and truncates to ``max_length`` characters."""
    cleaned = " ".join(statement.split())
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3] + "..."
