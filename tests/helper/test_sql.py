import pytest

from flinkduck.helper import format_for_display, split_statements, statement_type


class TestSplitStatements:
    def test_splits_on_semicolons(self) -> None:
        sql = "CREATE TABLE t (id INT);\nINSERT INTO t VALUES (1);\nSELECT * FROM t;"
        assert split_statements(sql) == [
            "CREATE TABLE t (id INT)",
            "INSERT INTO t VALUES (1)",
            "SELECT * FROM t",
        ]

    def test_ignores_semicolons_in_literals(self) -> None:
        sql = "SELECT 'a;b' AS x; SELECT `c;d` FROM t"
        assert split_statements(sql) == ["SELECT 'a;b' AS x", "SELECT `c;d` FROM t"]

    def test_drops_empty_fragments(self) -> None:
        assert split_statements(";;SELECT 1;; ") == ["SELECT 1"]
        assert split_statements("   ") == []
        assert split_statements("") == []

    def test_comments_do_not_split(self) -> None:
        sql = "SELECT 1; -- done; really\nSELECT 2;\n-- trailing comment"
        assert split_statements(sql) == ["SELECT 1", "SELECT 2"]

    def test_unterminated_string(self) -> None:
        with pytest.raises(ValueError):
            split_statements("SELECT 'oops")


@pytest.mark.parametrize(
    ("statement", "expected"),
    [
        ("select * from t", "QUERY"),
        ("WITH x AS (SELECT 1) SELECT * FROM x", "QUERY"),
        ("CREATE TABLE t (id INT)", "DDL"),
        ("insert into t values (1)", "DML"),
        ("SHOW TABLES", "SHOW"),
        ("SET 'parallelism.default' = '2'", "COMMAND"),
        ("  ", "OTHER"),
    ],
)
def test_statement_type(statement: str, expected: str) -> None:
    assert statement_type(statement) == expected


def test_format_for_display() -> None:
    assert format_for_display("SELECT\n   *\nFROM t") == "SELECT * FROM t"
    long = "SELECT " + "x, " * 50 + "y FROM t"
    shortened = format_for_display(long, max_length=20)
    assert len(shortened) == 20
    assert shortened.endswith("...")
