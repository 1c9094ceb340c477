"""Tests for the SQL statement splitter."""

from __future__ import annotations

from idxprobe.migrations.statements import split_statements


def _texts(sql):
    return [s.text for s in split_statements(sql)]


class TestSplitStatements:
    def test_basic(self):
        assert _texts("CREATE TABLE a (x int);\nCREATE INDEX i ON a (x);") == [
            "CREATE TABLE a (x int)",
            "CREATE INDEX i ON a (x)",
        ]

    def test_missing_final_terminator(self):
        assert _texts("SELECT 1;\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_empty_statements_are_dropped(self):
        assert _texts(";;\n  ;") == []

    def test_line_numbers(self):
        sql = "CREATE TABLE a (x int);\n-- a comment; with a semicolon\nCREATE INDEX i ON a (x);\n"
        stmts = split_statements(sql)
        assert [s.line for s in stmts] == [1, 3]

    def test_line_numbers_after_block_comment(self):
        sql = "/* header\n   spans lines; */\nCREATE INDEX i ON a (x);"
        (stmt,) = split_statements(sql)
        assert stmt.line == 3
        assert stmt.text == "CREATE INDEX i ON a (x)"

    def test_semicolon_in_string_literal(self):
        assert _texts("INSERT INTO t VALUES ('a;b');SELECT 1;") == [
            "INSERT INTO t VALUES ('a;b')",
            "SELECT 1",
        ]

    def test_doubled_quote_escape(self):
        assert _texts("INSERT INTO t VALUES ('it''s; fine');") == ["INSERT INTO t VALUES ('it''s; fine')"]

    def test_quoted_identifier(self):
        assert _texts('CREATE INDEX "odd;name" ON t (x);') == ['CREATE INDEX "odd;name" ON t (x)']

    def test_dollar_quoted_body(self):
        sql = (
            "CREATE FUNCTION touch() RETURNS trigger AS $$\n"
            "BEGIN NEW.updated_at = now(); RETURN NEW; END;\n"
            "$$ LANGUAGE plpgsql;\n"
            "CREATE INDEX i ON t (x);\n"
        )
        stmts = split_statements(sql)
        assert len(stmts) == 2
        assert stmts[1].text == "CREATE INDEX i ON t (x)"
        assert stmts[1].line == 4

    def test_tagged_dollar_quote(self):
        sql = "DO $body$ BEGIN PERFORM 1; END $body$;CREATE INDEX i ON t (x);"
        assert len(split_statements(sql)) == 2

    def test_comments_are_blanked(self):
        (stmt,) = split_statements("CREATE INDEX i -- trailing\n ON t (x);")
        assert "trailing" not in stmt.text
