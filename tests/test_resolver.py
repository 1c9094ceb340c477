"""Tests for matching predicates against active indexes."""

from __future__ import annotations

import pytest

from idxprobe.migrations.catalog import build_catalog
from idxprobe.resolver import (
    build_findings,
    find_missing,
    index_hint,
    is_satisfied,
    recommend_ddl,
)
from idxprobe.schema.model import Index, Predicate, QueryLocation

COMPOSITE = Index("idx_ab", "t", ("a", "b"))


class TestIsSatisfied:
    @pytest.mark.parametrize("op", ["<", "<=", ">", ">=", "BETWEEN"])
    def test_range_needs_leading_column(self, op):
        assert is_satisfied(Predicate("t", "a", op), [COMPOSITE])
        assert not is_satisfied(Predicate("t", "b", op), [COMPOSITE])

    @pytest.mark.parametrize("op", ["=", "IN", "LIKE", "IS NULL", "<>", "NOT IN"])
    def test_other_operators_accept_any_position(self, op):
        assert is_satisfied(Predicate("t", "a", op), [COMPOSITE])
        assert is_satisfied(Predicate("t", "b", op), [COMPOSITE])

    def test_dropped_index_does_not_count(self):
        dropped = Index("idx_a", "t", ("a",), dropped_in="V2.sql")
        assert not is_satisfied(Predicate("t", "a", "="), [dropped])

    def test_expression_column_never_matches(self):
        expr = Index("idx_lower", "users", ("lower(email)",))
        assert not is_satisfied(Predicate("users", "email", "="), [expr])

    def test_no_indexes(self):
        assert not is_satisfied(Predicate("t", "a", "="), [])


class TestFindMissing:
    def _catalog(self):
        return build_catalog([
            ("V1.sql", "CREATE INDEX idx_users_status ON users (status);"),
            ("V2.sql", "CREATE INDEX idx_o ON orders (status, created_at);"),
        ])

    def test_sorted_and_deduplicated(self):
        preds = [
            Predicate("users", "email", "="),
            Predicate("orders", "created_at", ">"),
            Predicate("users", "email", "="),
            Predicate("orders", "created_at", "<"),
            Predicate("users", "status", "="),
            Predicate("orders", "status", ">"),
        ]
        assert find_missing(preds, self._catalog()) == [
            Predicate("orders", "created_at", "<"),
            Predicate("orders", "created_at", ">"),
            Predicate("users", "email", "="),
        ]

    def test_identifier_columns_are_never_reported(self):
        preds = [Predicate("users", "id", "="), Predicate("users", "id", ">")]
        assert find_missing(preds, self._catalog(), {"users": frozenset({"id"})}) == []
        assert find_missing(preds, self._catalog()) == sorted(preds, key=lambda p: p.operator)

    def test_email_scenario(self):
        # One entity with email + status, an index on status only.
        preds = {Predicate("users", "email", "="), Predicate("users", "status", "=")}
        assert find_missing(preds, self._catalog()) == [Predicate("users", "email", "=")]

    def test_empty_catalog_reports_everything(self):
        preds = [Predicate("b", "x", "="), Predicate("a", "y", "=")]
        assert find_missing(preds, build_catalog([])) == [Predicate("a", "y", "="), Predicate("b", "x", "=")]

    def test_input_order_does_not_matter(self):
        preds = [
            Predicate("users", "email", "="),
            Predicate("orders", "created_at", ">"),
            Predicate("orders", "created_at", "<"),
        ]
        catalog = self._catalog()
        assert find_missing(preds, catalog) == find_missing(list(reversed(preds)), catalog)


class TestRecommendations:
    def test_ddl_round_trips_through_replay(self):
        pred = Predicate("users", "email", "=")
        ddl = recommend_ddl(pred)
        assert ddl == "CREATE INDEX idx_users_email ON users(email);"
        catalog = build_catalog([("fix.sql", ddl)])
        assert find_missing([pred], catalog) == []

    def test_range_ddl_leads_with_the_column(self):
        pred = Predicate("orders", "created_at", ">")
        catalog = build_catalog([
            ("V1.sql", "CREATE INDEX idx_o ON orders (status, created_at);"),
            ("fix.sql", recommend_ddl(pred)),
        ])
        assert find_missing([pred], catalog) == []

    def test_range_hint_names_trailing_index(self):
        catalog = build_catalog([("V1.sql", "CREATE INDEX idx_o ON orders (status, created_at);")])
        hint = index_hint(Predicate("orders", "created_at", "<"), catalog)
        assert hint == "range scan: created_at is not the leading column of idx_o"

    def test_range_hint_without_catalog(self):
        assert index_hint(Predicate("orders", "created_at", "<")) == (
            "range scan: column must lead a composite index"
        )

    @pytest.mark.parametrize("op,expected", [
        ("LIKE", "only prefix patterns (LIKE 'abc%') use a B-tree index"),
        ("IS NULL", "consider a partial index"),
        ("IS NOT NULL", "consider a partial index"),
        ("=", ""),
    ])
    def test_other_hints(self, op, expected):
        assert index_hint(Predicate("t", "c", op)) == expected


class TestBuildFindings:
    def test_locations_are_attached(self):
        pred = Predicate("users", "email", "=")
        covered = Predicate("users", "status", "=")
        loc_a = QueryLocation("UserRepository.java", 5, "UserRepository", "findByEmail")
        loc_b = QueryLocation("UserRepository.java", 9, "UserRepository", "findByEmailAndStatus")
        catalog = build_catalog([("V1.sql", "CREATE INDEX idx_s ON users (status);")])
        (finding,) = build_findings({pred: [loc_a, loc_b], covered: [loc_b]}, catalog)
        assert finding.predicate == pred
        assert finding.locations == (loc_a, loc_b)
        assert finding.ddl == "CREATE INDEX idx_users_email ON users(email);"
        data = finding.to_dict()
        assert data["table"] == "users"
        assert data["locations"][1]["method"] == "findByEmailAndStatus"
