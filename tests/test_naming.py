"""Tests for identifier naming helpers (camel -> snake, quoting, tables)."""

from __future__ import annotations

import pytest

from idxprobe.schema.naming import (
    camel_to_snake,
    decapitalize,
    normalize_table,
    unquote_identifier,
)


class TestCamelToSnake:
    @pytest.mark.parametrize("name,expected", [
        ("email", "email"),
        ("createdAt", "created_at"),
        ("OrderItem", "order_item"),
        ("userID", "user_id"),
        ("HTTPCode", "http_code"),
        ("address2Line", "address2_line"),
        ("already_snake", "already_snake"),
    ])
    def test_conversion(self, name, expected):
        assert camel_to_snake(name) == expected

    @pytest.mark.parametrize("name", [
        "createdAt", "OrderItem", "userID", "HTTPCode", "URLPath", "a", "X", "ABC",
        "lineItemsV2", "already_snake",
    ])
    def test_idempotent(self, name):
        once = camel_to_snake(name)
        assert camel_to_snake(once) == once

    def test_output_is_lower_case(self):
        assert camel_to_snake("PurchaseOrderLine") == "purchase_order_line"


class TestDecapitalize:
    def test_first_letter_only(self):
        assert decapitalize("EmailAddress") == "emailAddress"

    def test_empty(self):
        assert decapitalize("") == ""


class TestQuotedNames:
    @pytest.mark.parametrize("raw,expected", [
        ('"Users"', "Users"),
        ("`orders`", "orders"),
        ("[line items]", "line items"),
        ("plain", "plain"),
    ])
    def test_unquote(self, raw, expected):
        assert unquote_identifier(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("users", "users"),
        ("USERS", "users"),
        ('public."Users"', "users"),
        ("`shop`.`orders`", "orders"),
        ('"my.schema"."T"', "t"),
    ])
    def test_normalize_table(self, raw, expected):
        assert normalize_table(raw) == expected
