"""Tests for condition expressions and their SQL compilation."""

from __future__ import annotations

import re

import pytest

from renodes.conditions import (
    NULL_EQ_ERROR,
    NULL_NE_ERROR,
    ComparisonCondition,
    ExistsCondition,
    LogicalCondition,
    attr,
    record_absent,
    record_exists,
)
from renodes.storage import _compile_condition


class TestConditionBuilding:
    def test_equality(self):
        cond = attr("successor") == "."
        assert isinstance(cond, ComparisonCondition)
        assert cond.attribute == "successor"
        assert cond.op == "=="
        assert cond.value == "."

    def test_inequality(self):
        cond = attr("successor") != "b"
        assert cond.op == "!="

    def test_exists_helpers(self):
        assert record_exists() == ExistsCondition("key", True)
        assert record_absent() == ExistsCondition("key", False)

    def test_logical_combinations(self):
        a = attr("successor") == "x"
        b = attr("kind").exists()
        assert (a & b).op == "AND"
        assert (a | b).op == "OR"
        inverted = ~a
        assert isinstance(inverted, LogicalCondition)
        assert inverted.op == "NOT"
        assert inverted.children == [a]

    def test_none_comparisons_rejected(self):
        with pytest.raises(TypeError, match=re.escape(NULL_EQ_ERROR)):
            attr("kind") == None  # noqa: E711
        with pytest.raises(TypeError, match=re.escape(NULL_NE_ERROR)):
            attr("kind") != None  # noqa: E711

    def test_unknown_attribute_rejected(self):
        with pytest.raises(ValueError, match="Unsupported condition attribute"):
            attr("metadata")

    def test_describe(self):
        cond = (attr("successor") == "b") & record_absent()
        assert cond.describe() == "(successor == 'b' AND attribute_not_exists(key))"


class TestEvaluate:
    def test_equality_against_record(self):
        cond = attr("successor") == "b"
        assert cond.evaluate({"key": "a", "successor": "b"})
        assert not cond.evaluate({"key": "a", "successor": "c"})

    def test_equality_on_missing_record_is_false(self):
        assert not (attr("successor") == "b").evaluate(None)

    def test_inequality_on_missing_attribute_is_true(self):
        assert (attr("kind") != "x").evaluate({"key": "a"})
        assert (attr("successor") != "b").evaluate(None)

    def test_exists(self):
        assert record_exists().evaluate({"key": "a"})
        assert not record_exists().evaluate(None)
        assert record_absent().evaluate(None)
        assert not attr("kind").exists().evaluate({"key": "a"})

    def test_logical(self):
        item = {"key": "a", "successor": "b", "kind": "md"}
        assert ((attr("successor") == "b") & (attr("kind") == "md")).evaluate(item)
        assert ((attr("successor") == "z") | (attr("kind") == "md")).evaluate(item)
        assert not (~(attr("successor") == "b")).evaluate(item)


class TestCompileCondition:
    def test_equality(self):
        params: list = []
        sql = _compile_condition(attr("successor") == ".", params)
        assert sql == "successor = ?"
        assert params == ["."]

    def test_inequality_includes_missing(self):
        params: list = []
        sql = _compile_condition(attr("kind") != "md", params)
        assert "IS NULL" in sql
        assert params == ["md"]

    def test_exists(self):
        assert _compile_condition(record_exists(), []) == "key IS NOT NULL"
        assert _compile_condition(record_absent(), []) == "key IS NULL"

    def test_logical_params_in_order(self):
        params: list = []
        cond = (attr("successor") == "a") & ~(attr("kind") == "b")
        sql = _compile_condition(cond, params)
        assert "AND" in sql
        assert "NOT" in sql
        assert params == ["a", "b"]

    def test_rejects_unknown_attribute(self):
        with pytest.raises(ValueError):
            _compile_condition(ComparisonCondition("metadata", "==", "x"), [])
