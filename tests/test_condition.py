"""Tests for condition evaluation and fallback strategies."""

import pytest

from agentflow.config import ConditionFallback
from agentflow.core.condition import (
    AlwaysFalse, AlwaysTrue, ConditionEvaluator, RandomBranch, build_fallback, parse_literal
)
from agentflow.core.context import ExecutionContext, UNSET
from agentflow.core.exceptions import ConditionEvaluationError, ConfigurationError


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


class TestParseLiteral:
    """Right-hand operand parsing."""

    def test_quoted_strings_are_unquoted(self):
        assert parse_literal('"active"') == "active"
        assert parse_literal("'42'") == "42"

    def test_numbers(self):
        assert parse_literal("100") == 100
        assert parse_literal("2.5") == 2.5
        assert parse_literal("-3") == -3

    def test_booleans(self):
        assert parse_literal("true") is True
        assert parse_literal("False") is False

    def test_raw_string_fallback(self):
        assert parse_literal("pending") == "pending"


class TestConditionEvaluator:
    """Comparison semantics."""

    def test_greater_than(self, evaluator):
        assert evaluator.evaluate("value > 100", {"value": 150}) is True
        assert evaluator.evaluate("value > 100", {"value": 50}) is False

    def test_string_equality(self, evaluator):
        assert evaluator.evaluate('status == "active"', {"status": "active"}) is True
        assert evaluator.evaluate('status == "active"', {"status": "inactive"}) is False

    def test_less_than(self, evaluator):
        assert evaluator.evaluate("count < 50", {"count": 80}) is False
        assert evaluator.evaluate("count < 50", {"count": 20}) is True

    def test_two_character_operators(self, evaluator):
        assert evaluator.evaluate("score >= 10", {"score": 10}) is True
        assert evaluator.evaluate("score <= 9", {"score": 10}) is False
        assert evaluator.evaluate("score != 10", {"score": 11}) is True

    def test_missing_value_is_false_without_raising(self, evaluator):
        assert evaluator.evaluate("missing > 5", {}) is False
        assert evaluator.evaluate("missing == 5", {}) is False
        assert evaluator.evaluate("missing != 5", {}) is False

    def test_dotted_paths(self, evaluator):
        context = {"user": {"age": 30, "tags": ["a", "b"]}}
        assert evaluator.evaluate("user.age >= 18", context) is True
        assert evaluator.evaluate('user.tags.1 == "b"', context) is True
        assert evaluator.evaluate("user.address.city == x", context) is False

    def test_loose_equality(self, evaluator):
        assert evaluator.evaluate("count == 5", {"count": "5"}) is True
        assert evaluator.evaluate("flag == true", {"flag": True}) is True
        assert evaluator.evaluate("flag == true", {"flag": "true"}) is True
        assert evaluator.evaluate("flag == false", {"flag": True}) is False

    def test_ordering_typed_by_right_operand(self, evaluator):
        assert evaluator.evaluate("amount > 10", {"amount": "15"}) is True
        assert evaluator.evaluate("amount > 10", {"amount": "lots"}) is False
        assert evaluator.evaluate('name < "m"', {"name": "alice"}) is True
        assert evaluator.evaluate('name < "m"', {"name": 5}) is False

    def test_accepts_execution_context(self, evaluator):
        context = ExecutionContext({"apiResponse": {"status": 200}})
        assert evaluator.evaluate("apiResponse.status == 200", context) is True

    def test_no_operator_raises_from_check(self, evaluator):
        with pytest.raises(ConditionEvaluationError):
            evaluator.check("value is big", {"value": 1})
        assert evaluator.evaluate("value is big", {"value": 1}) is False

    def test_empty_right_operand_raises(self, evaluator):
        with pytest.raises(ConditionEvaluationError):
            evaluator.check("value >", {"value": 1})

    def test_empty_expression_raises(self, evaluator):
        with pytest.raises(ConditionEvaluationError):
            evaluator.check("   ", {})


class TestContextPaths:
    def test_get_path_returns_unset_for_missing(self):
        context = ExecutionContext({"a": {"b": 1}})
        assert context.get_path("a.b") == 1
        assert context.get_path("a.c") is UNSET
        assert context.get_path("a.b.c") is UNSET

    def test_merge_returns_new_context(self):
        original = ExecutionContext({"a": 1})
        merged = original.merge({"b": 2})
        assert "b" not in original
        assert merged == {"a": 1, "b": 2}

    def test_branches_are_independent(self):
        original = ExecutionContext({"items": [1]})
        branch = original.branch()
        branch.to_dict()["items"].append(2)
        branch["items"].append(3)
        assert original["items"] == [1]


class TestFallbackStrategies:
    def test_build_fallback_by_name(self):
        assert isinstance(build_fallback("always_false"), AlwaysFalse)
        assert isinstance(build_fallback(ConditionFallback.ALWAYS_TRUE), AlwaysTrue)
        assert isinstance(build_fallback(ConditionFallback.RANDOM_BRANCH), RandomBranch)

    def test_unknown_fallback_rejected(self):
        with pytest.raises(ConfigurationError):
            build_fallback("sometimes")

    def test_random_branch_uses_injected_rng(self):
        assert RandomBranch(rng=lambda: 0.9).decide("n1") is True
        assert RandomBranch(rng=lambda: 0.1).decide("n1") is False
