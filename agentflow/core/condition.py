"""Evaluation of simple condition expressions against an execution context."""

import random
from typing import Any, Callable, Mapping, Optional, Tuple

from .context import ExecutionContext, UNSET
from .exceptions import ConditionEvaluationError, ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)

# Checked in this order; two-character operators must precede their prefixes.
OPERATORS = ("==", "!=", ">=", "<=", ">", "<")


def parse_literal(raw: str) -> Any:
    """Parse the right-hand operand of a comparison.

    Quoted text becomes a string, numeric text a number, ``true``/``false``
    a boolean; anything else is kept as the raw string.
    """
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]

    number = _to_number(text)
    if number is not None:
        return number

    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return text


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    return None


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality that tolerates numbers and booleans carried as strings."""
    if left is UNSET:
        return False
    if isinstance(right, bool) or isinstance(left, bool):
        left_bool, right_bool = _to_bool(left), _to_bool(right)
        if left_bool is not None and right_bool is not None:
            return left_bool == right_bool
        return False
    left_num, right_num = _to_number(left), _to_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    if left is None or right is None:
        return left is right
    return str(left) == str(right)


def compare_ordered(left: Any, operator: str, right: Any) -> bool:
    """Ordering comparison typed by the right operand; mismatched types are false."""
    if left is UNSET:
        return False

    if isinstance(right, bool):
        if not isinstance(left, bool):
            return False
        lhs, rhs = left, right
    elif isinstance(right, (int, float)):
        lhs = _to_number(left)
        if lhs is None:
            return False
        rhs = right
    elif isinstance(right, str):
        if not isinstance(left, str):
            return False
        lhs, rhs = left, right
    else:
        return False

    if operator == ">":
        return lhs > rhs
    if operator == "<":
        return lhs < rhs
    if operator == ">=":
        return lhs >= rhs
    if operator == "<=":
        return lhs <= rhs
    raise ConditionEvaluationError(f"Unsupported operator: {operator}")


class ConditionEvaluator:
    """Evaluates ``<path> <op> <literal>`` expressions.

    ``check`` raises ``ConditionEvaluationError`` on malformed input;
    ``evaluate`` logs the failure and returns False instead.
    """

    def split(self, expression: str) -> Tuple[str, str, str]:
        """Split an expression on the first operator found, in priority order."""
        if expression is None or not str(expression).strip():
            raise ConditionEvaluationError("Condition expression is empty", expression=expression)

        expression = str(expression)
        for operator in OPERATORS:
            if operator in expression:
                left, right = expression.split(operator, 1)
                left, right = left.strip(), right.strip()
                if not left:
                    raise ConditionEvaluationError(
                        f"Missing left operand for '{operator}'", expression=expression
                    )
                if not right:
                    raise ConditionEvaluationError(
                        f"Missing right operand for '{operator}'", expression=expression
                    )
                return left, operator, right

        raise ConditionEvaluationError(
            f"No comparison operator found in condition: {expression}", expression=expression
        )

    def check(self, expression: str, context: Mapping[str, Any]) -> bool:
        left_path, operator, right_raw = self.split(expression)

        if not isinstance(context, ExecutionContext):
            context = ExecutionContext(context)

        left = context.get_path(left_path)
        right = parse_literal(right_raw)

        if operator == "==":
            return loose_equals(left, right)
        if operator == "!=":
            # A missing value is neither equal nor unequal to anything
            if left is UNSET:
                return False
            return not loose_equals(left, right)
        return compare_ordered(left, operator, right)

    def evaluate(self, expression: str, context: Mapping[str, Any]) -> bool:
        try:
            return self.check(expression, context)
        except ConditionEvaluationError as e:
            logger.warning(f"Failed to evaluate condition '{expression}': {e.message}")
            return False


class FallbackStrategy:
    """Decides a branch for condition nodes that carry no simple expression."""

    name = "base"

    def decide(self, node_id: str) -> bool:
        raise NotImplementedError


class AlwaysFalse(FallbackStrategy):
    name = "always_false"

    def decide(self, node_id: str) -> bool:
        return False


class AlwaysTrue(FallbackStrategy):
    name = "always_true"

    def decide(self, node_id: str) -> bool:
        return True


class RandomBranch(FallbackStrategy):
    """Coin flip. Only used when explicitly configured."""

    name = "random_branch"

    def __init__(self, rng: Optional[Callable[[], float]] = None):
        self._rng = rng or random.random

    def decide(self, node_id: str) -> bool:
        result = self._rng() > 0.5
        logger.debug(f"Random branch for condition node {node_id}: {result}")
        return result


def build_fallback(name: str, rng: Optional[Callable[[], float]] = None) -> FallbackStrategy:
    """Build the fallback strategy named by configuration."""
    value = getattr(name, "value", name)
    if value == AlwaysFalse.name:
        return AlwaysFalse()
    if value == AlwaysTrue.name:
        return AlwaysTrue()
    if value == RandomBranch.name:
        return RandomBranch(rng)
    raise ConfigurationError(f"Unknown condition fallback: {value}", config_key="condition_fallback")
