"""Condition expressions evaluated by record stores before a write is applied."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Attributes a condition may reference. Metadata is an open map and is never
# used as a write guard.
CONDITION_ATTRIBUTES = ("key", "collection", "successor", "content", "kind")

NULL_EQ_ERROR = "Use .not_exists() instead of == None in record conditions."
NULL_NE_ERROR = "Use .exists() instead of != None in record conditions."


class Condition:
    """Base class for condition expressions."""

    def __and__(self, other: Condition) -> LogicalCondition:
        return LogicalCondition(op="AND", children=[self, other])

    def __or__(self, other: Condition) -> LogicalCondition:
        return LogicalCondition(op="OR", children=[self, other])

    def __invert__(self) -> LogicalCondition:
        return LogicalCondition(op="NOT", children=[self])

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        """Evaluate against the stored attributes of a record (None when absent)."""
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


@dataclass
class ComparisonCondition(Condition):
    """Equality or inequality between a record attribute and a value.

    A missing attribute never equals a value and always differs from one,
    matching DynamoDB condition semantics.
    """

    attribute: str
    op: str  # "==", "!="
    value: Any = None

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        current = None if item is None else item.get(self.attribute)
        if self.op == "==":
            return current is not None and current == self.value
        if self.op == "!=":
            return current is None or current != self.value
        raise ValueError(f"Unknown comparison operator: {self.op}")

    def describe(self) -> str:
        return f"{self.attribute} {self.op} {self.value!r}"


@dataclass
class ExistsCondition(Condition):
    """Presence (or absence) of a record attribute."""

    attribute: str
    exists: bool = True

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        present = item is not None and item.get(self.attribute) is not None
        return present if self.exists else not present

    def describe(self) -> str:
        fn = "attribute_exists" if self.exists else "attribute_not_exists"
        return f"{fn}({self.attribute})"


@dataclass
class LogicalCondition(Condition):
    """A logical combination of conditions."""

    op: str  # "AND", "OR", "NOT"
    children: list[Condition] = field(default_factory=list)

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        if self.op == "NOT":
            return not self.children[0].evaluate(item)
        if self.op == "AND":
            return all(c.evaluate(item) for c in self.children)
        if self.op == "OR":
            return any(c.evaluate(item) for c in self.children)
        raise ValueError(f"Unknown logical operator: {self.op}")

    def describe(self) -> str:
        if self.op == "NOT":
            return f"NOT ({self.children[0].describe()})"
        joiner = f" {self.op} "
        return "(" + joiner.join(c.describe() for c in self.children) + ")"


class AttributeProxy:
    """Proxy that builds conditions from operators on a record attribute.

    Usage: attr("successor") == "." or attr("key").not_exists()
    """

    def __init__(self, attribute: str) -> None:
        if attribute not in CONDITION_ATTRIBUTES:
            raise ValueError(
                f"Unsupported condition attribute '{attribute}': "
                f"expected one of {', '.join(CONDITION_ATTRIBUTES)}"
            )
        self._attribute = attribute

    def __eq__(self, other: object) -> ComparisonCondition:  # type: ignore[override]
        if other is None:
            raise TypeError(NULL_EQ_ERROR)
        return ComparisonCondition(self._attribute, "==", other)

    def __ne__(self, other: object) -> ComparisonCondition:  # type: ignore[override]
        if other is None:
            raise TypeError(NULL_NE_ERROR)
        return ComparisonCondition(self._attribute, "!=", other)

    def exists(self) -> ExistsCondition:
        return ExistsCondition(self._attribute, True)

    def not_exists(self) -> ExistsCondition:
        return ExistsCondition(self._attribute, False)


def attr(name: str) -> AttributeProxy:
    """Create a proxy for building conditions over a record attribute."""
    return AttributeProxy(name)


def record_exists() -> ExistsCondition:
    return ExistsCondition("key", True)


def record_absent() -> ExistsCondition:
    return ExistsCondition("key", False)
