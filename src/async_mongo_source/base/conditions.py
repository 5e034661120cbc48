# src/async_mongo_source/base/conditions.py
import logging
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional, Sequence, Union

log = logging.getLogger(__name__)


# --- Operator Enums ---
class ConditionOperator(Enum):
    """Closed set of leaf condition operators."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    # Range inclusion / exclusion
    IN = "in"
    NIN = "nin"
    BETWEEN = "between"
    # Boolean / null checks
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    # Emptiness checks
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    # Pattern matching
    LIKE = "like"
    # Extensions
    JSON_EXTRACT = "json_extract"
    FULL_TEXT = "fulltext"
    ARRAY_CONTAINS = "array_contains"


class JunctionOperator(Enum):
    AND = "and"
    OR = "or"


# Operators that take no value
VALUELESS_OPERATORS = frozenset(
    {
        ConditionOperator.IS_TRUE,
        ConditionOperator.IS_FALSE,
        ConditionOperator.IS_NULL,
        ConditionOperator.IS_NOT_NULL,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    }
)

# Operators whose value is a collection of individually comparable items
MULTI_VALUE_OPERATORS = frozenset(
    {
        ConditionOperator.IN,
        ConditionOperator.NIN,
        ConditionOperator.BETWEEN,
        ConditionOperator.ARRAY_CONTAINS,
    }
)

# Operators whose value is a pattern or text, never a stored field value
PATTERN_OPERATORS = frozenset(
    {
        ConditionOperator.LIKE,
        ConditionOperator.FULL_TEXT,
        ConditionOperator.JSON_EXTRACT,
    }
)


def _coerce_enum(enum_cls, value):
    """Returns the enum member for `value`, or `value` itself when unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        log.debug(f"Keeping unknown {enum_cls.__name__} value {value!r} verbatim")
        return value


# --- Condition Nodes ---
class ConditionNode:
    """Base class for condition tree nodes. `kind` is the union discriminant."""

    kind: ClassVar[str] = ""

    def __and__(self, other: "ConditionNode") -> "CompositeCondition":
        return _combine(JunctionOperator.AND, self, other)

    def __or__(self, other: "ConditionNode") -> "CompositeCondition":
        return _combine(JunctionOperator.OR, self, other)


@dataclass(eq=True)
class Condition(ConditionNode):
    """A single predicate: field <operator> value."""

    kind: ClassVar[str] = "condition"

    field: str
    operator: Union[ConditionOperator, str]
    value: Any = None

    def __post_init__(self):
        self.operator = _coerce_enum(ConditionOperator, self.operator)


@dataclass(eq=True)
class CompositeCondition(ConditionNode):
    """AND/OR junction over one or more child nodes, kept in caller order."""

    kind: ClassVar[str] = "composite"

    conditions: List[ConditionNode] = dataclass_field(default_factory=list)
    operator: Union[JunctionOperator, str] = JunctionOperator.AND

    def __post_init__(self):
        self.conditions = list(self.conditions)
        if not self.conditions:
            raise ValueError("CompositeCondition requires at least one condition")
        self.operator = _coerce_enum(JunctionOperator, self.operator)


@dataclass(eq=True)
class RawCondition(ConditionNode):
    """A pre-built native filter, passed through untouched."""

    kind: ClassVar[str] = "raw"

    filter: Dict[str, Any] = dataclass_field(default_factory=dict)


def _combine(
    operator: JunctionOperator, left: ConditionNode, right: ConditionNode
) -> CompositeCondition:
    if not isinstance(right, ConditionNode):
        raise TypeError(
            f"Cannot combine condition with {type(right).__name__}"
        )
    log.debug(f"Combining conditions with {operator.value.upper()}: {left!r}, {right!r}")
    children: List[ConditionNode] = []
    for node in (left, right):
        # Flatten chains of the same junction, order preserved
        if isinstance(node, CompositeCondition) and node.operator == operator:
            children.extend(node.conditions)
        else:
            children.append(node)
    return CompositeCondition(children, operator)


def and_(*conditions: ConditionNode) -> CompositeCondition:
    return CompositeCondition(list(conditions), JunctionOperator.AND)


def or_(*conditions: ConditionNode) -> CompositeCondition:
    return CompositeCondition(list(conditions), JunctionOperator.OR)


# --- Field Representation ---
class Field:
    """Builds leaf conditions for a field path."""

    __slots__ = ("_path",)

    def __init__(self, path: str):
        object.__setattr__(self, "_path", path)

    @property
    def path(self) -> str:
        return self._path

    def _op(self, operator: ConditionOperator, value: Any = None) -> Condition:
        if operator in (ConditionOperator.IN, ConditionOperator.NIN):
            if not isinstance(value, (list, set, tuple)):
                raise TypeError(f"Operator '{operator.value}' requires a list/set/tuple")
            value = list(value)
        if operator == ConditionOperator.LIKE and not isinstance(value, str):
            raise TypeError(f"Operator '{operator.value}' requires a string value")
        return Condition(self._path, operator, value)

    # Comparison operators
    def __eq__(self, other: Any) -> Condition:  # type: ignore[override]
        return self._op(ConditionOperator.EQ, other)

    def __ne__(self, other: Any) -> Condition:  # type: ignore[override]
        return self._op(ConditionOperator.NE, other)

    def __gt__(self, other: Any) -> Condition:
        return self._op(ConditionOperator.GT, other)

    def __ge__(self, other: Any) -> Condition:
        return self._op(ConditionOperator.GTE, other)

    def __lt__(self, other: Any) -> Condition:
        return self._op(ConditionOperator.LT, other)

    def __le__(self, other: Any) -> Condition:
        return self._op(ConditionOperator.LTE, other)

    __hash__ = None  # type: ignore[assignment]

    # Named operators
    def is_eq(self, value: Any) -> Condition:
        return self._op(ConditionOperator.EQ, value)

    def is_ne(self, value: Any) -> Condition:
        return self._op(ConditionOperator.NE, value)

    def in_(self, values: Sequence[Any]) -> Condition:
        return self._op(ConditionOperator.IN, values)

    def nin(self, values: Sequence[Any]) -> Condition:
        return self._op(ConditionOperator.NIN, values)

    def between(self, lower: Any, upper: Any) -> Condition:
        return self._op(ConditionOperator.BETWEEN, (lower, upper))

    def is_true(self) -> Condition:
        return self._op(ConditionOperator.IS_TRUE)

    def is_false(self) -> Condition:
        return self._op(ConditionOperator.IS_FALSE)

    def is_null(self) -> Condition:
        return self._op(ConditionOperator.IS_NULL)

    def is_not_null(self) -> Condition:
        return self._op(ConditionOperator.IS_NOT_NULL)

    def is_empty(self) -> Condition:
        return self._op(ConditionOperator.IS_EMPTY)

    def is_not_empty(self) -> Condition:
        return self._op(ConditionOperator.IS_NOT_EMPTY)

    def like(self, pattern: str) -> Condition:
        return self._op(ConditionOperator.LIKE, pattern)

    def json_extract(self, path: str, value: Any) -> Condition:
        return self._op(ConditionOperator.JSON_EXTRACT, {"path": path, "value": value})

    def fulltext(self, search: str, language: Optional[str] = None) -> Condition:
        value: Any = search
        if language is not None:
            value = {"search": search, "language": language}
        return self._op(ConditionOperator.FULL_TEXT, value)

    def array_contains(self, items: Any) -> Condition:
        return self._op(ConditionOperator.ARRAY_CONTAINS, items)

    def __getattr__(self, name: str) -> "Field":
        """Nested paths: field("address").city -> Field("address.city")."""
        if name.startswith("_"):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )
        return Field(f"{self._path}.{name}")

    def __setattr__(self, name: str, value: Any):
        raise AttributeError(f"Cannot set attribute '{name}' on Field object.")

    def __repr__(self) -> str:
        return f"Field(path={self._path!r})"


def field(path: str) -> Field:
    """Entry point of the fluent condition API."""
    return Field(path)


Where = Optional[ConditionNode]
NodeKind = Literal["condition", "composite", "raw"]
