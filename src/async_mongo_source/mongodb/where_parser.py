# src/async_mongo_source/mongodb/where_parser.py

import logging
import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from bson import ObjectId

from async_mongo_source.base.conditions import (PATTERN_OPERATORS,
                                                CompositeCondition, Condition,
                                                ConditionNode,
                                                ConditionOperator,
                                                JunctionOperator, RawCondition)
from async_mongo_source.base.exceptions import UnsupportedOperatorError

log = logging.getLogger(__name__)

# Operator -> native query operator. Operators mapped to a non "$" marker are
# rewritten by the parser into a multi-key filter.
DEFAULT_OPERATOR_MAPPING: Mapping[ConditionOperator, str] = MappingProxyType(
    {
        ConditionOperator.EQ: "$eq",
        ConditionOperator.NE: "$ne",
        ConditionOperator.GT: "$gt",
        ConditionOperator.GTE: "$gte",
        ConditionOperator.LT: "$lt",
        ConditionOperator.LTE: "$lte",
        ConditionOperator.IN: "$in",
        ConditionOperator.NIN: "$nin",
        ConditionOperator.BETWEEN: "between",
        ConditionOperator.IS_TRUE: "$eq",
        ConditionOperator.IS_FALSE: "$eq",
        ConditionOperator.IS_NULL: "$eq",
        ConditionOperator.IS_NOT_NULL: "$ne",
        ConditionOperator.IS_EMPTY: "$or",
        ConditionOperator.IS_NOT_EMPTY: "$and",
        ConditionOperator.LIKE: "$regex",
        ConditionOperator.JSON_EXTRACT: "json_extract",
        ConditionOperator.FULL_TEXT: "$text",
        ConditionOperator.ARRAY_CONTAINS: "$all",
    }
)

JUNCTIONS: Mapping[JunctionOperator, str] = MappingProxyType(
    {JunctionOperator.AND: "$and", JunctionOperator.OR: "$or"}
)

EMPTY_VALUES = ("", [], {})

# Pattern and text values must never be turned into ObjectIds
_NO_ID_COERCION = PATTERN_OPERATORS


def like_to_regex(pattern: str) -> str:
    """
    Translates a SQL LIKE pattern into an anchored regular expression.

    `%` matches any run of characters and `_` a single character. The result
    is anchored at both ends unless the pattern starts or ends with `%`.
    """
    starts_open = pattern.startswith("%")
    body = pattern[1:] if starts_open else pattern
    ends_open = body.endswith("%")
    if ends_open:
        body = body[:-1]

    parts = []
    for char in body:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))

    regex = "".join(parts)
    if not starts_open:
        regex = "^" + regex
    if not ends_open:
        regex = regex + "$"
    return regex


class MongoWhereParser:
    """
    Compiles condition trees into MongoDB filter documents.

    The parser holds no per-call state, so one instance can compile
    independent trees concurrently.
    """

    def __init__(
        self,
        operators: Optional[Mapping[Any, str]] = None,
        id_fields: Iterable[str] = ("id", "_id"),
        case_insensitive: bool = True,
    ):
        mapping = dict(DEFAULT_OPERATOR_MAPPING)
        if operators is not None:
            mapping = dict(operators)
        self._operators: Mapping[Any, str] = MappingProxyType(mapping)
        self._id_fields = frozenset(id_fields)
        self._case_insensitive = case_insensitive

    @property
    def operators(self) -> Mapping[Any, str]:
        return self._operators

    def parse(self, node: Optional[ConditionNode]) -> Dict[str, Any]:
        if node is None:
            return {}

        match node:
            case RawCondition():
                return node.filter
            case Condition():
                result = self._parse_condition(node)
            case CompositeCondition():
                result = self._parse_composite(node)
            case _:
                raise TypeError(f"Unknown condition node type: {type(node).__name__}")

        log.debug(f"Compiled {node!r} -> {result}")
        return result

    # --- Leaf Conditions ---

    def _parse_condition(self, condition: Condition) -> Dict[str, Any]:
        operator = condition.operator
        native_op = self._operators.get(operator)
        if native_op is None:
            raise UnsupportedOperatorError(
                operator.value if isinstance(operator, ConditionOperator) else operator
            )

        field = condition.field
        value = condition.value
        if operator not in _NO_ID_COERCION and self.is_id_field(field):
            value = self.coerce_id(value)

        match operator:
            case ConditionOperator.BETWEEN:
                if not isinstance(value, (list, tuple)) or len(value) != 2:
                    raise ValueError(
                        f"'between' on '{field}' requires a two element list, got {value!r}"
                    )
                return {field: {"$gte": value[0], "$lte": value[1]}}
            case ConditionOperator.IS_TRUE:
                return {field: {native_op: True}}
            case ConditionOperator.IS_FALSE:
                return {field: {native_op: False}}
            case ConditionOperator.IS_NULL | ConditionOperator.IS_NOT_NULL:
                return {field: {native_op: None}}
            case ConditionOperator.IS_EMPTY:
                return {native_op: [{field: {"$eq": empty}} for empty in EMPTY_VALUES]}
            case ConditionOperator.IS_NOT_EMPTY:
                return {native_op: [{field: {"$ne": empty}} for empty in EMPTY_VALUES]}
            case ConditionOperator.LIKE:
                if not isinstance(value, str):
                    raise ValueError(f"'like' on '{field}' requires a string pattern")
                regex: Dict[str, Any] = {native_op: like_to_regex(value)}
                if self._case_insensitive:
                    regex["$options"] = "i"
                return {field: regex}
            case ConditionOperator.FULL_TEXT:
                return self._parse_fulltext(value)
            case ConditionOperator.JSON_EXTRACT:
                return self._parse_json_extract(field, value)
            case ConditionOperator.ARRAY_CONTAINS:
                items = list(value) if isinstance(value, (list, tuple, set)) else [value]
                return {field: {native_op: items}}
            case ConditionOperator.IN | ConditionOperator.NIN:
                if isinstance(value, (tuple, set)):
                    value = list(value)
                if not isinstance(value, list):
                    raise ValueError(f"'{operator.value}' on '{field}' requires a list")
                return {field: {native_op: value}}
            case _:
                return {field: {native_op: value}}

    def _parse_fulltext(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, dict):
            text: Dict[str, Any] = {"$search": value["search"]}
            if value.get("language"):
                text["$language"] = value["language"]
            return {"$text": text}
        return {"$text": {"$search": value}}

    def _parse_json_extract(self, field: str, value: Any) -> Dict[str, Any]:
        if not isinstance(value, dict) or "path" not in value:
            raise ValueError(
                f"'json_extract' on '{field}' requires a {{'path', 'value'}} mapping"
            )
        path = str(value["path"])
        if path.startswith("$."):
            path = path[2:]
        elif path.startswith("$"):
            path = path[1:]
        full_path = f"{field}.{path}" if path else field
        return {full_path: {"$eq": value.get("value")}}

    # --- Composite Conditions ---

    def _parse_composite(self, composite: CompositeCondition) -> Dict[str, Any]:
        junction = JUNCTIONS.get(composite.operator)
        if junction is None:
            operator = composite.operator
            raise UnsupportedOperatorError(
                operator.value if isinstance(operator, JunctionOperator) else operator
            )
        return {junction: [self.parse(child) for child in composite.conditions]}

    # --- Id Coercion ---

    def is_id_field(self, field: str) -> bool:
        return field in self._id_fields or field.rsplit(".", 1)[-1] == "_id"

    def coerce_id(self, value: Any) -> Any:
        """Converts 24 hex strings to ObjectId, recursing into lists and dicts."""
        if isinstance(value, str):
            if ObjectId.is_valid(value):
                return ObjectId(value)
            log.debug(f"Value '{value}' is not a valid ObjectId, leaving as-is")
            return value
        if isinstance(value, (list, tuple)):
            return [self.coerce_id(item) for item in value]
        if isinstance(value, dict):
            return {key: self.coerce_id(item) for key, item in value.items()}
        return value
