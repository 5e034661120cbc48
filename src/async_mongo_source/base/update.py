# src/async_mongo_source/base/update.py

import logging
from dataclasses import dataclass
from typing import Any, List, Literal, Union

from .conditions import Field
from .utils import prepare_for_storage


# --- Agnostic Update Operation Classes ---
@dataclass
class UpdateOperation:
    field_path: str


@dataclass
class SetOperation(UpdateOperation):
    value: Any


@dataclass
class UnsetOperation(UpdateOperation):
    pass


@dataclass
class IncrementOperation(UpdateOperation):
    amount: Union[int, float]


@dataclass
class MultiplyOperation(UpdateOperation):
    factor: Union[int, float]


@dataclass
class MinOperation(UpdateOperation):
    value: Any


@dataclass
class MaxOperation(UpdateOperation):
    value: Any


@dataclass
class PushOperation(UpdateOperation):
    items: List[Any]


@dataclass
class PopOperation(UpdateOperation):
    position: Literal[-1, 1]


@dataclass
class PullOperation(UpdateOperation):
    value_or_condition: Any


# --- End Agnostic Update Operation Classes ---


class Update:
    """
    Fluent builder for a single document update.

    Field paths use domain names; the query factory renames them and turns
    the recorded operations into native update operators.

    Example:
        Update().set("status", "active").increment("visits").push("tags", "new")
    """

    def __init__(self) -> None:
        self._operations: List[UpdateOperation] = []
        self._logger = logging.getLogger(__name__)

    def _get_field_path(self, field: Union[str, Field]) -> str:
        if isinstance(field, str):
            return field
        if isinstance(field, Field):
            return field.path
        raise TypeError(
            f"Expected field to be str or Field, got {type(field).__name__}"
        )

    def _check_field_conflict(self, field_path: str) -> None:
        """
        Check if the field already has an operation applied to it or to a parent/child path.

        MongoDB rejects updates where two operators touch the same path or
        overlapping paths ("metadata" and "metadata.key1").
        """
        for op in self._operations:
            existing_path = op.field_path

            if existing_path == field_path:
                conflict_type = "exact match"
            elif field_path.startswith(existing_path + "."):
                conflict_type = "child"
            elif existing_path.startswith(field_path + "."):
                conflict_type = "parent"
            else:
                continue

            self._logger.warning(
                f"Field conflict detected: '{field_path}' conflicts with existing operation "
                f"on '{existing_path}' ({conflict_type})."
            )
            if conflict_type == "exact match":
                message = (
                    f"Field '{field_path}' already has an operation. Multiple operations "
                    f"on the same field are not allowed in a single update."
                )
            elif conflict_type == "child":
                message = (
                    f"Field '{field_path}' conflicts with existing operation on parent "
                    f"field '{existing_path}'."
                )
            else:
                message = (
                    f"Field '{field_path}' conflicts with existing operation on child "
                    f"field '{existing_path}'."
                )
            raise ValueError(message)

    def _add(self, operation: UpdateOperation) -> "Update":
        self._check_field_conflict(operation.field_path)
        self._operations.append(operation)
        return self

    @staticmethod
    def _require_numeric(name: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{name} must be numeric, got {type(value).__name__}.")

    # --- Update Methods ---
    def set(self, field: Union[str, Field], value: Any) -> "Update":
        return self._add(
            SetOperation(self._get_field_path(field), prepare_for_storage(value))
        )

    def unset(self, field: Union[str, Field]) -> "Update":
        return self._add(UnsetOperation(self._get_field_path(field)))

    def increment(
        self, field: Union[str, Field], amount: Union[int, float] = 1
    ) -> "Update":
        self._require_numeric("Increment amount", amount)
        return self._add(IncrementOperation(self._get_field_path(field), amount))

    def decrement(
        self, field: Union[str, Field], amount: Union[int, float] = 1
    ) -> "Update":
        self._require_numeric("Decrement amount", amount)
        return self._add(IncrementOperation(self._get_field_path(field), -amount))

    def mul(self, field: Union[str, Field], factor: Union[int, float]) -> "Update":
        self._require_numeric("Multiply factor", factor)
        return self._add(MultiplyOperation(self._get_field_path(field), factor))

    def min(self, field: Union[str, Field], value: Any) -> "Update":
        return self._add(
            MinOperation(self._get_field_path(field), prepare_for_storage(value))
        )

    def max(self, field: Union[str, Field], value: Any) -> "Update":
        return self._add(
            MaxOperation(self._get_field_path(field), prepare_for_storage(value))
        )

    def push(self, field: Union[str, Field], *items: Any) -> "Update":
        if not items:
            raise ValueError("push requires at least one item")
        return self._add(
            PushOperation(
                self._get_field_path(field), [prepare_for_storage(i) for i in items]
            )
        )

    def pop(
        self, field: Union[str, Field], position: Literal[-1, 1] = 1
    ) -> "Update":
        if position not in (1, -1):
            raise ValueError(
                f"Position for pop must be 1 (last) or -1 (first), got {position}."
            )
        return self._add(PopOperation(self._get_field_path(field), position))

    def pull(self, field: Union[str, Field], value_or_condition: Any) -> "Update":
        """Removes matching items from an array. Operator dicts are kept as given."""
        is_operator_dict = isinstance(value_or_condition, dict) and any(
            str(k).startswith("$") for k in value_or_condition
        )
        value = (
            value_or_condition
            if is_operator_dict
            else prepare_for_storage(value_or_condition)
        )
        return self._add(PullOperation(self._get_field_path(field), value))

    # --- Build and Utility Methods ---
    def build(self) -> List[UpdateOperation]:
        return list(self._operations)

    def __repr__(self) -> str:
        ops_repr = ", ".join(repr(op) for op in self._operations)
        return f"Update([{ops_repr}])"

    def __bool__(self) -> bool:
        return bool(self._operations)

    def __len__(self) -> int:
        return len(self._operations)
