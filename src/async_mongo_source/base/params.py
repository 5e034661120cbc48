# src/async_mongo_source/base/params.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .conditions import ConditionNode
from .update import Update

# {"field": 1 | -1 | "asc" | "desc"}, [("field", dir)] or ["field", "-field"]
SortSpec = Union[
    Mapping[str, Union[int, str]],
    Sequence[Union[str, Tuple[str, Union[int, str]]]],
]
UpdateItem = Union[Dict[str, Any], Update]


class UpdateMethod(Enum):
    UPDATE_ONE = "updateOne"
    UPDATE_MANY = "updateMany"


@dataclass
class FindParams:
    where: Optional[ConditionNode] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    sort: Optional[SortSpec] = None
    projection: Optional[Dict[str, Any]] = None


@dataclass
class CountParams:
    where: Optional[ConditionNode] = None


@dataclass
class RemoveParams:
    where: Optional[ConditionNode] = None


@dataclass
class UpdateParams:
    """
    Parallel arrays describing one or more updates.

    `updates[i]` is applied to the documents matched by `where[i]`, with
    `methods[i]` choosing between a single-document and a multi-document
    update. The three lists must have the same length.
    """

    updates: List[UpdateItem] = field(default_factory=list)
    where: List[Optional[ConditionNode]] = field(default_factory=list)
    methods: List[Any] = field(default_factory=list)
    upsert: bool = False

    @classmethod
    def one(
        cls, update: UpdateItem, where: Optional[ConditionNode] = None, upsert: bool = False
    ) -> "UpdateParams":
        return cls([update], [where], [UpdateMethod.UPDATE_ONE], upsert)

    @classmethod
    def many(
        cls, update: UpdateItem, where: Optional[ConditionNode] = None, upsert: bool = False
    ) -> "UpdateParams":
        return cls([update], [where], [UpdateMethod.UPDATE_MANY], upsert)


@dataclass
class AggregationParams:
    where: Optional[ConditionNode] = None
    group_by: Optional[Union[str, List[str]]] = None
    sum: Optional[Union[str, List[str]]] = None
    average: Optional[Union[str, List[str]]] = None
    min: Optional[Union[str, List[str]]] = None
    max: Optional[Union[str, List[str]]] = None
    # True for a plain document count, or field name(s) to count non-null values
    count: Optional[Union[bool, str, List[str]]] = None
    having: Optional[ConditionNode] = None
    filter_by: Optional[ConditionNode] = None
    sort: Optional[SortSpec] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
