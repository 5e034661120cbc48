# src/async_mongo_source/mongodb/queries.py
"""Native operation descriptors, built fresh for one call and never mutated."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pymongo import UpdateMany, UpdateOne

from async_mongo_source.base.params import UpdateMethod

Filter = Dict[str, Any]
SortSpec = Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class FindQuery:
    filter: Filter = field(default_factory=dict)
    limit: Optional[int] = None
    skip: Optional[int] = None
    sort: Optional[SortSpec] = None
    projection: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CountQuery:
    filter: Filter = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateQuery:
    filter: Filter
    update: Dict[str, Any]
    method: UpdateMethod = UpdateMethod.UPDATE_ONE
    upsert: bool = False


@dataclass(frozen=True)
class BulkUpdateQuery:
    operations: Tuple[Union[UpdateOne, UpdateMany], ...]
    ordered: bool = True


@dataclass(frozen=True)
class RemoveQuery:
    filter: Filter = field(default_factory=dict)


@dataclass(frozen=True)
class AggregationQuery:
    pipeline: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class InsertQuery:
    documents: Sequence[Any]
    ordered: bool = True

    def __post_init__(self):
        object.__setattr__(self, "documents", tuple(self.documents))


MongoQuery = Union[
    FindQuery,
    CountQuery,
    UpdateQuery,
    BulkUpdateQuery,
    RemoveQuery,
    AggregationQuery,
    InsertQuery,
]
