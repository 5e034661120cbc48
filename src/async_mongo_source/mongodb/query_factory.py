# src/async_mongo_source/mongodb/query_factory.py

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING, UpdateMany, UpdateOne

from async_mongo_source.base.conditions import ConditionNode
from async_mongo_source.base.exceptions import (InconsistentUpdateParamsError,
                                                UnknownUpdateMethodError)
from async_mongo_source.base.interfaces import QueryFactory
from async_mongo_source.base.params import (AggregationParams, CountParams,
                                            FindParams, RemoveParams,
                                            SortSpec, UpdateMethod,
                                            UpdateParams)
from async_mongo_source.base.update import (IncrementOperation, MaxOperation,
                                            MinOperation, MultiplyOperation,
                                            PopOperation, PullOperation,
                                            PushOperation, SetOperation,
                                            UnsetOperation, Update)
from async_mongo_source.mongodb.field_resolver import MongoFieldResolver
from async_mongo_source.mongodb.queries import (AggregationQuery,
                                                BulkUpdateQuery, CountQuery,
                                                FindQuery, RemoveQuery,
                                                UpdateQuery)
from async_mongo_source.mongodb.utils import contains_update_operators
from async_mongo_source.mongodb.where_parser import MongoWhereParser

_METHOD_ALIASES = {
    "updateone": UpdateMethod.UPDATE_ONE,
    "update_one": UpdateMethod.UPDATE_ONE,
    "one": UpdateMethod.UPDATE_ONE,
    "updatemany": UpdateMethod.UPDATE_MANY,
    "update_many": UpdateMethod.UPDATE_MANY,
    "many": UpdateMethod.UPDATE_MANY,
}

_DIRECTIONS = {
    1: ASCENDING,
    -1: DESCENDING,
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
}

# (params attribute, accumulator name prefix, native accumulator)
_ACCUMULATORS = (
    ("sum", "sum", "$sum"),
    ("average", "average", "$avg"),
    ("min", "min", "$min"),
    ("max", "max", "$max"),
)


def _output_name(prefix: str, name: str) -> str:
    # $group output names may not contain dots
    return f"{prefix}_{name}".replace(".", "_")


def _as_list(value: Union[None, str, List[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def normalize_update_method(method: Any, index: int) -> UpdateMethod:
    if isinstance(method, UpdateMethod):
        return method
    if isinstance(method, str):
        resolved = _METHOD_ALIASES.get(method.lower())
        if resolved is not None:
            return resolved
    elif isinstance(method, int) and not isinstance(method, bool) and method in (0, 1):
        return UpdateMethod.UPDATE_ONE if method == 0 else UpdateMethod.UPDATE_MANY
    raise UnknownUpdateMethodError(index, method)


class MongoQueryFactory(
    QueryFactory[FindQuery, CountQuery, Union[UpdateQuery, BulkUpdateQuery], RemoveQuery, AggregationQuery]
):
    """
    Builds MongoDB operation descriptors.

    Domain field names are resolved through the field resolver before the
    where parser compiles conditions.
    """

    def __init__(
        self,
        field_resolver: Optional[MongoFieldResolver] = None,
        where_parser: Optional[MongoWhereParser] = None,
    ):
        self.field_resolver = field_resolver or MongoFieldResolver()
        self.where_parser = where_parser or MongoWhereParser()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def build_filter(self, where: Optional[ConditionNode]) -> Dict[str, Any]:
        return self.where_parser.parse(self.field_resolver.resolve_condition(where))

    def build_sort(self, sort: Optional[SortSpec]) -> Optional[Tuple[Tuple[str, int], ...]]:
        """Normalizes any accepted sort shape into ((storage_field, 1 | -1), ...)."""
        if not sort:
            return None

        if isinstance(sort, dict):
            items = list(sort.items())
        else:
            items = []
            for entry in sort:
                if isinstance(entry, str):
                    if entry.startswith("-"):
                        items.append((entry[1:], DESCENDING))
                    else:
                        items.append((entry.lstrip("+"), ASCENDING))
                else:
                    name, direction = entry
                    items.append((name, direction))

        normalized = []
        for name, direction in items:
            key = direction.lower() if isinstance(direction, str) else direction
            if key not in _DIRECTIONS:
                raise ValueError(f"Invalid sort direction {direction!r} for field '{name}'")
            normalized.append((name, _DIRECTIONS[key]))
        return tuple(self.field_resolver.resolve_sort(normalized))

    # --- Verbs ---

    def create_find_query(self, params: Optional[FindParams] = None) -> FindQuery:
        params = params or FindParams()
        query = FindQuery(
            filter=self.build_filter(params.where),
            limit=params.limit or None,
            skip=params.offset or None,
            sort=self.build_sort(params.sort),
            projection=dict(params.projection) if params.projection else None,
        )
        self._logger.debug(f"Built find query: {query}")
        return query

    def create_count_query(self, params: Optional[CountParams] = None) -> CountQuery:
        params = params or CountParams()
        return CountQuery(filter=self.build_filter(params.where))

    def create_remove_query(self, params: Optional[RemoveParams] = None) -> RemoveQuery:
        params = params or RemoveParams()
        return RemoveQuery(filter=self.build_filter(params.where))

    def create_update_query(
        self, params: UpdateParams
    ) -> Union[UpdateQuery, BulkUpdateQuery]:
        updates, wheres, methods = params.updates, params.where, params.methods
        if not (len(updates) == len(wheres) == len(methods)):
            raise InconsistentUpdateParamsError(len(updates), len(wheres), len(methods))
        if not updates:
            raise ValueError("At least one update is required")

        queries: List[UpdateQuery] = []
        for index, (update, where, method) in enumerate(zip(updates, wheres, methods)):
            queries.append(
                UpdateQuery(
                    filter=self.build_filter(where),
                    update=self.build_update(update),
                    method=normalize_update_method(method, index),
                    upsert=params.upsert,
                )
            )

        if len(queries) == 1:
            self._logger.debug(f"Built update query: {queries[0]}")
            return queries[0]

        operations = tuple(
            (UpdateOne if q.method is UpdateMethod.UPDATE_ONE else UpdateMany)(
                q.filter, q.update, upsert=q.upsert
            )
            for q in queries
        )
        self._logger.debug(f"Built bulk update query with {len(operations)} operations")
        return BulkUpdateQuery(operations)

    def build_update(self, update: Union[Dict[str, Any], Update]) -> Dict[str, Any]:
        if isinstance(update, Update):
            document = self._translate_update(update)
        elif isinstance(update, dict):
            if contains_update_operators(update):
                document = update
            else:
                document = {"$set": update}
        else:
            raise TypeError(
                f"Expected an update dict or Update, got {type(update).__name__}"
            )
        return self.field_resolver.resolve_object(document)

    def _translate_update(self, update: Update) -> Dict[str, Any]:
        mongo_update_doc: Dict[str, Dict[str, Any]] = {}
        for op in update.build():
            field = op.field_path
            if isinstance(op, SetOperation):
                mongo_update_doc.setdefault("$set", {})[field] = op.value
            elif isinstance(op, UnsetOperation):
                mongo_update_doc.setdefault("$unset", {})[field] = ""
            elif isinstance(op, IncrementOperation):
                mongo_update_doc.setdefault("$inc", {})[field] = op.amount
            elif isinstance(op, MultiplyOperation):
                mongo_update_doc.setdefault("$mul", {})[field] = op.factor
            elif isinstance(op, MinOperation):
                mongo_update_doc.setdefault("$min", {})[field] = op.value
            elif isinstance(op, MaxOperation):
                mongo_update_doc.setdefault("$max", {})[field] = op.value
            elif isinstance(op, PushOperation):
                mongo_update_doc.setdefault("$push", {})[field] = {"$each": op.items}
            elif isinstance(op, PopOperation):
                mongo_update_doc.setdefault("$pop", {})[field] = op.position
            elif isinstance(op, PullOperation):
                mongo_update_doc.setdefault("$pull", {})[field] = op.value_or_condition
            else:
                raise TypeError(f"Unsupported UpdateOperation type: {type(op)}")
        return mongo_update_doc

    def create_aggregation_query(
        self, params: Optional[AggregationParams] = None
    ) -> AggregationQuery:
        params = params or AggregationParams()
        resolve = self.field_resolver.resolve_field
        pipeline: List[Dict[str, Any]] = []

        if params.where is not None:
            pipeline.append({"$match": self.build_filter(params.where)})

        group = self._build_group_stage(params, resolve)
        if group is not None:
            pipeline.append({"$group": group})

        # Post-group filters reference group output names, not domain fields
        for post_filter in (params.having, params.filter_by):
            if post_filter is not None:
                pipeline.append({"$match": self.where_parser.parse(post_filter)})

        sort = self.build_sort(params.sort)
        if sort:
            pipeline.append({"$sort": dict(sort)})
        if params.offset:
            pipeline.append({"$skip": params.offset})
        if params.limit:
            pipeline.append({"$limit": params.limit})

        self._logger.debug(f"Built aggregation pipeline: {pipeline}")
        return AggregationQuery(tuple(pipeline))

    def _build_group_stage(self, params: AggregationParams, resolve) -> Optional[Dict[str, Any]]:
        accumulators: Dict[str, Any] = {}
        for attr, prefix, native in _ACCUMULATORS:
            for name in _as_list(getattr(params, attr)):
                accumulators[_output_name(prefix, name)] = {native: f"${resolve(name)}"}

        if params.count is True:
            accumulators["count"] = {"$sum": 1}
        elif params.count:
            # Missing and null both sort below every other value
            for name in _as_list(params.count):
                accumulators[_output_name("count", name)] = {
                    "$sum": {"$cond": [{"$gt": [f"${resolve(name)}", None]}, 1, 0]}
                }

        if params.group_by is None and not accumulators:
            return None

        group_id: Any = None
        if isinstance(params.group_by, str):
            group_id = f"${resolve(params.group_by)}"
        elif params.group_by:
            group_id = {
                name.replace(".", "_"): f"${resolve(name)}" for name in params.group_by
            }

        return {"_id": group_id, **accumulators}
