# src/async_mongo_source/mongodb/source.py

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import (Any, AsyncGenerator, Awaitable, Callable, Dict, List,
                    Mapping, NoReturn, Optional, Sequence, TypeVar, Union)

from pymongo import IndexModel, UpdateMany
from pymongo.errors import BulkWriteError, CollectionInvalid, PyMongoError

from async_mongo_source.base.exceptions import (BulkUpdateOperationsError,
                                                CollectionError,
                                                DuplicateError,
                                                InvalidDataError,
                                                UnknownUpdateMethodError)
from async_mongo_source.base.interfaces import Source
from async_mongo_source.base.params import (AggregationParams, CountParams,
                                            FindParams, RemoveParams,
                                            UpdateMethod, UpdateParams)
from async_mongo_source.base.results import RemoveStats, UpdateStats
from async_mongo_source.base.utils import prepare_for_storage
from async_mongo_source.mongodb.field_resolver import (FieldMapping,
                                                       MongoFieldResolver)
from async_mongo_source.mongodb.performance import (PerformanceConfig,
                                                    PerformanceMetric,
                                                    PerformanceMonitor,
                                                    PerformanceSummary,
                                                    create_performance_monitor)
from async_mongo_source.mongodb.queries import (AggregationQuery,
                                                BulkUpdateQuery, CountQuery,
                                                FindQuery, InsertQuery,
                                                RemoveQuery, UpdateQuery)
from async_mongo_source.mongodb.query_factory import (MongoQueryFactory,
                                                      normalize_update_method)
from async_mongo_source.mongodb.session import MongoDatabaseSession
from async_mongo_source.mongodb.utils import (get_duplicated_document_ids,
                                              is_bulk_update,
                                              is_duplicate_error,
                                              is_invalid_data_error)

R = TypeVar("R")
Log = Union[logging.Logger, LoggerAdapter]


def _is_update_many(method: Any) -> bool:
    try:
        return normalize_update_method(method, 0) is UpdateMethod.UPDATE_MANY
    except UnknownUpdateMethodError:
        return False


@dataclass
class CollectionOptions:
    """
    Per-collection configuration of a `MongoSource`.

    `field_mappings` wins over `model_class` when both are given. A custom
    `queries` factory replaces the default one entirely.
    """

    field_mappings: Optional[Union[Sequence[FieldMapping], Mapping[str, Any]]] = None
    model_class: Optional[type] = None
    queries: Optional[MongoQueryFactory] = None
    indexes: List[IndexModel] = field(default_factory=list)
    performance: Optional[PerformanceConfig] = None


class MongoSource(Source):
    """
    Executes operation descriptors against one MongoDB collection.

    A source holds at most one session/transaction at a time. Concurrent
    units of work that need isolation must use separate sources.
    """

    def __init__(
        self,
        connection: Any,
        collection_name: str,
        options: Optional[CollectionOptions] = None,
    ):
        self._connection = connection
        self._collection_name = collection_name
        self._options = options or CollectionOptions()
        self.collection = connection.database[collection_name]

        if self._options.field_mappings is not None:
            self.field_resolver = MongoFieldResolver(self._options.field_mappings)
        elif self._options.model_class is not None:
            self.field_resolver = MongoFieldResolver.from_model(self._options.model_class)
        else:
            self.field_resolver = MongoFieldResolver()

        self.queries = self._options.queries or MongoQueryFactory(self.field_resolver)
        self._monitor: PerformanceMonitor = create_performance_monitor(
            self._options.performance
        )
        self._session: Optional[MongoDatabaseSession] = None

        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{collection_name}]"
        )
        self._logger.debug(f"Source created for collection '{collection_name}'")

    @classmethod
    async def create(
        cls,
        connection: Any,
        collection_name: str,
        options: Optional[CollectionOptions] = None,
    ) -> "MongoSource":
        """Builds the source and makes sure its collection and indexes exist."""
        source = cls(connection, collection_name, options)
        await source.ensure_indexes()
        return source

    @property
    def resource_name(self) -> str:
        return self._collection_name

    @property
    def options(self) -> CollectionOptions:
        return self._options

    @property
    def performance_monitor(self) -> PerformanceMonitor:
        return self._monitor

    # --- Setup ---

    async def ensure_indexes(self, logger: Optional[LoggerAdapter] = None) -> None:
        log = logger or self._logger
        indexes = self._options.indexes
        if not indexes:
            return
        try:
            try:
                await self._connection.database.create_collection(self._collection_name)
            except CollectionInvalid:
                log.debug(f"Collection '{self._collection_name}' already exists.")
            names = await self.collection.create_indexes(list(indexes))
            log.info(f"Ensured indexes {names} on '{self._collection_name}'.")
        except PyMongoError as error:
            # The collection stays usable without its secondary indexes
            log.warning(
                f"Failed to create indexes for collection '{self._collection_name}': {error}"
            )

    # --- Internals ---

    def _session_kwargs(self) -> Dict[str, Any]:
        if self._session is not None and self._session.is_active():
            return {"session": self._session.native}
        return {}

    async def _timed(
        self,
        operation: str,
        metadata: Dict[str, Any],
        run: Callable[[], Awaitable[R]],
        count: Callable[[R], Optional[int]],
        log: Log,
    ) -> R:
        operation_id = self._monitor.start_operation(
            operation, self._collection_name, metadata
        )
        try:
            result = await run()
        except PyMongoError as error:
            self._monitor.end_operation(operation_id, error=error)
            self._throw_collection_error(error, log)
        except Exception as error:
            self._monitor.end_operation(operation_id, error=error)
            raise
        self._monitor.end_operation(operation_id, count(result))
        return result

    def _throw_collection_error(
        self,
        error: PyMongoError,
        log: Log,
        inserted_documents: Optional[List[Any]] = None,
        failed_documents: Optional[List[Any]] = None,
    ) -> NoReturn:
        log.error(
            f"MongoDB error on collection '{self._collection_name}': {error}",
            exc_info=True,
        )
        partition = {
            "inserted_documents": inserted_documents,
            "failed_documents": failed_documents,
        }
        if is_duplicate_error(error):
            raise DuplicateError(
                str(error),
                error,
                duplicated_ids=get_duplicated_document_ids(error),
                **partition,
            ) from error
        if is_invalid_data_error(error):
            raise InvalidDataError(str(error), error, **partition) from error
        raise CollectionError(str(error), error, **partition) from error

    @staticmethod
    def _has_where(params: Any) -> bool:
        if params is None:
            return False
        if hasattr(params, "where"):
            return params.where is not None
        return bool(getattr(params, "filter", None))

    # --- Data Operations ---

    async def find(
        self,
        params: Union[FindParams, FindQuery, None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Dict[str, Any]]:
        log = logger or self._logger
        metadata = {
            "has_where": self._has_where(params),
            "has_sort": bool(getattr(params, "sort", None)),
            "has_limit": bool(getattr(params, "limit", None)),
        }

        async def run() -> List[Dict[str, Any]]:
            query = params if isinstance(params, FindQuery) else self.queries.create_find_query(params)
            kwargs: Dict[str, Any] = self._session_kwargs()
            if query.projection:
                kwargs["projection"] = query.projection
            if query.sort:
                kwargs["sort"] = list(query.sort)
            if query.skip:
                kwargs["skip"] = query.skip
            if query.limit:
                kwargs["limit"] = query.limit
            log.debug(f"find on '{self._collection_name}': {query.filter} {kwargs}")
            cursor = self.collection.find(query.filter, **kwargs)
            return await cursor.to_list(length=None)

        documents = await self._timed("find", metadata, run, len, log)
        log.debug(f"Found {len(documents)} documents in '{self._collection_name}'.")
        return documents

    async def count(
        self,
        params: Union[CountParams, CountQuery, None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        log = logger or self._logger

        async def run() -> int:
            query = params if isinstance(params, CountQuery) else self.queries.create_count_query(params)
            return await self.collection.count_documents(
                query.filter, **self._session_kwargs()
            )

        return await self._timed(
            "count", {"has_where": self._has_where(params)}, run, lambda n: n, log
        )

    async def update(
        self,
        params: Union[UpdateParams, UpdateQuery, BulkUpdateQuery, Sequence[Any]],
        logger: Optional[LoggerAdapter] = None,
    ) -> UpdateStats:
        log = logger or self._logger
        if isinstance(params, (list, tuple)):
            params = BulkUpdateQuery(tuple(params))

        if isinstance(params, UpdateParams):
            methods = params.methods
            is_batch = len(params.updates) > 1
        elif isinstance(params, UpdateQuery):
            methods = [params.method]
            is_batch = False
        else:
            methods = [UpdateMethod.UPDATE_MANY if isinstance(op, UpdateMany) else None
                       for op in params.operations]
            is_batch = True
        metadata = {
            "is_update_many": any(_is_update_many(m) for m in methods),
            "is_batch": is_batch,
        }

        async def run() -> UpdateStats:
            query = params
            if isinstance(params, UpdateParams):
                query = self.queries.create_update_query(params)
            if isinstance(query, BulkUpdateQuery):
                return await self._bulk_update(query, log)
            return await self._single_update(query, log)

        stats = await self._timed(
            "update", metadata, run, lambda s: s.modified_count, log
        )
        log.info(
            f"Updated {stats.modified_count} documents in '{self._collection_name}' "
            f"({stats.status})."
        )
        return stats

    async def _single_update(self, query: UpdateQuery, log: Log) -> UpdateStats:
        if query.method is UpdateMethod.UPDATE_MANY:
            execute = self.collection.update_many
        else:
            execute = self.collection.update_one
        log.debug(f"{query.method.value} on '{self._collection_name}': {query.filter} -> {query.update}")
        result = await execute(
            query.filter, query.update, upsert=query.upsert, **self._session_kwargs()
        )
        upserted_ids = [result.upserted_id] if result.upserted_id is not None else []
        return UpdateStats(
            status="success" if result.matched_count > 0 else "failure",
            modified_count=result.modified_count,
            upserted_count=len(upserted_ids),
            upserted_ids=upserted_ids,
        )

    async def _bulk_update(self, query: BulkUpdateQuery, log: Log) -> UpdateStats:
        if not query.operations or not is_bulk_update(query.operations):
            raise BulkUpdateOperationsError()
        log.debug(
            f"bulk_write of {len(query.operations)} updates on '{self._collection_name}'"
        )
        result = await self.collection.bulk_write(
            list(query.operations), ordered=query.ordered, **self._session_kwargs()
        )
        upserted_ids = list((result.upserted_ids or {}).values())
        return UpdateStats(
            status="success" if result.matched_count > 0 else "failure",
            modified_count=result.modified_count,
            upserted_count=result.upserted_count,
            upserted_ids=upserted_ids,
        )

    async def remove(
        self,
        params: Union[RemoveParams, RemoveQuery, None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> RemoveStats:
        log = logger or self._logger

        async def run() -> RemoveStats:
            query = params if isinstance(params, RemoveQuery) else self.queries.create_remove_query(params)
            result = await self.collection.delete_many(
                query.filter, **self._session_kwargs()
            )
            return RemoveStats(
                status="success" if result.deleted_count > 0 else "failure",
                deleted_count=result.deleted_count,
            )

        stats = await self._timed(
            "remove",
            {"has_where": self._has_where(params)},
            run,
            lambda s: s.deleted_count,
            log,
        )
        log.info(f"Removed {stats.deleted_count} documents from '{self._collection_name}'.")
        return stats

    async def aggregate(
        self,
        params: Union[AggregationParams, AggregationQuery, None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Dict[str, Any]]:
        log = logger or self._logger
        metadata = {
            "has_where": self._has_where(params),
            "has_group": bool(getattr(params, "group_by", None)),
        }

        async def run() -> List[Dict[str, Any]]:
            if isinstance(params, AggregationQuery):
                query = params
            else:
                query = self.queries.create_aggregation_query(params)
            log.debug(f"aggregate on '{self._collection_name}': {list(query.pipeline)}")
            cursor = self.collection.aggregate(
                list(query.pipeline), allowDiskUse=True, **self._session_kwargs()
            )
            return await cursor.to_list(length=None)

        return await self._timed("aggregate", metadata, run, len, log)

    async def insert(
        self,
        documents: Union[InsertQuery, Sequence[Any]],
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Dict[str, Any]]:
        log = logger or self._logger
        query = documents if isinstance(documents, InsertQuery) else InsertQuery(documents)
        prepared = [prepare_for_storage(doc) for doc in query.documents]
        if not prepared:
            return []

        async def run() -> List[Dict[str, Any]]:
            # insert_many stamps _id on the dicts it receives, keep ours clean
            to_insert = [dict(doc) for doc in prepared]
            try:
                result = await self.collection.insert_many(
                    to_insert, ordered=query.ordered, **self._session_kwargs()
                )
            except PyMongoError as error:
                inserted, failed = self._partition_insert(error, to_insert, query.ordered)
                self._throw_collection_error(error, log, inserted, failed)
            return [
                {**doc, "_id": inserted_id}
                for doc, inserted_id in zip(prepared, result.inserted_ids)
            ]

        inserted = await self._timed(
            "insert", {"is_batch": len(prepared) > 1}, run, len, log
        )
        log.info(f"Inserted {len(inserted)} documents into '{self._collection_name}'.")
        return inserted

    @staticmethod
    def _partition_insert(error: PyMongoError, documents: List[Dict[str, Any]], ordered: bool):
        """Splits a failed batch into (inserted, failed) documents."""
        if not isinstance(error, BulkWriteError):
            return [], list(documents)
        failed_indexes = sorted(
            e["index"] for e in (error.details or {}).get("writeErrors", [])
        )
        if not failed_indexes:
            return [], list(documents)
        if ordered:
            first = failed_indexes[0]
            return list(documents[:first]), list(documents[first:])
        failed = set(failed_indexes)
        return (
            [doc for i, doc in enumerate(documents) if i not in failed],
            [doc for i, doc in enumerate(documents) if i in failed],
        )

    # --- Session / Transaction Lifecycle ---

    def create_session(self) -> MongoDatabaseSession:
        """Creates a session tracked by the connection's registry."""
        return self._connection.sessions.create_session()

    @property
    def session(self) -> Optional[MongoDatabaseSession]:
        return self._session

    async def start_session(self) -> Any:
        if self._session is None:
            self._session = MongoDatabaseSession(self._connection.client)
        return await self._session.open()

    async def start_transaction(self, **options: Any) -> None:
        await self.start_session()
        await self._session.start_transaction(**options)
        self._logger.debug(f"Transaction started on '{self._collection_name}'.")

    async def commit_transaction(self) -> None:
        if self._session is not None:
            await self._session.commit_transaction()

    async def rollback_transaction(self) -> None:
        if self._session is not None:
            await self._session.rollback_transaction()

    async def end_session(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            await session.end()

    @asynccontextmanager
    async def transaction(self, **options: Any) -> AsyncGenerator["MongoSource", None]:
        """Commits when the block succeeds and rolls back when it raises."""
        owns_session = self._session is None
        await self.start_transaction(**options)
        try:
            yield self
        except BaseException:
            await self.rollback_transaction()
            raise
        else:
            await self.commit_transaction()
        finally:
            if owns_session:
                await self.end_session()

    # --- Metrics ---

    def get_performance_metrics(self) -> List[PerformanceMetric]:
        return self._monitor.get_metrics()

    def get_performance_summary(self) -> PerformanceSummary:
        return self._monitor.get_summary()

    def get_slow_queries(self) -> List[PerformanceMetric]:
        return self._monitor.get_slow_queries()

    def clear_performance_metrics(self) -> None:
        self._monitor.clear_metrics()
