# src/async_mongo_source/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from async_mongo_source.base.params import (AggregationParams, CountParams,
                                            FindParams, RemoveParams,
                                            UpdateParams)
from async_mongo_source.base.results import RemoveStats, UpdateStats

# Native descriptor types produced by a backend's query factory
FQ = TypeVar("FQ")
CQ = TypeVar("CQ")
UQ = TypeVar("UQ")
RQ = TypeVar("RQ")
AQ = TypeVar("AQ")


class QueryFactory(Generic[FQ, CQ, UQ, RQ, AQ], ABC):
    """
    Builds backend specific operation descriptors from high level params.

    Implementations resolve domain field names before compiling conditions,
    and never touch the store.
    """

    @abstractmethod
    def create_find_query(self, params: Optional[FindParams] = None) -> FQ:
        pass

    @abstractmethod
    def create_count_query(self, params: Optional[CountParams] = None) -> CQ:
        pass

    @abstractmethod
    def create_update_query(self, params: UpdateParams) -> UQ:
        pass

    @abstractmethod
    def create_remove_query(self, params: Optional[RemoveParams] = None) -> RQ:
        pass

    @abstractmethod
    def create_aggregation_query(
        self, params: Optional[AggregationParams] = None
    ) -> AQ:
        pass


class Source(ABC):
    """
    Persistence port consumed by the repository layer.

    Every operation accepts either high level params or a descriptor that
    was already built by the source's query factory. Store failures are
    raised as `CollectionError` subclasses.
    """

    @property
    @abstractmethod
    def resource_name(self) -> str:
        """Name of the collection/table this source reads and writes."""
        pass

    # --- Data Operations ---

    @abstractmethod
    async def find(
        self, params: Any = None, logger: Optional[LoggerAdapter] = None
    ) -> List[Dict[str, Any]]:
        """Returns the documents matching the query, in store order or the requested sort."""
        pass

    @abstractmethod
    async def count(
        self, params: Any = None, logger: Optional[LoggerAdapter] = None
    ) -> int:
        pass

    @abstractmethod
    async def update(
        self, params: Any, logger: Optional[LoggerAdapter] = None
    ) -> UpdateStats:
        pass

    @abstractmethod
    async def remove(
        self, params: Any = None, logger: Optional[LoggerAdapter] = None
    ) -> RemoveStats:
        pass

    @abstractmethod
    async def aggregate(
        self, params: Any = None, logger: Optional[LoggerAdapter] = None
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def insert(
        self, documents: Any, logger: Optional[LoggerAdapter] = None
    ) -> List[Dict[str, Any]]:
        """
        Inserts documents and returns them with their store generated ids.

        On a partial batch failure the raised `CollectionError` lists which
        documents were inserted and which failed.
        """
        pass

    # --- Session / Transaction Lifecycle ---

    @abstractmethod
    async def start_session(self) -> Any:
        pass

    @abstractmethod
    async def start_transaction(self) -> None:
        pass

    @abstractmethod
    async def commit_transaction(self) -> None:
        pass

    @abstractmethod
    async def rollback_transaction(self) -> None:
        pass

    @abstractmethod
    async def end_session(self) -> None:
        pass

    # --- Metrics ---

    @abstractmethod
    def get_performance_metrics(self) -> Sequence[Any]:
        pass

    @abstractmethod
    def get_performance_summary(self) -> Any:
        pass
