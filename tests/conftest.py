# tests/conftest.py
import itertools
import logging
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

import mongomock
import pytest

from async_mongo_source.mongodb.connection import MongoConnection
from async_mongo_source.mongodb.source import CollectionOptions, MongoSource

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)

TEST_MONGO_DB_NAME = "pytest_async_mongo_source_db"


# --- Awaitable mongomock handles ---
# mongomock is synchronous; these wrappers expose the subset of the motor
# API the package awaits (cursor.to_list, awaitable collection methods).


class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    async def to_list(self, length: Optional[int] = None) -> List[Any]:
        if length is None:
            return list(self._cursor)
        return list(itertools.islice(self._cursor, length))


class AsyncCollection:
    def __init__(self, collection):
        self.delegate = collection

    def find(self, *args, **kwargs) -> AsyncCursor:
        return AsyncCursor(self.delegate.find(*args, **kwargs))

    def aggregate(self, pipeline, **kwargs) -> AsyncCursor:
        kwargs.pop("allowDiskUse", None)
        return AsyncCursor(self.delegate.aggregate(pipeline, **kwargs))

    def __getattr__(self, name: str):
        attr = getattr(self.delegate, name)
        if not callable(attr):
            return attr

        async def call(*args, **kwargs):
            return attr(*args, **kwargs)

        return call


class AsyncDatabase:
    def __init__(self, database):
        self.delegate = database

    def __getitem__(self, name: str) -> AsyncCollection:
        return AsyncCollection(self.delegate[name])

    async def create_collection(self, name: str, **kwargs) -> AsyncCollection:
        return AsyncCollection(self.delegate.create_collection(name, **kwargs))

    async def list_collection_names(self, **kwargs) -> List[str]:
        return self.delegate.list_collection_names(**kwargs)


class FakeNativeSession:
    """Stands in for a driver ClientSession."""

    def __init__(self):
        self.started = 0
        self.committed = 0
        self.aborted = 0
        self.ended = 0
        self.commit_error: Optional[Exception] = None

    def start_transaction(self, **options):
        self.started += 1

    async def commit_transaction(self):
        if self.commit_error is not None:
            raise self.commit_error
        self.committed += 1

    async def abort_transaction(self):
        self.aborted += 1

    async def end_session(self):
        self.ended += 1


# --- Fixtures ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_source_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest.fixture
def native_session() -> FakeNativeSession:
    return FakeNativeSession()


@pytest.fixture
def mongo_client(native_session):
    client = MagicMock(name="AsyncIOMotorClient")
    client.start_session = AsyncMock(return_value=native_session)
    return client


@pytest.fixture
def mongo_database() -> AsyncDatabase:
    return AsyncDatabase(mongomock.MongoClient()[TEST_MONGO_DB_NAME])


@pytest.fixture
def connection(mongo_client, mongo_database) -> MongoConnection:
    """Connection backed by an in-memory mongomock database."""
    return MongoConnection(mongo_client, mongo_database)


@pytest.fixture
def source_factory(connection):
    def _create(collection_name: str = "items", options: Optional[CollectionOptions] = None):
        return MongoSource(connection, collection_name, options)

    return _create


@pytest.fixture
def mock_collection():
    """Collection double whose driver calls are AsyncMocks."""
    collection = MagicMock(name="AsyncIOMotorCollection")
    for name in (
        "count_documents",
        "update_one",
        "update_many",
        "bulk_write",
        "delete_many",
        "insert_many",
        "create_indexes",
    ):
        setattr(collection, name, AsyncMock(name=name))
    return collection


@pytest.fixture
def mock_source(mongo_client, mock_collection):
    """Source wired to `mock_collection`, for session and error paths."""
    database = MagicMock(name="AsyncIOMotorDatabase")
    database.__getitem__.return_value = mock_collection
    database.create_collection = AsyncMock()

    def _create(options: Optional[CollectionOptions] = None) -> MongoSource:
        return MongoSource(MongoConnection(mongo_client, database), "items", options)

    return _create
