# tests/mongodb/test_session.py

import pytest
from pymongo.errors import OperationFailure

from async_mongo_source.base.exceptions import (PendingSessionError,
                                                SessionError,
                                                SessionErrorType)
from async_mongo_source.mongodb.session import (MongoDatabaseSession,
                                                MongoSessionManager)


class LabeledFailure(OperationFailure):
    def __init__(self, label: str):
        super().__init__("commit failed")
        self._label = label

    def has_error_label(self, label: str) -> bool:
        return label == self._label


@pytest.mark.asyncio
async def test_native_session_is_opened_lazily(mongo_client, native_session):
    session = MongoDatabaseSession(mongo_client)
    assert not session.is_active()
    assert session.native is None

    assert await session.open() is native_session
    assert await session.open() is native_session
    mongo_client.start_session.assert_awaited_once()
    assert session.is_active()


@pytest.mark.asyncio
async def test_transaction_commit(mongo_client, native_session):
    session = MongoDatabaseSession(mongo_client)
    await session.start_transaction()
    assert session.in_transaction()

    await session.commit_transaction()

    assert native_session.started == 1
    assert native_session.committed == 1
    assert not session.in_transaction()


@pytest.mark.asyncio
async def test_transaction_rollback(mongo_client, native_session):
    session = MongoDatabaseSession(mongo_client)
    await session.start_transaction()
    await session.rollback_transaction()

    assert native_session.aborted == 1
    assert not session.in_transaction()


@pytest.mark.asyncio
async def test_second_transaction_is_rejected(mongo_client):
    session = MongoDatabaseSession(mongo_client)
    await session.start_transaction()
    with pytest.raises(PendingSessionError):
        await session.start_transaction()


@pytest.mark.asyncio
async def test_commit_without_transaction_is_a_no_op(mongo_client, native_session):
    session = MongoDatabaseSession(mongo_client)
    await session.commit_transaction()
    await session.rollback_transaction()
    assert native_session.committed == 0
    assert native_session.aborted == 0


@pytest.mark.parametrize(
    "label, expected",
    [
        ("UnknownTransactionCommitResult", SessionErrorType.UNKNOWN_TRANSACTION_COMMIT_RESULT),
        ("TransientTransactionError", SessionErrorType.TRANSIENT_TRANSACTION_ERROR),
        ("SomethingElse", SessionErrorType.OTHER),
    ],
)
@pytest.mark.asyncio
async def test_commit_failure_is_classified(mongo_client, native_session, label, expected):
    native_session.commit_error = LabeledFailure(label)
    session = MongoDatabaseSession(mongo_client)
    await session.start_transaction()

    with pytest.raises(SessionError) as exc_info:
        await session.commit_transaction()

    assert exc_info.value.type is expected
    assert exc_info.value.error is native_session.commit_error
    # The transaction is over even though the commit failed
    assert not session.in_transaction()


@pytest.mark.asyncio
async def test_end_releases_native_session(mongo_client, native_session):
    session = MongoDatabaseSession(mongo_client)
    await session.start_transaction()
    await session.end()

    assert native_session.ended == 1
    assert not session.is_active()
    assert not session.in_transaction()
    # Ending twice is harmless
    await session.end()
    assert native_session.ended == 1


@pytest.mark.asyncio
async def test_session_manager_registry(mongo_client, native_session):
    manager = MongoSessionManager(mongo_client)
    first = manager.create_session()
    second = manager.create_session()

    assert first.id != second.id
    assert manager.has_session(first.id)
    assert manager.get_session(second.id) is second
    assert manager.get_all_sessions() == [first, second]

    await first.open()
    await manager.delete_session(first.id)
    assert not manager.has_session(first.id)
    assert native_session.ended == 1

    await manager.clear_sessions()
    assert manager.get_all_sessions() == []
    assert manager.get_session("missing") is None
