# src/async_mongo_source/mongodb/session.py

import logging
import uuid
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from async_mongo_source.base.exceptions import PendingSessionError, SessionError
from async_mongo_source.base.utils import maybe_await

log = logging.getLogger(__name__)


class MongoDatabaseSession:
    """
    Wraps a driver client session holding at most one transaction.

    The native session is opened lazily on first use and must be released
    with `end()`.
    """

    def __init__(self, client: Any, session_id: Optional[str] = None):
        self._client = client
        self._id = session_id or uuid.uuid4().hex
        self._session: Any = None
        self._transaction_active = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def native(self) -> Any:
        """The driver session, or None before first use and after `end()`."""
        return self._session

    def is_active(self) -> bool:
        return self._session is not None

    def in_transaction(self) -> bool:
        return self._transaction_active

    async def open(self) -> Any:
        if self._session is None:
            self._session = await maybe_await(self._client.start_session())
            log.debug(f"Opened native session for '{self._id}'")
        return self._session

    async def start_transaction(self, **options: Any) -> Any:
        if self._transaction_active:
            raise PendingSessionError()
        session = await self.open()
        await maybe_await(session.start_transaction(**options))
        self._transaction_active = True
        log.debug(f"Started transaction on session '{self._id}'")
        return session

    async def commit_transaction(self) -> None:
        if not self._transaction_active:
            return
        try:
            await maybe_await(self._session.commit_transaction())
        except PyMongoError as error:
            log.error(f"Commit failed on session '{self._id}': {error}", exc_info=True)
            raise SessionError(error) from error
        finally:
            self._transaction_active = False
        log.debug(f"Committed transaction on session '{self._id}'")

    async def rollback_transaction(self) -> None:
        if not self._transaction_active:
            return
        try:
            await maybe_await(self._session.abort_transaction())
        except PyMongoError as error:
            log.error(f"Rollback failed on session '{self._id}': {error}", exc_info=True)
            raise SessionError(error) from error
        finally:
            self._transaction_active = False
        log.debug(f"Rolled back transaction on session '{self._id}'")

    async def end(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        self._transaction_active = False
        await maybe_await(session.end_session())
        log.debug(f"Ended session '{self._id}'")


class MongoSessionManager:
    """Registry of sessions created against one client, keyed by session id."""

    def __init__(self, client: Any):
        self._client = client
        self._sessions: Dict[str, MongoDatabaseSession] = {}

    def create_session(self) -> MongoDatabaseSession:
        session = MongoDatabaseSession(self._client)
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> Optional[MongoDatabaseSession]:
        return self._sessions.get(session_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_all_sessions(self) -> List[MongoDatabaseSession]:
        return list(self._sessions.values())

    async def delete_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            await session.end()

    async def clear_sessions(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.end()
