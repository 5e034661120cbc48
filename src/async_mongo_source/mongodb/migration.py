# src/async_mongo_source/mongodb/migration.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from async_mongo_source.base.exceptions import MigrationError

log = logging.getLogger(__name__)

MigrationAction = Callable[[Any], Awaitable[None]]


class BaseMigration(ABC):
    """
    Base class for class-style migrations.

    Subclasses set `id`, `version`, `description` and `reversible`, implement
    `up`, and define an async `down(database)` when they can be reverted.
    """

    id: str
    version: int
    description: str = ""
    reversible: bool = False
    down: Optional[MigrationAction] = None

    def __init__(self) -> None:
        self.created_at = datetime.now(timezone.utc)

    @abstractmethod
    async def up(self, database: Any) -> None:
        pass


@dataclass
class Migration:
    """Function-style migration."""

    id: str
    version: int
    up: MigrationAction
    description: str = ""
    reversible: bool = False
    down: Optional[MigrationAction] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


MigrationUnit = Union[BaseMigration, Migration]


class MigrationConfig(BaseModel):
    collection_name: str = "migrations"
    validate_before_run: bool = True
    max_batch_size: int = Field(default=10, gt=0)


@dataclass
class MigrationStatus:
    id: str
    version: int
    applied: bool
    applied_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            "id": self.id,
            "version": self.version,
            "applied": self.applied,
            "appliedAt": self.applied_at,
        }
        if self.error is not None:
            document["error"] = self.error
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "MigrationStatus":
        return cls(
            id=document["id"],
            version=document["version"],
            applied=bool(document.get("applied")),
            applied_at=document.get("appliedAt"),
            error=document.get("error"),
        )


@dataclass
class MigrationResult:
    success: bool = True
    applied_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    applied: List[MigrationStatus] = field(default_factory=list)
    failed: List[MigrationStatus] = field(default_factory=list)
    error: Optional[str] = None


def _is_reversible(unit: MigrationUnit) -> bool:
    return bool(unit.reversible) and callable(getattr(unit, "down", None))


class MongoMigrationManager:
    """
    Runs registered migrations in ascending version order.

    Applied state lives in a bookkeeping collection. Failures are reported
    in the returned `MigrationResult` instead of being raised.
    """

    def __init__(self, database: Any, config: Optional[MigrationConfig] = None):
        self.database = database
        self.config = config or MigrationConfig()
        self._migrations: Dict[str, MigrationUnit] = {}

    @property
    def collection(self) -> Any:
        return self.database[self.config.collection_name]

    # --- Registration ---

    def register(self, migration: MigrationUnit) -> None:
        if migration.id in self._migrations:
            raise MigrationError(f"Migration id '{migration.id}' is already registered")
        for existing in self._migrations.values():
            if existing.version == migration.version:
                raise MigrationError(
                    f"Migration version {migration.version} is already registered "
                    f"by '{existing.id}'"
                )
        self._migrations[migration.id] = migration
        log.debug(f"Registered migration '{migration.id}' (v{migration.version})")

    def register_many(self, migrations: List[MigrationUnit]) -> None:
        for migration in migrations:
            self.register(migration)

    def get_migrations(self) -> List[MigrationUnit]:
        return sorted(self._migrations.values(), key=lambda m: m.version)

    # --- Bookkeeping ---

    async def get_migration_status(self) -> List[MigrationStatus]:
        cursor = self.collection.find({}, sort=[("version", 1)])
        documents = await cursor.to_list(length=None)
        return [MigrationStatus.from_document(doc) for doc in documents]

    async def is_migration_applied(self, migration_id: str) -> bool:
        document = await self.collection.find_one({"id": migration_id})
        return bool(document and document.get("applied"))

    async def _ensure_collection(self) -> None:
        names = await self.database.list_collection_names(
            filter={"name": self.config.collection_name}
        )
        if self.config.collection_name not in names:
            await self.database.create_collection(self.config.collection_name)
            log.info(f"Created migrations collection '{self.config.collection_name}'")

    async def _save_status(self, status: MigrationStatus) -> None:
        await self.collection.update_one(
            {"id": status.id}, {"$set": status.to_document()}, upsert=True
        )

    async def _applied(self) -> List[MigrationStatus]:
        return [s for s in await self.get_migration_status() if s.applied]

    # --- Running ---

    async def migrate(self) -> MigrationResult:
        result = MigrationResult()
        try:
            await self._ensure_collection()
            applied = await self._applied()
            applied_ids = {status.id for status in applied}
            migrations = self.get_migrations()
            pending = [m for m in migrations if m.id not in applied_ids]
            result.skipped_count = len(migrations) - len(pending)

            if not pending:
                log.info("No pending migrations")
                return result

            if self.config.validate_before_run:
                applied_versions = {status.version for status in applied}
                clashes = [m.version for m in pending if m.version in applied_versions]
                if clashes:
                    raise MigrationError(
                        f"Migration versions already applied under other ids: {clashes}"
                    )

            batch_size = self.config.max_batch_size
            for start in range(0, len(pending), batch_size):
                batch = pending[start:start + batch_size]
                log.info(f"Running migration batch of {len(batch)}")
                if not await self._run_batch(batch, result):
                    result.success = False
                    break
        except Exception as error:
            log.error(f"Migration run aborted: {error}", exc_info=True)
            result.success = False
            result.error = str(error)
        return result

    async def _run_batch(self, batch: List[MigrationUnit], result: MigrationResult) -> bool:
        """Runs `batch` in order; stops at the first failure and returns False."""
        for migration in batch:
            try:
                await migration.up(self.database)
            except Exception as error:
                log.error(
                    f"Migration '{migration.id}' (v{migration.version}) failed: {error}",
                    exc_info=True,
                )
                status = MigrationStatus(
                    migration.id, migration.version, applied=False, error=str(error)
                )
                await self._save_status(status)
                result.failed_count += 1
                result.failed.append(status)
                result.error = str(error)
                return False

            status = MigrationStatus(
                migration.id,
                migration.version,
                applied=True,
                applied_at=datetime.now(timezone.utc),
            )
            await self._save_status(status)
            result.applied_count += 1
            result.applied.append(status)
            log.info(f"Applied migration '{migration.id}' (v{migration.version})")
        return True

    # --- Reverting ---

    async def _revert(self, status: MigrationStatus) -> None:
        migration = self._migrations.get(status.id)
        if migration is None:
            raise MigrationError(f"Migration '{status.id}' is not registered")
        if not _is_reversible(migration):
            raise MigrationError(f"Migration '{status.id}' is not reversible")
        await migration.down(self.database)
        await self.collection.delete_one({"id": status.id})
        log.info(f"Rolled back migration '{status.id}' (v{status.version})")

    async def rollback(self) -> MigrationResult:
        """Reverts the most recently applied migration."""
        result = MigrationResult()
        try:
            applied = await self._applied()
            if not applied:
                result.skipped_count = 1
                return result
            last = applied[-1]
            try:
                await self._revert(last)
            except Exception as error:
                log.error(f"Rollback of '{last.id}' failed: {error}", exc_info=True)
                result.success = False
                result.failed_count = 1
                result.failed.append(
                    MigrationStatus(last.id, last.version, True, last.applied_at, str(error))
                )
                result.error = str(error)
                return result
            result.applied_count = 1
            result.applied.append(
                MigrationStatus(last.id, last.version, applied=False)
            )
        except Exception as error:
            log.error(f"Rollback aborted: {error}", exc_info=True)
            result.success = False
            result.error = str(error)
        return result

    async def rollback_to(self, version: int) -> MigrationResult:
        """Reverts every applied migration above `version`, newest first."""
        result = MigrationResult()
        try:
            applied = await self._applied()
            targets = sorted(
                (s for s in applied if s.version > version),
                key=lambda s: s.version,
                reverse=True,
            )
            for status in targets:
                try:
                    await self._revert(status)
                except Exception as error:
                    log.error(f"Rollback of '{status.id}' failed: {error}", exc_info=True)
                    result.failed_count += 1
                    result.failed.append(
                        MigrationStatus(
                            status.id, status.version, True, status.applied_at, str(error)
                        )
                    )
                    continue
                result.applied_count += 1
                result.applied.append(
                    MigrationStatus(status.id, status.version, applied=False)
                )
            result.success = result.failed_count == 0
        except Exception as error:
            log.error(f"Rollback aborted: {error}", exc_info=True)
            result.success = False
            result.error = str(error)
        return result
