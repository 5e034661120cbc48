# src/async_mongo_source/mongodb/connection.py

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from async_mongo_source.mongodb.config import MongoConfig
from async_mongo_source.mongodb.session import MongoSessionManager

log = logging.getLogger(__name__)


class MongoConnection:
    """Holds the client and database handles shared by every source."""

    def __init__(self, client: AsyncIOMotorClient, database: AsyncIOMotorDatabase):
        self.client = client
        self.database = database
        self.sessions = MongoSessionManager(client)

    @classmethod
    async def create(
        cls, config: MongoConfig, client_options: Optional[Dict[str, Any]] = None
    ) -> "MongoConnection":
        options = {**config.get_client_options(), **(client_options or {})}
        client = AsyncIOMotorClient(config.build_url(), **options)
        try:
            await client.admin.command("ping")
        except Exception:
            client.close()
            log.error(
                f"Could not reach MongoDB at {config.hosts} (database '{config.database}')",
                exc_info=True,
            )
            raise
        log.info(f"Connected to MongoDB database '{config.database}'")
        return cls(client, client[config.database])

    def collection(self, name: str) -> Any:
        return self.database[name]

    async def get_server_status(self) -> Dict[str, Any]:
        return await self.database.command("serverStatus")

    async def get_connection_pool_stats(self) -> Dict[str, Any]:
        status = await self.get_server_status()
        connections = status.get("connections", {})
        return {
            "current": connections.get("current", 0),
            "available": connections.get("available", 0),
            "total_created": connections.get("totalCreated", 0),
            "active": connections.get("active", 0),
        }

    async def close(self) -> None:
        await self.sessions.clear_sessions()
        self.client.close()
        log.info("MongoDB connection closed")
