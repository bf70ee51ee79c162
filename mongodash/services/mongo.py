import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pymongo import AsyncMongoClient
from pymongo.errors import ConfigurationError, PyMongoError

from ..config import Settings
from ..errors import NotConnectedError, StoreConnectionError
from ..utils import mask_connection_string

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the single active MongoDB client of the application.

    Switching to another connection string closes the previous client; any
    request still using it may fail. Handle replacement happens under a lock.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Callable[..., Any] = AsyncMongoClient,
    ) -> None:
        self._settings = settings or Settings()
        self._client_factory = client_factory
        self._lock = asyncio.Lock()
        self._client: Optional[Any] = None
        self._connection_string: Optional[str] = None
        self._established_at: Optional[datetime] = None

    @property
    def client(self) -> Optional[Any]:
        return self._client

    @property
    def connection_string(self) -> Optional[str]:
        return self._connection_string

    @property
    def established_at(self) -> Optional[datetime]:
        return self._established_at

    def is_connected(self) -> bool:
        return self._client is not None

    def require_client(self) -> Any:
        client = self._client
        if client is None:
            raise NotConnectedError()
        return client

    def _client_options(self) -> Dict[str, Any]:
        s = self._settings
        return {
            "maxPoolSize": s.max_pool_size,
            "minPoolSize": s.min_pool_size,
            "maxIdleTimeMS": s.max_idle_time_ms,
            "connectTimeoutMS": s.connect_timeout_ms,
            "serverSelectionTimeoutMS": s.server_selection_timeout_ms,
            "tz_aware": True,
        }

    async def connect(self, connection_string: str) -> Any:
        if not connection_string or not connection_string.strip():
            raise StoreConnectionError("Connection string is required")

        async with self._lock:
            if self._client is not None and self._connection_string == connection_string:
                return self._client

            if self._client is not None:
                await self._close_locked()

            try:
                client = self._client_factory(connection_string, **self._client_options())
            except (ConfigurationError, ValueError, TypeError) as e:
                raise StoreConnectionError(f"Connection failed: {e}") from e

            try:
                # Trigger server selection to validate connection
                await client.admin.command("ping")
            except PyMongoError as e:
                await client.close()
                raise StoreConnectionError(f"Connection failed: {e}") from e

            self._client = client
            self._connection_string = connection_string
            self._established_at = datetime.now(timezone.utc)
            logger.info("Connected to MongoDB at %s", mask_connection_string(connection_string))
            return client

    async def status(self) -> Dict[str, Any]:
        client = self._client
        connection_string = self._connection_string
        if client is None:
            return {"connected": False}

        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("Liveness probe failed, dropping stale connection: %s", e)
            async with self._lock:
                # Another request may already have replaced the handle
                if self._client is client:
                    await self._close_locked()
            return {"connected": False}

        return {"connected": True, "connectionString": connection_string}

    async def disconnect(self) -> bool:
        async with self._lock:
            if self._client is None:
                return False
            await self._close_locked()
            return True

    async def _close_locked(self) -> None:
        client = self._client
        uri = self._connection_string
        self._client = None
        self._connection_string = None
        self._established_at = None
        try:
            await client.close()
        except PyMongoError as e:
            logger.warning("Error while closing MongoDB client: %s", e)
        logger.info("Disconnected from MongoDB at %s", mask_connection_string(uri))


async def list_database_infos(client) -> List[Dict[str, Any]]:
    cursor = await client.list_databases()
    databases = await cursor.to_list(length=None)
    return [
        {"name": d["name"], "sizeOnDisk": d.get("sizeOnDisk", 0), "empty": d.get("empty", False)}
        for d in databases
    ]


async def list_collection_infos(db) -> List[Dict[str, Any]]:
    """Collection names with estimated document counts, sorted by name."""
    names = sorted(await db.list_collection_names())
    counts = await asyncio.gather(*(db[name].estimated_document_count() for name in names))
    return [{"name": name, "count": count} for name, count in zip(names, counts)]
