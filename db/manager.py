"""
Database connection manager module.

Provides a DatabaseManager singleton that owns the Motor client, rebinds it
when the event loop changes, and initializes Beanie with the trip and user
stats documents.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from datetime import UTC
from typing import TYPE_CHECKING, Any, Self

import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import get_mongodb_database, get_mongodb_uri

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Singleton holding the MongoDB client and database handle.

    Environment Variables:
        MONGODB_URI: MongoDB connection string
        MONGODB_DATABASE: Database name (default: ecotrack)
        MONGODB_MAX_POOL_SIZE: Connection pool size (default: 20)
        MONGODB_SERVER_SELECTION_TIMEOUT_MS: Server selection timeout (default: 10000)
    """

    _instance: DatabaseManager | None = None
    _lock = threading.Lock()

    def __new__(cls) -> Self:
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._bound_loop: asyncio.AbstractEventLoop | None = None
        self._beanie_initialized = False
        self._initialized = True

    def _client_kwargs(self, mongo_uri: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "tz_aware": True,
            "tzinfo": UTC,
            "maxPoolSize": int(os.getenv("MONGODB_MAX_POOL_SIZE", "20")),
            "serverSelectionTimeoutMS": int(
                os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "10000"),
            ),
            "retryWrites": True,
            "retryReads": True,
            "appname": "EcoTrack",
        }
        # MongoDB Atlas connections
        if mongo_uri.startswith("mongodb+srv://"):
            kwargs.update(tls=True, tlsCAFile=certifi.where())
        return kwargs

    @staticmethod
    def _get_current_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _reset(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None
        self._bound_loop = None
        self._beanie_initialized = False

    def _ensure_client(self) -> None:
        current_loop = self._get_current_loop()
        if self._client is not None and (
            (self._bound_loop is not None and self._bound_loop.is_closed())
            or (current_loop is not None and self._bound_loop is not current_loop)
        ):
            logger.info("Event loop changed, reconnecting MongoDB client")
            self._reset()

        if self._client is None:
            mongo_uri = get_mongodb_uri()
            self._client = AsyncIOMotorClient(
                mongo_uri,
                **self._client_kwargs(mongo_uri),
            )
            self._db = self._client[get_mongodb_database()]
            self._bound_loop = current_loop
            logger.info("MongoDB client initialized")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        self._ensure_client()
        if self._db is None:
            msg = "Database instance could not be initialized."
            raise RuntimeError(msg)
        return self._db

    @property
    def beanie_initialized(self) -> bool:
        return self._beanie_initialized

    async def init_beanie(
        self,
        document_models: Sequence[type] | None = None,
    ) -> None:
        """Initialize Beanie ODM on the current client. Safe to call repeatedly."""
        self._ensure_client()
        if self._beanie_initialized:
            logger.debug("Beanie already initialized, skipping")
            return

        from db.models import ALL_DOCUMENT_MODELS

        models = list(document_models or ALL_DOCUMENT_MODELS)
        await init_beanie(database=self.db, document_models=models)
        self._beanie_initialized = True
        logger.info("Beanie ODM initialized with %d document models", len(models))

    async def cleanup_connections(self) -> None:
        if self._client is not None:
            logger.info("Closing MongoDB client connections")
        self._reset()


db_manager = DatabaseManager()


async def init_database(database: AsyncIOMotorDatabase | None = None) -> None:
    """
    Bind the document models to a database.

    With no argument the managed client is used. Passing a database (for
    example an in-memory mock) binds the models to it directly.
    """
    if database is None:
        await db_manager.init_beanie()
        return

    from db.models import ALL_DOCUMENT_MODELS

    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
