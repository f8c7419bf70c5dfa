"""MongoDB connection handling shared by the repositories."""

from __future__ import annotations

from typing import Any, Optional

from pymongo import MongoClient

from .config import Config
from .logging import get_logger

logger = get_logger(__name__)


class MongoRepository:
    """Base class holding a lazily opened MongoClient.

    Subclasses read collection names from the Config they were built with.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        url: Optional[str] = None,
        db_name: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ) -> None:
        self.config = config or Config(".env")

        self._url = url or self.config.get("mongo_url")
        self._db_name = db_name or self.config.get("mongo_db")
        if not self._url and client is None:
            raise ValueError("DB_CONNECTION_URL is required")
        self._client: Optional[MongoClient] = client
        self._owns_client = client is None

    def __enter__(self) -> "MongoRepository":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        if self._client is None:
            logger.debug(f"Connecting to MongoDB database {self._db_name}")
            self._client = MongoClient(self._url, serverSelectionTimeoutMS=5000)

    def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            self.connect()
        return self._client

    def collection(self, name: str) -> Any:
        return self.client[self._db_name][name]
