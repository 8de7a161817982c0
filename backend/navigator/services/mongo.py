import logging
import threading
from typing import Optional

from pymongo import MongoClient

from ..config import Settings

logger = logging.getLogger(__name__)


class ClientProvider:
    """
    Holds the process-wide MongoClient, created on first use.
    MongoClient pools connections itself, so every request shares one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None

    def get(self, settings: Settings) -> MongoClient:
        with self._lock:
            if self._client is None:
                self._client = MongoClient(
                    settings.mongodb_uri,
                    serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
                )
                logger.info("MongoDB client created (connectivity not yet verified)")
            return self._client

    def close(self) -> bool:
        with self._lock:
            client, self._client = self._client, None
        if client:
            client.close()
            return True
        return False


client_provider = ClientProvider()
