import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from pymongo import MongoClient

from ..config import Settings
from ..errors import DataAccessError
from ..schemas import AiRequest
from .gemini import ModelReply
from .profiler import CollectionProfile, CollectionProfiler, DatabaseProfile, DatabaseProfiler
from .prompt import compose_prompt
from .recovery import recover

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    source: str

    def ask(self, prompt: str) -> ModelReply: ...


class AiQueryService:
    """Turns a natural-language request into a find() filter.

    Profiling failures only degrade the schema context in the prompt. A
    gateway failure propagates to the caller.
    """

    def __init__(self, settings: Settings, client: MongoClient, gateway: Gateway) -> None:
        self._settings = settings
        self._gateway = gateway
        self._collections = CollectionProfiler(client, settings.sample_size)
        self._databases = DatabaseProfiler(client, self._collections)

    def resolve_database(self, requested: Optional[str]) -> str:
        if requested and requested.strip():
            return requested.strip()
        return self._settings.database_name

    def _profile_target(self, database: str, collection: str) -> Optional[CollectionProfile]:
        try:
            return self._collections.profile(database, collection)
        except DataAccessError as e:
            logger.warning(f"Failed to build schema summary for {database}.{collection}: {e.details or e.message}")
            return None

    def describe(
        self, database: str, collection: str
    ) -> Tuple[Optional[DatabaseProfile], Optional[CollectionProfile]]:
        try:
            db_profile, target = self._databases.profile_database(database, collection)
        except DataAccessError as e:
            logger.warning(f"Failed to build database schema for {database}: {e.details or e.message}")
            return None, self._profile_target(database, collection)

        if target is None:
            logger.info(f"{database}.{collection} not among enumerated collections, profiling it directly")
            target = self._profile_target(database, collection)
        return db_profile, target

    def run(self, request: AiRequest) -> Dict[str, Any]:
        database = self.resolve_database(request.database)
        db_profile, target = self.describe(database, request.collection)

        prompt = compose_prompt(
            request.prompt,
            database,
            request.collection,
            target,
            db_profile,
            layout=self._settings.field_layout,
        )
        reply = self._gateway.ask(prompt)
        query, diagnostics = recover(reply.structured, reply.text, reply.structured_error)

        return {
            "query": query,
            "source": self._gateway.source,
            "usedPrompt": prompt,
            "rawResponse": diagnostics.to_raw(),
        }
