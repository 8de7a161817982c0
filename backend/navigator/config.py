import logging
import os
import threading
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, PrivateAttr, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE = "test"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_SAMPLE_SIZE = 200

FieldLayout = Literal["map", "list"]


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value.strip()


def _clean_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class Settings(BaseModel):
    """Process configuration for the AI query backend.

    Built once from the environment and handed to the services that need it.
    The Gemini key is the only value that may change at runtime, through
    ``update_api_key``.
    """

    mongodb_uri: str = DEFAULT_MONGODB_URI
    database_name: str = DEFAULT_DATABASE
    gemini_model: str = DEFAULT_GEMINI_MODEL
    sample_size: int = DEFAULT_SAMPLE_SIZE
    field_layout: FieldLayout = "map"
    server_selection_timeout_ms: int = 5000
    api_host: str = "127.0.0.1"
    api_port: int = 6969
    gemini_api_key: Optional[str] = Field(default=None, repr=False)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @field_validator("sample_size")
    @classmethod
    def _clamp_sample_size(cls, v: int) -> int:
        return max(1, v)

    @field_validator("gemini_api_key")
    @classmethod
    def _blank_key_is_missing(cls, v: Optional[str]) -> Optional[str]:
        return _clean_key(v)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        layout = (env.get("SCHEMA_FIELD_LAYOUT") or "map").strip().lower()
        if layout not in ("map", "list"):
            logger.warning(f"Unknown SCHEMA_FIELD_LAYOUT {layout!r}, using 'map'")
            layout = "map"

        return cls(
            mongodb_uri=_strip_quotes(env.get("MONGODB_URI") or DEFAULT_MONGODB_URI),
            database_name=(env.get("DATABASE_NAME") or "").strip() or DEFAULT_DATABASE,
            gemini_model=(env.get("GEMINI_MODEL") or "").strip() or DEFAULT_GEMINI_MODEL,
            sample_size=int(env.get("SCHEMA_SAMPLE_SIZE") or DEFAULT_SAMPLE_SIZE),
            field_layout=layout,
            server_selection_timeout_ms=int(env.get("MONGODB_SERVER_SELECTION_TIMEOUT_MS") or 5000),
            api_host=env.get("API_HOST") or "127.0.0.1",
            api_port=int(env.get("API_PORT") or 6969),
            gemini_api_key=env.get("GEMINI_API_KEY"),
        )

    @property
    def api_key(self) -> Optional[str]:
        with self._lock:
            return self.gemini_api_key

    @property
    def has_api_key(self) -> bool:
        """Whether a usable Gemini key is configured, without exposing it."""
        return self.api_key is not None

    def update_api_key(self, value: Optional[str]) -> bool:
        """Replace the Gemini key. Blank values leave the current key in place.

        Rotation hook for a settings surface; the gateway reads ``api_key`` on
        every call, so a new key applies to the next request.
        """
        key = _clean_key(value)
        if key is not None:
            with self._lock:
                self.gemini_api_key = key
        return self.has_api_key
