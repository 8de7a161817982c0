import json
import logging
import threading
from typing import Any, Optional

import google.generativeai as genai
from pydantic import BaseModel

from ..config import Settings
from ..errors import ErrorCodes, TransportError

logger = logging.getLogger(__name__)

SOURCE = "gemini"

SYSTEM_INSTRUCTION = (
    "You are a MongoDB query expert. Return ONLY a strict JSON object usable as "
    "db.collection.find(<FILTER>). Use double-quoted keys and strings, no comments, "
    "no trailing commas, no markdown, no prose. Use MongoDB Extended JSON when needed "
    '(e.g., {"_id":{"$oid":"..."}}, dates as {"$date":"...Z"}).'
)

# A bare OBJECT schema without properties is rejected in JSON mode, so the
# filter travels as a string field.
RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "query": {
            "type": "STRING",
            "description": "A strict JSON MongoDB find() filter, no code fences.",
        },
    },
    "required": ["query"],
}


class ModelReply(BaseModel):
    structured: Any = None
    text: str = ""
    structured_error: Optional[str] = None


def _reply_text(response: Any) -> str:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "\n".join(p.text for p in parts if getattr(p, "text", None))


def _decode_structured(text: str):
    if not text.strip():
        return None, "empty reply"
    try:
        return json.loads(text), None
    except ValueError as e:
        return None, str(e)


class GeminiGateway:
    """Single-shot calls to Gemini in JSON mode. No retries."""

    source = SOURCE

    _configure_lock = threading.Lock()
    _configured_key: Optional[str] = None

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _configure(self, api_key: str) -> None:
        cls = type(self)
        with cls._configure_lock:
            if cls._configured_key != api_key:
                genai.configure(api_key=api_key)
                cls._configured_key = api_key

    def ask(self, prompt: str) -> ModelReply:
        api_key = self._settings.api_key
        if not api_key:
            raise TransportError(ErrorCodes.MISSING_CREDENTIALS, "GEMINI_API_KEY is not set")

        model_name = self._settings.gemini_model
        logger.debug(f"Calling {model_name} with a {len(prompt)} character prompt")
        try:
            self._configure(api_key)
            model = genai.GenerativeModel(
                model_name,
                system_instruction=SYSTEM_INSTRUCTION,
                generation_config=genai.GenerationConfig(
                    response_mime_type="application/json",
                    response_schema=RESPONSE_SCHEMA,
                ),
            )
            response = model.generate_content(prompt)
        except Exception as e:
            raise TransportError(ErrorCodes.MODEL_CALL_FAILED, f"{model_name} request failed", str(e)) from e

        text = _reply_text(response)
        structured, error = _decode_structured(text)
        return ModelReply(structured=structured, text=text, structured_error=error)
