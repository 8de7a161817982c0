"""
Recovering a find() filter from a model reply.

Strategies run in order and the first one producing a non-empty JSON object
wins. When none does, the filter is ``{}``, meaning no constraint could be
derived. Nothing in here raises for malformed input.
"""
import json
import logging
import re
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple

import json5
from pydantic import BaseModel

logger = logging.getLogger(__name__)

FILTER_HINT_FIELDS = frozenset({"_id", "department", "dept", "program", "course", "branch", "name"})

_FENCE = re.compile(r"```[ \t]*([\w.+-]*)[ \t]*\r?\n?(.*?)```", re.DOTALL)


class FilterParseError(ValueError):
    pass


class RecoveryDiagnostics(BaseModel):
    text: str = ""
    structured: Any = None
    parse_error: Optional[str] = None
    parsed: Dict[str, Any] = {}
    strategy: str = "none"

    def to_raw(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "structured": self.structured,
            "parseError": self.parse_error,
            "parsed": self.parsed,
            "strategy": self.strategy,
        }


class Attempt(NamedTuple):
    filter: Optional[Dict[str, Any]]
    text: Optional[str] = None
    error: Optional[str] = None


def strip_code_fence(text: str) -> str:
    """Return the body of the first ``` block, or the trimmed text."""
    stripped = text.strip()
    match = _FENCE.search(stripped)
    if match is None:
        return stripped
    return match.group(2).strip()


def _require_filter(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise FilterParseError(f"expected a JSON object, got {type(value).__name__}")
    if not value:
        raise FilterParseError("empty JSON object")
    return value


def parse_strict(text: str) -> Dict[str, Any]:
    try:
        value = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise FilterParseError(str(e)) from e
    return _require_filter(value)


def parse_relaxed(text: str) -> Dict[str, Any]:
    try:
        value = json5.loads(text)
    except (ValueError, RecursionError) as e:
        raise FilterParseError(str(e)) from e
    return _require_filter(value)


TEXT_PARSERS: Tuple[Tuple[str, Callable[[str], Dict[str, Any]]], ...] = (
    ("strict", parse_strict),
    ("relaxed", parse_relaxed),
)


def _unwrap_envelope(value: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    # replies shaped like the requested {"query": ...} schema
    if set(value) != {"query"}:
        return value, None
    inner = value["query"]
    if isinstance(inner, str):
        return parse_filter_text(inner, unwrap=False)
    if isinstance(inner, dict) and inner:
        return inner, None
    return None, "query envelope holds no filter"


def parse_filter_text(text: str, unwrap: bool = True) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Fence-strip ``text`` then try each parser in turn.

    Returns the filter (or None) and the error of the last parser that failed.
    """
    candidate = strip_code_fence(text)
    error = None
    for name, parser in TEXT_PARSERS:
        try:
            value = parser(candidate)
        except FilterParseError as e:
            error = f"{name}: {e}"
            continue
        if unwrap:
            value, envelope_error = _unwrap_envelope(value)
            error = envelope_error or error
        return value, error
    return None, error


def looks_like_filter(obj: Dict[str, Any]) -> bool:
    if any(k.startswith("$") for k in obj):
        return True
    return any(k in FILTER_HINT_FIELDS for k in obj)


def from_structured_query(structured: Any, text: str) -> Attempt:
    if not isinstance(structured, dict):
        return Attempt(None)
    query = structured.get("query")
    if not isinstance(query, str):
        return Attempt(None)
    value, error = parse_filter_text(query)
    return Attempt(value, query, error)


def from_structured_filter(structured: Any, text: str) -> Attempt:
    if isinstance(structured, dict) and structured and looks_like_filter(structured):
        return Attempt(structured, json.dumps(structured, ensure_ascii=False, default=str))
    return Attempt(None)


def from_reply_text(structured: Any, text: str) -> Attempt:
    value, error = parse_filter_text(text or "")
    return Attempt(value, text or "", error)


RECOVERY_CHAIN: Tuple[Tuple[str, Callable[[Any, str], Attempt]], ...] = (
    ("structured_query", from_structured_query),
    ("structured_filter", from_structured_filter),
    ("text", from_reply_text),
)


def recover(
    structured: Any, text: str, parse_error: Optional[str] = None
) -> Tuple[Dict[str, Any], RecoveryDiagnostics]:
    """Run the recovery chain over a model reply.

    ``parse_error`` seeds the diagnostics, e.g. with the reason a JSON-mode
    reply could not be decoded; later parse failures replace it.
    """
    considered = text or ""
    for name, strategy in RECOVERY_CHAIN:
        attempt = strategy(structured, text)
        if attempt.text is not None:
            considered = attempt.text
        if attempt.error:
            parse_error = attempt.error
        if attempt.filter is not None:
            return attempt.filter, RecoveryDiagnostics(
                text=considered,
                structured=structured,
                parse_error=parse_error,
                parsed=attempt.filter,
                strategy=name,
            )

    logger.info("No filter could be recovered from the model reply")
    return {}, RecoveryDiagnostics(
        text=considered,
        structured=structured,
        parse_error=parse_error or "no JSON object found in reply",
        parsed={},
    )
