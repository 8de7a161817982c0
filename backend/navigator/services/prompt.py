import json
from typing import Any, Optional

from .profiler import CollectionProfile, DatabaseProfile

SCHEMA_UNAVAILABLE = "Unable to derive schema summary."
DATABASE_SCHEMA_UNAVAILABLE = "Unable to derive database-wide schema summary."

OUTPUT_INSTRUCTIONS = (
    "Return ONLY a strict JSON object that can be passed to MongoDB find() as the filter. "
    "Use double-quoted keys and strings, no comments and no trailing commas. "
    "Use MongoDB Extended JSON where appropriate "
    '(e.g. {"_id": {"$oid": "..."}}, dates as {"$date": "...Z"}). '
    "If schema is unknown, infer likely fields "
    '(e.g. "department", "program", "course", "branch"). '
    "No markdown or prose."
)


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def compose_prompt(
    user_prompt: str,
    database: str,
    collection: str,
    collection_profile: Optional[CollectionProfile],
    database_profile: Optional[DatabaseProfile],
    layout: str = "map",
) -> str:
    """Build the text sent to the model.

    Sections always appear in the same order: the request, the target names,
    the collection schema, the database overview, then the output contract.
    A missing profile is replaced by an explicit marker.
    """
    if collection_profile is None:
        schema_text = SCHEMA_UNAVAILABLE
    else:
        schema_text = _pretty(collection_profile.summary(layout))

    if database_profile is None:
        database_text = DATABASE_SCHEMA_UNAVAILABLE
    else:
        database_text = _pretty(database_profile.summary(layout))

    return (
        f"{user_prompt.strip()}\n\n"
        f"Database: {database}\n"
        f"Collection: {collection}\n"
        f"Collection Schema Summary (derived from recent samples):\n{schema_text}\n\n"
        f"Database Schema Overview (all collections):\n{database_text}\n\n"
        f"{OUTPUT_INSTRUCTIONS}"
    )
