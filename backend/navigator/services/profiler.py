"""
Collection and database profiling.

A profile is built from a ``$sample`` of the collection: for every top-level
field we count how many sampled documents carry it, which BSON kinds its
values had, and keep the first value seen as an example.
"""
import datetime
import logging
import re
import uuid
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from bson.code import Code
from bson.datetime_ms import DatetimeMS
from bson.decimal128 import Decimal128
from bson.errors import BSONError
from bson.int64 import Int64
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp
from pydantic import BaseModel, Field
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ..config import DEFAULT_SAMPLE_SIZE
from ..errors import DataAccessError, ErrorCodes
from ..utils import to_jsonable

logger = logging.getLogger(__name__)

_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


class TypeTag(str, Enum):
    DOUBLE = "double"
    INT32 = "int32"
    INT64 = "int64"
    DECIMAL = "decimal"
    STRING = "string"
    BOOL = "bool"
    NULL = "null"
    ARRAY = "array"
    DOCUMENT = "document"
    DATETIME = "datetime"
    OBJECT_ID = "objectId"
    BINARY = "binary"
    TIMESTAMP = "timestamp"
    REGEX = "regex"
    JAVASCRIPT = "javascript"
    MIN_KEY = "minKey"
    MAX_KEY = "maxKey"
    OTHER = "other"


def type_tag(value: Any) -> TypeTag:
    if value is None:
        return TypeTag.NULL
    # bool and Int64 subclass int, Code subclasses str
    if isinstance(value, bool):
        return TypeTag.BOOL
    if isinstance(value, Int64):
        return TypeTag.INT64
    if isinstance(value, int):
        return TypeTag.INT32 if _INT32_MIN <= value <= _INT32_MAX else TypeTag.INT64
    if isinstance(value, float):
        return TypeTag.DOUBLE
    if isinstance(value, Decimal128):
        return TypeTag.DECIMAL
    if isinstance(value, Code):
        return TypeTag.JAVASCRIPT
    if isinstance(value, str):
        return TypeTag.STRING
    if isinstance(value, (list, tuple)):
        return TypeTag.ARRAY
    if isinstance(value, Mapping):
        return TypeTag.DOCUMENT
    if isinstance(value, (datetime.datetime, DatetimeMS)):
        return TypeTag.DATETIME
    if isinstance(value, ObjectId):
        return TypeTag.OBJECT_ID
    if isinstance(value, (bytes, uuid.UUID)):
        return TypeTag.BINARY
    if isinstance(value, Timestamp):
        return TypeTag.TIMESTAMP
    if isinstance(value, (Regex, re.Pattern)):
        return TypeTag.REGEX
    if isinstance(value, MinKey):
        return TypeTag.MIN_KEY
    if isinstance(value, MaxKey):
        return TypeTag.MAX_KEY
    return TypeTag.OTHER


class FieldProfile(BaseModel):
    name: str
    occurrence_count: int = 0
    observed_types: List[TypeTag] = Field(default_factory=list)
    sample_value: Any = None

    def summary(self) -> Dict[str, Any]:
        return {
            "count": self.occurrence_count,
            "types": [t.value for t in self.observed_types],
            "sample": self.sample_value,
        }

    def list_entry(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "types": [t.value for t in self.observed_types],
            "sample": self.sample_value,
            "occurrence": self.occurrence_count,
        }


class CollectionProfile(BaseModel):
    database: str
    collection: str
    sampled_document_count: int = 0
    # descending occurrence_count
    fields: Dict[str, FieldProfile] = Field(default_factory=dict)

    def field_list(self) -> List[Dict[str, Any]]:
        return [f.list_entry() for f in self.fields.values()]

    def summary(self, layout: str = "map") -> Dict[str, Any]:
        if layout == "list":
            fields: Any = self.field_list()
        else:
            fields = {name: f.summary() for name, f in self.fields.items()}
        return {
            "database": self.database,
            "collection": self.collection,
            "sampledDocumentCount": self.sampled_document_count,
            "fields": fields,
        }


class CollectionError(BaseModel):
    """Stands in for a collection whose profiling failed."""

    database: str
    collection: str
    error: str

    def summary(self, layout: str = "map") -> Dict[str, Any]:
        return {"database": self.database, "collection": self.collection, "error": self.error}


class DatabaseProfile(BaseModel):
    database: str
    collections: List[Union[CollectionProfile, CollectionError]] = Field(default_factory=list)

    @property
    def collection_count(self) -> int:
        return len(self.collections)

    def summary(self, layout: str = "map") -> Dict[str, Any]:
        return {
            "database": self.database,
            "collectionCount": self.collection_count,
            "collections": [c.summary(layout) for c in self.collections],
        }


_MISSING = object()


class _FieldAccumulator:
    def __init__(self) -> None:
        self.count = 0
        self.types: set = set()
        self.sample: Any = _MISSING

    def add(self, value: Any) -> None:
        self.count += 1
        self.types.add(type_tag(value))
        if self.sample is _MISSING:
            self.sample = to_jsonable(value)

    def freeze(self, name: str) -> FieldProfile:
        return FieldProfile(
            name=name,
            occurrence_count=self.count,
            observed_types=sorted(self.types, key=lambda t: t.value),
            sample_value=None if self.sample is _MISSING else self.sample,
        )


def fold_documents(documents: Iterable[Mapping]) -> Tuple[int, Dict[str, FieldProfile]]:
    """Summarise top-level fields across ``documents``.

    Returns the number of documents seen and the field profiles ordered by
    descending occurrence.
    """
    total = 0
    acc: Dict[str, _FieldAccumulator] = {}
    for doc in documents:
        total += 1
        for key, value in doc.items():
            if key not in acc:
                acc[key] = _FieldAccumulator()
            acc[key].add(value)

    ordered = sorted(acc.items(), key=lambda item: item[1].count, reverse=True)
    return total, {name: a.freeze(name) for name, a in ordered}


class CollectionProfiler:
    def __init__(self, client: MongoClient, sample_size: int = DEFAULT_SAMPLE_SIZE) -> None:
        self._client = client
        self._sample_size = max(1, sample_size)

    def profile(self, database: str, collection: str, sample_size: Optional[int] = None) -> CollectionProfile:
        size = max(1, self._sample_size if sample_size is None else sample_size)
        try:
            col = self._client[database][collection]
            cursor = col.aggregate([{"$sample": {"size": size}}])
            total, fields = fold_documents(cursor)
        except (PyMongoError, BSONError) as e:
            raise DataAccessError(
                ErrorCodes.SAMPLE_FAILED,
                f"could not sample {database}.{collection}",
                str(e),
            ) from e
        return CollectionProfile(
            database=database,
            collection=collection,
            sampled_document_count=total,
            fields=fields,
        )


class DatabaseProfiler:
    def __init__(self, client: MongoClient, collection_profiler: CollectionProfiler) -> None:
        self._client = client
        self._profiler = collection_profiler

    def profile_database(
        self, database: str, target_collection: str
    ) -> Tuple[DatabaseProfile, Optional[CollectionProfile]]:
        """Profile every collection of ``database`` in enumeration order.

        Only a failed enumeration raises. A collection that cannot be sampled
        is recorded as a CollectionError entry. The second element is the
        profile of ``target_collection`` when it was among the enumerated names.
        """
        try:
            names = self._client[database].list_collection_names()
        except PyMongoError as e:
            raise DataAccessError(
                ErrorCodes.ENUMERATION_FAILED,
                f"could not list collections of {database}",
                str(e),
            ) from e

        entries: List[Union[CollectionProfile, CollectionError]] = []
        target: Optional[CollectionProfile] = None
        for name in names:
            try:
                profile = self._profiler.profile(database, name)
            except DataAccessError as e:
                logger.warning(f"Failed to profile collection {database}.{name}: {e.details or e.message}")
                entries.append(CollectionError(database=database, collection=name, error=e.details or e.message))
                continue
            if name == target_collection:
                target = profile
            entries.append(profile)

        return DatabaseProfile(database=database, collections=entries), target
