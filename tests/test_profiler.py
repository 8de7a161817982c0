import datetime
import re

import pytest
from bson import ObjectId
from bson.code import Code
from bson.decimal128 import Decimal128
from bson.int64 import Int64
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.timestamp import Timestamp
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from navigator.errors import DataAccessError, ErrorCodes
from navigator.services.profiler import (
    CollectionError,
    CollectionProfiler,
    DatabaseProfiler,
    TypeTag,
    fold_documents,
    type_tag,
)

from conftest import FakeClient, FakeCollection, FakeDatabase


@pytest.mark.parametrize("value,expected", [
    (None, TypeTag.NULL),
    (True, TypeTag.BOOL),
    (7, TypeTag.INT32),
    (2 ** 40, TypeTag.INT64),
    (Int64(3), TypeTag.INT64),
    (1.5, TypeTag.DOUBLE),
    (Decimal128("1.10"), TypeTag.DECIMAL),
    ("x", TypeTag.STRING),
    (Code("function() {}"), TypeTag.JAVASCRIPT),
    ([1, 2], TypeTag.ARRAY),
    ({"a": 1}, TypeTag.DOCUMENT),
    (datetime.datetime(2024, 1, 1), TypeTag.DATETIME),
    (ObjectId(), TypeTag.OBJECT_ID),
    (b"\x00\x01", TypeTag.BINARY),
    (Timestamp(1, 1), TypeTag.TIMESTAMP),
    (re.compile("^a"), TypeTag.REGEX),
    (MinKey(), TypeTag.MIN_KEY),
    (MaxKey(), TypeTag.MAX_KEY),
    (object(), TypeTag.OTHER),
    ({1, 2}, TypeTag.OTHER),
])
def test_type_tag(value, expected):
    assert type_tag(value) is expected


def test_fold_counts_types_and_first_sample(students):
    total, fields = fold_documents(students.docs)

    assert total == 3
    assert fields["name"].occurrence_count == 3
    assert fields["name"].sample_value == "Sam"
    assert [t.value for t in fields["age"].observed_types] == ["int32", "string"]
    assert fields["department"].occurrence_count == 1
    assert fields["tags"].sample_value == ["x"]


def test_fold_orders_by_descending_occurrence(students):
    _, fields = fold_documents(students.docs)
    counts = [f.occurrence_count for f in fields.values()]
    assert counts == sorted(counts, reverse=True)
    assert set(fields) == {"_id", "name", "age", "department", "tags"}


def test_first_seen_null_sample_is_kept():
    _, fields = fold_documents([{"a": None}, {"a": 5}])
    assert fields["a"].sample_value is None
    assert {t.value for t in fields["a"].observed_types} == {"null", "int32"}


def test_exotic_values_degrade_to_other():
    _, fields = fold_documents([{"weird": object(), "oid": ObjectId("64b7f0f0f0f0f0f0f0f0f0f0")}])
    assert fields["weird"].observed_types == [TypeTag.OTHER]
    assert isinstance(fields["weird"].sample_value, str)
    assert fields["oid"].sample_value == {"$oid": "64b7f0f0f0f0f0f0f0f0f0f0"}


def test_observed_types_never_empty_and_in_vocabulary(students):
    _, fields = fold_documents(students.docs + [{"x": MinKey(), "y": datetime.datetime(2020, 5, 1)}])
    vocabulary = set(TypeTag)
    for f in fields.values():
        assert f.observed_types
        assert set(f.observed_types) <= vocabulary


def test_profile_respects_sample_size():
    col = FakeCollection([{"i": i} for i in range(10)])
    client = FakeClient({"school": FakeDatabase({"nums": col})})

    profile = CollectionProfiler(client, sample_size=4).profile("school", "nums")

    assert profile.sampled_document_count == 4
    assert col.pipelines == [[{"$sample": {"size": 4}}]]


def test_profile_smaller_collection_than_sample(students):
    client = FakeClient({"school": FakeDatabase({"students": students})})
    profile = CollectionProfiler(client).profile("school", "students")

    assert profile.sampled_document_count == 3
    assert students.pipelines == [[{"$sample": {"size": 200}}]]


def test_empty_collection_profile():
    client = FakeClient({"school": FakeDatabase({"empty": FakeCollection([])})})
    profile = CollectionProfiler(client).profile("school", "empty")

    assert profile.sampled_document_count == 0
    assert profile.fields == {}
    assert profile.summary()["fields"] == {}


def test_profile_wraps_store_errors():
    col = FakeCollection(error=OperationFailure("not authorized"))
    client = FakeClient({"school": FakeDatabase({"locked": col})})

    with pytest.raises(DataAccessError) as info:
        CollectionProfiler(client).profile("school", "locked")
    assert info.value.code is ErrorCodes.SAMPLE_FAILED
    assert "not authorized" in info.value.details


def test_summary_layouts(students):
    client = FakeClient({"school": FakeDatabase({"students": students})})
    profile = CollectionProfiler(client).profile("school", "students")

    as_map = profile.summary()
    assert as_map["sampledDocumentCount"] == 3
    assert as_map["fields"]["name"] == {"count": 3, "types": ["string"], "sample": "Sam"}

    as_list = profile.summary("list")["fields"]
    assert as_list[0]["occurrence"] == 3
    assert [e["name"] for e in as_list] == list(as_map["fields"])


def test_database_profile_isolates_failures(students):
    db = FakeDatabase({
        "students": students,
        "broken": FakeCollection(error=OperationFailure("boom")),
        "empty": FakeCollection([]),
    })
    client = FakeClient({"school": db})
    profiler = DatabaseProfiler(client, CollectionProfiler(client))

    overview, target = profiler.profile_database("school", "students")

    assert overview.collection_count == 3
    assert [c.collection for c in overview.collections] == ["students", "broken", "empty"]
    assert isinstance(overview.collections[1], CollectionError)
    assert "boom" in overview.collections[1].error
    assert target is overview.collections[0]
    summary = overview.summary()
    assert summary["collectionCount"] == 3
    assert summary["collections"][1] == {"database": "school", "collection": "broken", "error": "boom"}


def test_database_profile_target_missing(students):
    client = FakeClient({"school": FakeDatabase({"students": students})})
    profiler = DatabaseProfiler(client, CollectionProfiler(client))

    overview, target = profiler.profile_database("school", "teachers")

    assert overview.collection_count == 1
    assert target is None


def test_database_profile_target_failed_is_none():
    db = FakeDatabase({"students": FakeCollection(error=OperationFailure("boom"))})
    client = FakeClient({"school": db})

    overview, target = DatabaseProfiler(client, CollectionProfiler(client)).profile_database("school", "students")

    assert overview.collection_count == 1
    assert target is None


def test_enumeration_failure_raises():
    client = FakeClient({"school": FakeDatabase(list_error=ServerSelectionTimeoutError("down"))})
    profiler = DatabaseProfiler(client, CollectionProfiler(client))

    with pytest.raises(DataAccessError) as info:
        profiler.profile_database("school", "students")
    assert info.value.code is ErrorCodes.ENUMERATION_FAILED


def test_explicit_zero_sample_size_is_clamped_not_defaulted():
    col = FakeCollection([{"i": i} for i in range(10)])
    client = FakeClient({"school": FakeDatabase({"nums": col})})

    profile = CollectionProfiler(client, sample_size=50).profile("school", "nums", sample_size=0)

    assert profile.sampled_document_count == 1
    assert col.pipelines == [[{"$sample": {"size": 1}}]]
