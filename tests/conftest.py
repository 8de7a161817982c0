from typing import Any, Dict, List, Optional

import pytest

from navigator.services.gemini import ModelReply


class FakeCollection:
    def __init__(self, docs: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.docs = list(docs or [])
        self.error = error
        self.pipelines: List[Any] = []

    def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        if self.error is not None:
            raise self.error
        size = pipeline[0]["$sample"]["size"]
        return iter(self.docs[:size])


class FakeDatabase:
    def __init__(self, collections: Optional[Dict[str, FakeCollection]] = None, list_error: Optional[Exception] = None):
        self.collections = dict(collections or {})
        self.list_error = list_error

    def list_collection_names(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.collections)

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())


class FakeClient:
    def __init__(self, databases: Optional[Dict[str, FakeDatabase]] = None):
        self.databases = dict(databases or {})

    def __getitem__(self, name):
        return self.databases.setdefault(name, FakeDatabase())


class FakeGateway:
    source = "gemini"

    def __init__(self, reply: Optional[ModelReply] = None, error: Optional[Exception] = None):
        self.reply = reply or ModelReply(structured=None, text="{}")
        self.error = error
        self.prompts: List[str] = []

    def ask(self, prompt: str) -> ModelReply:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def students():
    return FakeCollection([
        {"_id": 1, "name": "Sam", "age": 31, "department": "CS"},
        {"_id": 2, "name": "Ana", "age": 27},
        {"_id": 3, "name": "Lee", "age": "unknown", "tags": ["x"]},
    ])
