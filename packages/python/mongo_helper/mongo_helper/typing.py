"""Lightweight typing helpers shared by the client and the merge helpers."""

from typing import Any, Mapping, TypeVar, Union

from pydantic import BaseModel

MongoDocument = Mapping[str, Any]

# Anything accepted where a document or partial update is expected.
DocumentInput = Union[MongoDocument, BaseModel]

ModelT = TypeVar("ModelT", bound=BaseModel)
