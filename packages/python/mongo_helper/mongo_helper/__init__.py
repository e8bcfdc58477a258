"""Minimal MongoDB helpers: a shared client, CRUD passthroughs and a
query-string filter translator.

Example usage in a request handler:

    from mongo_helper import get, translate_query

    def list_orders(query_string: str):
        f = translate_query(query_string, {"total": "int"})
        return get().get_all(f, "orders", "shop")
"""

from .client import Lookup, Mongo, configure, get, reset
from .errors import (
    BadFormatError,
    ClientNotConfiguredError,
    DecodeError,
    DocumentNotFoundError,
    MongoHelperError,
    QueryParseError,
)
from .merge import merge_documents, split_update
from .query import Filter, translate_query
from .settings import MongoSettings, build_uri, settings

__all__ = [
    "MongoSettings",
    "settings",
    "build_uri",
    "Mongo",
    "Lookup",
    "configure",
    "get",
    "reset",
    "Filter",
    "translate_query",
    "merge_documents",
    "split_update",
    "MongoHelperError",
    "ClientNotConfiguredError",
    "BadFormatError",
    "QueryParseError",
    "DocumentNotFoundError",
    "DecodeError",
]
