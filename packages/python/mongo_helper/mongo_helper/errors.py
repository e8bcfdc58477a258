"""Errors raised by mongo_helper.

Driver failures (``pymongo.errors.PyMongoError`` and subclasses) are not
wrapped; they reach the caller exactly as pymongo raised them."""


class MongoHelperError(Exception):
    """Base class for every error raised by this package."""


class ClientNotConfiguredError(MongoHelperError):
    """Raised when the shared client is requested before ``configure``."""


class BadFormatError(MongoHelperError, ValueError):
    """Raised when the ``request-format`` parameter is not a JSON object of strings."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__("request-format must be a JSON object of string values")


class QueryParseError(MongoHelperError, ValueError):
    """Raised when a query parameter cannot be coerced to its declared kind."""

    def __init__(self, field: str, value: str, kind: str):
        self.field = field
        self.value = value
        self.kind = kind
        super().__init__(f"invalid {kind} value for {field!r}: {value!r}")


class DocumentNotFoundError(MongoHelperError):
    """Raised when a single-document read matches nothing."""

    def __init__(self, collection: str, database: str, predicate):
        self.collection = collection
        self.database = database
        self.predicate = predicate
        super().__init__(f"no document in {database}.{collection} matches {predicate!r}")


class DecodeError(MongoHelperError):
    """Raised when a stored document cannot be validated into the caller's model."""
