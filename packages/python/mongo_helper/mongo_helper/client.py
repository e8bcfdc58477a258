"""MongoDB client helpers built on top of pymongo.

``Mongo`` wraps one ``MongoClient`` and exposes thin CRUD passthroughs; each
call runs under its own fixed deadline and targets the collection/database
pair named by the caller. Driver errors are raised as pymongo raised them.

Applications can build a ``Mongo`` with ``Mongo.connect`` and pass it around,
or use the process-wide handle:

    from mongo_helper import configure, get

    configure("user", "secret", "localhost", "27017", "admin")
    get().count({"status": "open"}, "orders", "shop")
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, Union

import pymongo
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo import MongoClient, ReadPreference, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import ClientNotConfiguredError, DecodeError, DocumentNotFoundError
from .merge import as_document, merge_documents, split_update
from .query import Filter
from .settings import DEFAULT_TIMEOUT_SECONDS, MongoSettings, redact_uri, settings
from .typing import DocumentInput, ModelT, MongoDocument

IndexKeys = Union[str, Sequence[Tuple[str, Any]], Mapping[str, Any]]


class Lookup(BaseModel):
    """A ``$lookup`` stage joining another collection into each match."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    local_field: str = Field(alias="localField")
    foreign_field: str = Field(alias="foreignField")
    as_: str = Field(alias="as")

    def stage(self) -> Dict[str, Any]:
        return {"$lookup": self.model_dump(by_alias=True)}


def _decode(document: Mapping[str, Any], model: Optional[Type[ModelT]]) -> Any:
    if model is None:
        return document
    try:
        return model.model_validate(document)
    except ValidationError as exc:
        raise DecodeError(
            f"document {document.get('_id')!r} does not match {model.__name__}"
        ) from exc


class Mongo:
    """A connected MongoDB client plus the per-operation timeout."""

    def __init__(self, client: MongoClient, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.client = client
        self.timeout_seconds = timeout_seconds

    @classmethod
    def connect(cls, mongo_settings: Optional[MongoSettings] = None) -> "Mongo":
        """Open a client and ping the primary; driver errors propagate."""

        cfg = mongo_settings or settings
        client: MongoClient = MongoClient(
            cfg.uri,
            serverSelectionTimeoutMS=int(cfg.timeout_seconds * 1000),
        )
        try:
            with pymongo.timeout(cfg.timeout_seconds):
                client.admin.command("ping", read_preference=ReadPreference.PRIMARY)
        except PyMongoError:
            client.close()
            raise
        logger.info("Connected to MongoDB at {uri}", uri=redact_uri(cfg.uri))
        return cls(client, cfg.timeout_seconds)

    def close(self) -> None:
        self.client.close()

    @contextmanager
    def _operation(self, name: str, collection: str, database: str) -> Iterator[Collection]:
        start = time.perf_counter()
        try:
            with pymongo.timeout(self.timeout_seconds):
                yield self.client[database][collection]
        except PyMongoError as exc:
            logger.debug(
                "{name} on {database}.{collection} failed after {duration:.2f} ms: {error}",
                name=name,
                database=database,
                collection=collection,
                duration=(time.perf_counter() - start) * 1000,
                error=exc,
            )
            raise
        logger.debug(
            "{name} on {database}.{collection} completed in {duration:.2f} ms",
            name=name,
            database=database,
            collection=collection,
            duration=(time.perf_counter() - start) * 1000,
        )

    # ---------------------------------------------------------
    # CREATE
    # ---------------------------------------------------------
    def create(self, document: DocumentInput, collection: str, database: str) -> Any:
        """Insert one document and return its ``_id``."""

        with self._operation("create", collection, database) as coll:
            return coll.insert_one(as_document(document)).inserted_id

    # ---------------------------------------------------------
    # UPDATE
    # ---------------------------------------------------------
    def update(
        self,
        predicate: MongoDocument,
        partial: DocumentInput,
        collection: str,
        database: str,
    ) -> None:
        """``$set`` the fields of ``partial`` on the first matching document."""

        with self._operation("update", collection, database) as coll:
            coll.update_one(predicate, {"$set": as_document(partial, partial=True)})

    def get_and_update(
        self,
        predicate: MongoDocument,
        partial: DocumentInput,
        collection: str,
        database: str,
    ) -> Any:
        """Apply a partial update and return the reconciled document.

        ``$push`` is applied as ``$addToSet``, ``$inc`` as ``$inc`` and every
        other field through ``$set``. The document stored before the update is
        then overlaid with the ``$set`` fields, so the result also holds every
        stored field the partial did not mention. Increments and pushes are not
        replayed onto the result.

        A mapping partial yields a new dict; a model partial yields a new
        instance of the same model class. ``partial`` itself is not modified.
        """

        update = split_update(as_document(partial, partial=True))
        with self._operation("get_and_update", collection, database) as coll:
            previous = coll.find_one_and_update(
                predicate,
                update,
                return_document=ReturnDocument.BEFORE,
            )
        if previous is None:
            raise DocumentNotFoundError(collection, database, predicate)

        merged = merge_documents(previous, update.get("$set", {}))
        if isinstance(partial, BaseModel):
            return _decode(merged, type(partial))
        return merged

    # ---------------------------------------------------------
    # GET
    # ---------------------------------------------------------
    def get_one(
        self,
        predicate: MongoDocument,
        collection: str,
        database: str,
        model: Optional[Type[ModelT]] = None,
    ) -> Any:
        """Return the first match, validated into ``model`` when given."""

        with self._operation("get_one", collection, database) as coll:
            document = coll.find_one(predicate)
        if document is None:
            raise DocumentNotFoundError(collection, database, predicate)
        return _decode(document, model)

    def get_all(
        self,
        query: Union[Filter, MongoDocument, None],
        collection: str,
        database: str,
        model: Optional[Type[ModelT]] = None,
    ) -> List[Any]:
        """Return every match for ``query`` with its sort and pagination applied."""

        if not isinstance(query, Filter):
            query = Filter(predicates=dict(query or {}))
        with self._operation("get_all", collection, database) as coll:
            documents = list(coll.find(**query.find_kwargs()))
        return [_decode(document, model) for document in documents]

    def get_joined(
        self,
        predicate: MongoDocument,
        lookup: Lookup,
        unwind: bool,
        collection: str,
        database: str,
        model: Optional[Type[ModelT]] = None,
    ) -> List[Any]:
        """Match documents and join ``lookup.from_`` into each of them.

        With ``unwind`` the joined array is flattened so each result carries a
        single joined document under ``lookup.as_``.
        """

        pipeline: List[Dict[str, Any]] = [{"$match": dict(predicate)}, lookup.stage()]
        if unwind:
            pipeline.append({"$unwind": f"${lookup.as_}"})
        with self._operation("get_joined", collection, database) as coll:
            documents = list(coll.aggregate(pipeline))
        return [_decode(document, model) for document in documents]

    # ---------------------------------------------------------
    # DELETE / COUNT / INDEX
    # ---------------------------------------------------------
    def delete(self, predicate: MongoDocument, collection: str, database: str) -> int:
        """Delete the first matching document; returns the deleted count."""

        with self._operation("delete", collection, database) as coll:
            return coll.delete_one(predicate).deleted_count

    def count(self, predicate: MongoDocument, collection: str, database: str) -> int:
        with self._operation("count", collection, database) as coll:
            return coll.count_documents(predicate)

    def create_index(
        self,
        keys: IndexKeys,
        collection: str,
        database: str,
        unique: bool = False,
    ) -> str:
        """Create an index and return its name.

        ``keys`` is a field name, a list of ``(field, direction)`` pairs or a
        mapping of field to direction.
        """

        if isinstance(keys, Mapping):
            keys = list(keys.items())
        with self._operation("create_index", collection, database) as coll:
            return coll.create_index(keys, unique=unique)


# ---------------------------------------------------------------------------
# Process-wide handle
# ---------------------------------------------------------------------------

_session: Optional[Mongo] = None
_session_lock = threading.Lock()


def configure(
    username: Optional[str] = None,
    password: Optional[str] = None,
    host: Optional[str] = None,
    port: Union[str, int, None] = None,
    auth_database: Optional[str] = None,
    remote: Optional[bool] = None,
) -> Mongo:
    """Create the shared client once; later calls return the existing one.

    Arguments left as ``None`` fall back to ``mongo_helper.settings``. A
    connection or ping failure is fatal: it is logged and the process exits.
    """

    global _session
    with _session_lock:
        if _session is not None:
            return _session

        overrides: Dict[str, Any] = {
            "username": username,
            "password": password,
            "host": host,
            "port": None if port is None else str(port),
            "auth_database": auth_database,
            "remote": remote,
        }
        cfg = settings.model_copy(
            update={key: value for key, value in overrides.items() if value is not None}
        )
        try:
            _session = Mongo.connect(cfg)
        except (PyMongoError, ValueError) as exc:
            # pymongo rejects a malformed host or port with ValueError before connecting.
            logger.exception(
                "Could not connect to MongoDB at {uri}", uri=redact_uri(cfg.uri)
            )
            raise SystemExit(1) from exc
        return _session


def get() -> Mongo:
    """Return the shared client created by :func:`configure`."""

    if _session is None:
        raise ClientNotConfiguredError("call configure() before get()")
    return _session


def reset() -> None:
    """Close and forget the shared client."""

    global _session
    with _session_lock:
        if _session is not None:
            _session.close()
        _session = None
