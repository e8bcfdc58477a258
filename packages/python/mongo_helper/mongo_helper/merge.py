"""Field merge used to reconcile a stored document with a partial update."""

from __future__ import annotations

import copy
from typing import Any, Dict, MutableMapping

from pydantic import BaseModel

from .typing import DocumentInput, MongoDocument

# Partial-update keys that are routed to their own update operator instead of $set.
OPERATOR_ROUTES = {
    "$push": "$addToSet",
    "$inc": "$inc",
}


def as_document(value: DocumentInput, *, partial: bool = False) -> Dict[str, Any]:
    """Return a plain dict for a mapping or a pydantic model.

    Models are dumped by alias; for partial updates only explicitly set fields
    are kept so defaults never overwrite stored values.
    """

    if isinstance(value, BaseModel):
        data = value.model_dump(by_alias=True, exclude_unset=partial)
        if "_id" in data and data["_id"] is None:
            del data["_id"]
        return data
    return dict(value)


def split_update(partial: MongoDocument) -> Dict[str, Dict[str, Any]]:
    """Build the update-operator document for a partial update.

    ``$push`` becomes ``$addToSet``, ``$inc`` stays ``$inc`` and every other
    field is collected under ``$set``. Empty stages are left out.
    """

    update: Dict[str, Dict[str, Any]] = {}
    fields: Dict[str, Any] = {}
    for key, value in partial.items():
        route = OPERATOR_ROUTES.get(key)
        if route is None:
            fields[key] = value
        elif value:
            update[route] = dict(value)
    if fields:
        update["$set"] = fields
    return update


def _assign_path(target: MutableMapping[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = target
    for part in parents:
        child = node.get(part)
        if not isinstance(child, MutableMapping):
            child = {}
            node[part] = child
        node = child
    node[leaf] = copy.deepcopy(value)


def merge_documents(previous: MongoDocument, partial: MongoDocument) -> Dict[str, Any]:
    """Overlay ``partial`` on ``previous`` and return the merged document.

    Precedence follows ``$set``: a field present in ``partial`` replaces the
    stored value as a whole, and a dotted key (``"address.city"``) replaces
    only the nested field it names, creating missing parents. Fields only
    present in ``previous`` are kept. Neither argument is modified.
    """

    merged: Dict[str, Any] = copy.deepcopy(dict(previous))
    for key, value in partial.items():
        _assign_path(merged, key, value)
    return merged
