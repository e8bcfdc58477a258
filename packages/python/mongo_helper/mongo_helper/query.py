"""Translate URL query parameters into a MongoDB filter, sort and pagination.

Example:

    from mongo_helper import translate_query

    f = translate_query("status=open&age=30&sort=-created,name&limit=20",
                        {"age": "int"})
    f.predicates  # {"status": "open", "age": 30}
    f.sort        # {"created": -1, "name": 1}
    collection.find(**f.find_kwargs())
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_serializer,
    field_validator,
)

from .errors import BadFormatError, QueryParseError

REQUEST_FORMAT_KEY = "request-format"
SORT_KEY = "sort"
LIMIT_KEY = "limit"
SKIP_KEYS = ("offset", "skip")
RESERVED_KEYS = frozenset({SORT_KEY, LIMIT_KEY, *SKIP_KEYS, REQUEST_FORMAT_KEY})

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1

_SIGNED_RE = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_RE = re.compile(r"[0-9]+")
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_FORMAT_ADAPTER = TypeAdapter(Dict[str, StrictStr])

QueryInput = Union[str, bytes, Mapping[str, Any]]
FormatMap = Mapping[str, str]


class Filter(BaseModel):
    """Predicates, sort order and pagination extracted from one request.

    ``predicates`` and ``sort`` are read-only views; use ``find_kwargs`` or
    ``model_dump`` for mutable copies.
    """

    model_config = ConfigDict(frozen=True)

    predicates: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    sort: Mapping[str, int] = Field(default_factory=dict, validate_default=True)
    limit: Optional[int] = None
    skip: Optional[int] = None

    @field_validator("predicates", "sort", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("predicates", "sort")
    def _as_dict(self, value: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(value)

    def find_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Collection.find``."""

        kwargs: Dict[str, Any] = {"filter": dict(self.predicates)}
        if self.sort:
            kwargs["sort"] = list(self.sort.items())
        if self.limit is not None:
            kwargs["limit"] = self.limit
        if self.skip is not None:
            kwargs["skip"] = self.skip
        return kwargs


def _parse_int(field: str, raw: str, low: int = INT64_MIN, high: int = INT64_MAX) -> int:
    if not _SIGNED_RE.fullmatch(raw):
        raise QueryParseError(field, raw, "int")
    value = int(raw)
    if not low <= value <= high:
        raise QueryParseError(field, raw, "int")
    return value


def _parse_uint(field: str, raw: str) -> int:
    if not _UNSIGNED_RE.fullmatch(raw):
        raise QueryParseError(field, raw, "uint")
    value = int(raw)
    if value > UINT64_MAX:
        raise QueryParseError(field, raw, "uint")
    return value


def _parse_bool(field: str, raw: str) -> bool:
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise QueryParseError(field, raw, "bool")


def coerce_value(field: str, raw: str, kind: Optional[str]) -> Any:
    """Convert ``raw`` according to ``kind``; unknown kinds keep the text."""

    if kind == "int":
        return _parse_int(field, raw)
    if kind == "uint":
        return _parse_uint(field, raw)
    if kind == "bool":
        return _parse_bool(field, raw)
    return raw


def parse_sort(value: str, sort: Optional[Dict[str, int]] = None) -> Dict[str, int]:
    """Parse ``"name,-age"`` into ``{"name": 1, "age": -1}``.

    Token order is kept; a field named twice keeps its last direction.
    """

    sort = {} if sort is None else sort
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        if token.startswith("-"):
            field, direction = token[1:], -1
        else:
            field, direction = token, 1
        if field:
            sort[field] = direction
    return sort


def parse_request_format(raw: str) -> Dict[str, str]:
    """Parse the ``request-format`` value, a JSON object of strings."""

    try:
        return _FORMAT_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise BadFormatError(raw) from exc


def _items(params: QueryInput) -> Iterable[Tuple[str, str]]:
    if isinstance(params, (str, bytes)):
        text = params.decode("utf-8", "replace") if isinstance(params, bytes) else params
        return parse_qsl(text.lstrip("?"), keep_blank_values=True)
    if hasattr(params, "multi_items"):
        # starlette QueryParams / ImmutableMultiDict
        return params.multi_items()
    items = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            items.extend((key, item) for item in value)
        else:
            items.append((key, value))
    return items


def _last_values(params: QueryInput) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for key, value in _items(params):
        values[key] = str(value)
    return values


def translate_query(params: QueryInput, format_map: Optional[FormatMap] = None) -> Filter:
    """Build a :class:`Filter` from query parameters.

    ``params`` may be a raw query string, a mapping of strings or lists of
    strings, or a Starlette ``QueryParams``. When a key repeats, its last value
    is used. Reserved keys (``sort``, ``limit``, ``offset``/``skip`` and
    ``request-format``) never become predicates.

    Raises:
        BadFormatError: ``request-format`` is not a JSON object of strings.
        QueryParseError: a numeric or boolean value could not be parsed.
    """

    values = _last_values(params)

    raw_format = values.pop(REQUEST_FORMAT_KEY, None)
    if format_map is None and raw_format is not None:
        try:
            format_map = parse_request_format(raw_format)
        except BadFormatError:
            logger.warning("Rejected request-format {raw!r}", raw=raw_format)
            raise
    format_map = format_map or {}

    predicates: Dict[str, Any] = {}
    sort: Dict[str, int] = {}
    limit: Optional[int] = None
    skip: Optional[int] = None

    try:
        for key, value in values.items():
            if key == SORT_KEY:
                parse_sort(value, sort)
            elif key == LIMIT_KEY:
                limit = _parse_int(key, value)
            elif key in SKIP_KEYS:
                skip = _parse_int(key, value)
            else:
                predicates[key] = coerce_value(key, value, format_map.get(key))
    except QueryParseError as exc:
        logger.warning(
            "Rejected query parameter {field}={value!r} ({kind})",
            field=exc.field,
            value=exc.value,
            kind=exc.kind,
        )
        raise

    return Filter(predicates=predicates, sort=sort, limit=limit, skip=skip)
