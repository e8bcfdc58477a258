import pytest
from pydantic import ValidationError
from starlette.datastructures import QueryParams

from mongo_helper import BadFormatError, Filter, QueryParseError, translate_query
from mongo_helper.query import coerce_value, parse_sort


def test_reserved_keys_only_give_empty_predicates():
    f = translate_query("sort=name&limit=5&offset=2&skip=3")

    assert f.predicates == {}


def test_sort_tokens_keep_order_and_direction():
    f = translate_query("sort=name,-age")

    assert f.sort == {"name": 1, "age": -1}
    assert list(f.sort) == ["name", "age"]


def test_repeated_sort_field_keeps_last_direction():
    assert parse_sort("age,name,-age") == {"age": -1, "name": 1}


def test_sort_skips_empty_tokens():
    assert parse_sort(",name,,-,") == {"name": 1}


def test_limit_and_offset_become_pagination():
    f = translate_query("limit=10&offset=5")

    assert f.limit == 10
    assert f.skip == 5


def test_skip_is_an_alias_for_offset():
    assert translate_query({"skip": "7"}).skip == 7


@pytest.mark.parametrize("query", ["limit=ten", "offset=5x", "skip=", "limit=1.5"])
def test_non_numeric_pagination_fails(query):
    with pytest.raises(QueryParseError):
        translate_query(query)


def test_limit_out_of_int64_range_fails():
    with pytest.raises(QueryParseError):
        translate_query({"limit": str(2**63)})


def test_format_map_coerces_values():
    f = translate_query("age=30&name=ana", {"age": "int"})

    assert f.predicates == {"age": 30, "name": "ana"}
    assert isinstance(f.predicates["age"], int)


def test_unmapped_field_is_kept_as_text():
    f = translate_query("age=30")

    assert f.predicates == {"age": "30"}


def test_unknown_kind_keeps_text():
    assert translate_query("age=30", {"age": "float"}).predicates == {"age": "30"}


def test_embedded_request_format_matches_explicit_map():
    embedded = translate_query({"request-format": '{"age":"int","active":"bool"}', "age": "30", "active": "true"})
    explicit = translate_query({"age": "30", "active": "true"}, {"age": "int", "active": "bool"})

    assert embedded.predicates == explicit.predicates == {"age": 30, "active": True}
    assert "request-format" not in embedded.predicates


def test_request_format_is_dropped_when_map_is_given():
    f = translate_query({"request-format": "not json", "age": "30"}, {"age": "int"})

    assert f.predicates == {"age": 30}


@pytest.mark.parametrize("raw", ["not json", '["age"]', '{"age": 1}', '{"age": {"kind": "int"}}'])
def test_bad_request_format(raw):
    with pytest.raises(BadFormatError):
        translate_query({"request-format": raw, "age": "30"})


def test_parse_error_carries_field_and_value():
    with pytest.raises(QueryParseError) as excinfo:
        translate_query("age=old", {"age": "int"})

    assert excinfo.value.field == "age"
    assert excinfo.value.value == "old"
    assert excinfo.value.kind == "int"
    assert "age" in str(excinfo.value)


@pytest.mark.parametrize(
    "raw, expected",
    [("1", True), ("t", True), ("TRUE", True), ("True", True), ("0", False), ("f", False), ("false", False)],
)
def test_bool_coercion(raw, expected):
    assert coerce_value("active", raw, "bool") is expected


@pytest.mark.parametrize("raw", ["yes", "no", "", "tRUE"])
def test_bool_coercion_rejects_other_spellings(raw):
    with pytest.raises(QueryParseError):
        coerce_value("active", raw, "bool")


def test_uint_coercion():
    assert coerce_value("n", str(2**64 - 1), "uint") == 2**64 - 1
    with pytest.raises(QueryParseError):
        coerce_value("n", "-1", "uint")
    with pytest.raises(QueryParseError):
        coerce_value("n", str(2**64), "uint")


def test_int_accepts_sign():
    assert coerce_value("n", "-42", "int") == -42
    assert coerce_value("n", "+42", "int") == 42


def test_repeated_key_uses_last_value():
    f = translate_query("status=open&status=closed")

    assert f.predicates == {"status": "closed"}


def test_accepts_starlette_query_params():
    params = QueryParams("age=30&age=31&sort=-age&limit=2")

    f = translate_query(params, {"age": "int"})

    assert f.predicates == {"age": 31}
    assert f.sort == {"age": -1}
    assert f.limit == 2


def test_accepts_list_values():
    f = translate_query({"status": ["open", "closed"], "limit": ["1", "3"]})

    assert f.predicates == {"status": "closed"}
    assert f.limit == 3


def test_leading_question_mark_is_ignored():
    assert translate_query("?name=ana").predicates == {"name": "ana"}


def test_filter_is_immutable():
    f = translate_query("name=ana")

    with pytest.raises(ValidationError):
        f.limit = 3


def test_filter_mappings_are_read_only():
    f = translate_query("name=ana&sort=age")

    with pytest.raises(TypeError):
        f.predicates["role"] = "admin"
    with pytest.raises(TypeError):
        f.sort["name"] = -1
    with pytest.raises(TypeError):
        Filter().predicates["role"] = "admin"

    assert f.predicates == {"name": "ana"}
    assert f.model_dump()["sort"] == {"age": 1}


def test_find_kwargs_returns_mutable_copies():
    f = translate_query("name=ana&sort=age")
    kwargs = f.find_kwargs()

    kwargs["filter"]["role"] = "admin"

    assert kwargs["sort"] == [("age", 1)]
    assert f.predicates == {"name": "ana"}


def test_bytes_with_invalid_utf8_are_replaced():
    f = translate_query(b"name=\xff&age=3")

    assert f.predicates == {"name": "\ufffd", "age": "3"}


def test_find_kwargs():
    f = Filter(predicates={"a": 1}, sort={"b": -1}, limit=5, skip=10)

    assert f.find_kwargs() == {"filter": {"a": 1}, "sort": [("b", -1)], "limit": 5, "skip": 10}
    assert Filter().find_kwargs() == {"filter": {}}
