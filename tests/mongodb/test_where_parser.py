# tests/mongodb/test_where_parser.py

import pytest
from bson import ObjectId

from async_mongo_source.base.conditions import (CompositeCondition, Condition,
                                                ConditionOperator,
                                                RawCondition, and_, field, or_)
from async_mongo_source.base.exceptions import UnsupportedOperatorError
from async_mongo_source.mongodb.where_parser import (DEFAULT_OPERATOR_MAPPING,
                                                     MongoWhereParser,
                                                     like_to_regex)

OID = "5f1d7f3b9c8b4a2d3e4f5a6b"


@pytest.fixture
def parser() -> MongoWhereParser:
    return MongoWhereParser()


def test_no_condition_compiles_to_empty_filter(parser):
    assert parser.parse(None) == {}


def test_raw_condition_passes_through(parser):
    raw = {"$where": "this.a > this.b"}
    assert parser.parse(RawCondition(raw)) == raw


@pytest.mark.parametrize(
    "condition, expected",
    [
        (field("age") == 30, {"age": {"$eq": 30}}),
        (field("age") != 30, {"age": {"$ne": 30}}),
        (field("age") > 30, {"age": {"$gt": 30}}),
        (field("age") >= 30, {"age": {"$gte": 30}}),
        (field("age") < 30, {"age": {"$lt": 30}}),
        (field("age") <= 30, {"age": {"$lte": 30}}),
        (field("status").in_(["a", "b"]), {"status": {"$in": ["a", "b"]}}),
        (field("status").nin(["x"]), {"status": {"$nin": ["x"]}}),
    ],
)
def test_comparison_operators(parser, condition, expected):
    assert parser.parse(condition) == expected


def test_between_is_inclusive_range(parser):
    assert parser.parse(field("age").between(18, 65)) == {
        "age": {"$gte": 18, "$lte": 65}
    }


def test_between_requires_two_bounds(parser):
    with pytest.raises(ValueError):
        parser.parse(Condition("age", ConditionOperator.BETWEEN, [1, 2, 3]))
    with pytest.raises(ValueError):
        parser.parse(Condition("age", ConditionOperator.BETWEEN, 5))


def test_boolean_and_null_checks(parser):
    assert parser.parse(field("active").is_true()) == {"active": {"$eq": True}}
    assert parser.parse(field("active").is_false()) == {"active": {"$eq": False}}
    assert parser.parse(field("deleted_at").is_null()) == {"deleted_at": {"$eq": None}}
    assert parser.parse(field("deleted_at").is_not_null()) == {
        "deleted_at": {"$ne": None}
    }


def test_emptiness_checks_cover_string_array_and_object(parser):
    assert parser.parse(field("tags").is_empty()) == {
        "$or": [
            {"tags": {"$eq": ""}},
            {"tags": {"$eq": []}},
            {"tags": {"$eq": {}}},
        ]
    }
    assert parser.parse(field("tags").is_not_empty()) == {
        "$and": [
            {"tags": {"$ne": ""}},
            {"tags": {"$ne": []}},
            {"tags": {"$ne": {}}},
        ]
    }


@pytest.mark.parametrize(
    "pattern, expected",
    [
        ("abc", "^abc$"),
        ("abc%", "^abc"),
        ("%abc", "abc$"),
        ("%abc%", "abc"),
        ("a_c", "^a.c$"),
        ("a%c", "^a.*c$"),
        ("a.c", "^a\\.c$"),
    ],
)
def test_like_to_regex(pattern, expected):
    assert like_to_regex(pattern) == expected


def test_like_is_case_insensitive_by_default(parser):
    assert parser.parse(field("name").like("Jo%")) == {
        "name": {"$regex": "^Jo", "$options": "i"}
    }


def test_like_case_sensitive_parser():
    parser = MongoWhereParser(case_insensitive=False)
    assert parser.parse(field("name").like("%son")) == {"name": {"$regex": "son$"}}


def test_fulltext(parser):
    assert parser.parse(field("body").fulltext("coffee")) == {
        "$text": {"$search": "coffee"}
    }
    assert parser.parse(field("body").fulltext("café", language="fr")) == {
        "$text": {"$search": "café", "$language": "fr"}
    }


def test_json_extract_addresses_nested_path(parser):
    assert parser.parse(field("meta").json_extract("$.color", "red")) == {
        "meta.color": {"$eq": "red"}
    }
    assert parser.parse(field("meta").json_extract("size.width", 3)) == {
        "meta.size.width": {"$eq": 3}
    }


def test_array_contains_requires_all_items(parser):
    assert parser.parse(field("tags").array_contains(["a", "b"])) == {
        "tags": {"$all": ["a", "b"]}
    }
    assert parser.parse(field("tags").array_contains("a")) == {"tags": {"$all": ["a"]}}


def test_in_rejects_scalar_values(parser):
    with pytest.raises(ValueError):
        parser.parse(Condition("status", ConditionOperator.IN, "abc"))


def test_composite_conditions_nest(parser):
    where = and_(field("age") >= 18, or_(field("status") == "a", field("vip").is_true()))
    assert parser.parse(where) == {
        "$and": [
            {"age": {"$gte": 18}},
            {"$or": [{"status": {"$eq": "a"}}, {"vip": {"$eq": True}}]},
        ]
    }


def test_composite_order_is_preserved(parser):
    where = (field("b") == 2) & (field("a") == 1)
    assert parser.parse(where) == {"$and": [{"b": {"$eq": 2}}, {"a": {"$eq": 1}}]}


def test_unknown_operator_raises(parser):
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        parser.parse(Condition("age", "regexp", ".*"))
    assert exc_info.value.operator == "regexp"


def test_unknown_junction_raises(parser):
    composite = CompositeCondition([field("a") == 1], "xor")
    with pytest.raises(UnsupportedOperatorError):
        parser.parse(composite)


def test_custom_operator_table_limits_supported_operators():
    operators = {ConditionOperator.EQ: "$eq"}
    parser = MongoWhereParser(operators=operators)
    assert parser.parse(field("a") == 1) == {"a": {"$eq": 1}}
    with pytest.raises(UnsupportedOperatorError):
        parser.parse(field("a") > 1)


def test_default_operator_table_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_OPERATOR_MAPPING[ConditionOperator.EQ] = "$ne"


def test_id_fields_are_coerced_to_object_ids(parser):
    assert parser.parse(field("_id") == OID) == {"_id": {"$eq": ObjectId(OID)}}
    assert parser.parse(field("id").in_([OID, "not-an-id"])) == {
        "id": {"$in": [ObjectId(OID), "not-an-id"]}
    }
    assert parser.parse(field("owner._id") == OID) == {
        "owner._id": {"$eq": ObjectId(OID)}
    }


def test_other_fields_keep_hex_strings(parser):
    assert parser.parse(field("code") == OID) == {"code": {"$eq": OID}}


def test_like_on_id_field_is_not_coerced(parser):
    assert parser.parse(field("_id").like(OID)) == {
        "_id": {"$regex": f"^{OID}$", "$options": "i"}
    }
