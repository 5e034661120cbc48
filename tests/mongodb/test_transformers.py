# tests/mongodb/test_transformers.py

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from async_mongo_source.mongodb import transformers
from async_mongo_source.mongodb.transformers import TRANSFORMERS

OID = "5f1d7f3b9c8b4a2d3e4f5a6b"


@pytest.mark.parametrize(
    "name, value",
    [
        ("object_id", OID),
        ("object_id_array", [OID, OID]),
        ("date", datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)),
        ("timestamp", datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)),
        ("array_to_string", ["a", "b", "c"]),
        ("object_to_json", {"a": 1, "b": [1, 2]}),
        ("boolean_to_number", True),
        ("boolean_to_number", False),
    ],
)
def test_symmetric_transformers_round_trip(name, value):
    transformer = TRANSFORMERS[name]
    assert transformer.from_(transformer.to(value)) == value


def test_object_id_conversion():
    assert transformers.object_id.to(OID) == ObjectId(OID)
    assert transformers.object_id.from_(ObjectId(OID)) == OID
    assert transformers.object_id.to(None) is None


def test_timestamp_stores_milliseconds_and_treats_naive_as_utc():
    naive = datetime(1970, 1, 1, 0, 0, 1)
    assert transformers.timestamp.to(naive) == 1000
    assert transformers.timestamp.from_(1000) == datetime(
        1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc
    )


def test_cents_rounds_to_whole_cents():
    assert transformers.cents.to(12.345) == 1234
    assert transformers.cents.to(19.99) == 1999
    assert transformers.cents.from_(1999) == 19.99


def test_string_transformers_are_one_way():
    assert transformers.lowercase.to("MiXed") == "mixed"
    assert transformers.uppercase.to("MiXed") == "MIXED"
    assert transformers.trim.to("  padded  ") == "padded"
    assert transformers.lowercase.from_("mixed") == "mixed"


def test_boolean_to_number_reads_other_numbers_as_false():
    assert transformers.boolean_to_number.to(True) == 1
    assert transformers.boolean_to_number.from_(2) is False


def test_unexpected_types_pass_through():
    assert transformers.date.to("not a date") == "not a date"
    assert transformers.cents.to("12") == "12"
    assert transformers.object_to_json.from_("{not json") == "{not json"
    assert transformers.array_to_string.from_("") == ""
