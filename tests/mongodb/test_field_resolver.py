# tests/mongodb/test_field_resolver.py

from dataclasses import dataclass, field as dataclass_field
from typing import List

import pytest
from bson import ObjectId
from pydantic import BaseModel, Field

from async_mongo_source.base.conditions import RawCondition, field
from async_mongo_source.mongodb import transformers
from async_mongo_source.mongodb.field_resolver import (FieldMapping,
                                                       MongoFieldResolver)

OID = "5f1d7f3b9c8b4a2d3e4f5a6b"


@pytest.fixture
def resolver() -> MongoFieldResolver:
    return MongoFieldResolver(
        [
            FieldMapping("id", "_id", transformers.object_id),
            FieldMapping("created_at", "createdAt"),
            FieldMapping("price", "price_cents", transformers.cents),
            FieldMapping("address", "addr"),
        ]
    )


def test_mapped_and_unmapped_field_names(resolver):
    assert resolver.resolve_field("created_at") == "createdAt"
    assert resolver.resolve_field("name") == "name"
    assert resolver.resolve_database_field("created_at").storage_name == "createdAt"
    assert resolver.resolve_database_field("name") is None


def test_dotted_paths_map_their_first_segment(resolver):
    assert resolver.resolve_field("address.city") == "addr.city"
    assert resolver.resolve_field("other.city") == "other.city"


def test_values_use_the_field_transformer(resolver):
    assert resolver.resolve_value("price", 19.99) == 1999
    assert resolver.resolve_value("price", 1999, to_storage=False) == 19.99
    assert resolver.resolve_value("name", "x") == "x"


def test_mapping_dict_form():
    resolver = MongoFieldResolver(
        {
            "email": {"name": "mail", "transformer": "lowercase"},
            "tags": {"transformer": (lambda v: "|".join(v), lambda v: v.split("|"))},
        }
    )
    assert resolver.resolve_field("email") == "mail"
    assert resolver.resolve_value("email", "A@B.COM") == "a@b.com"
    assert resolver.resolve_field("tags") == "tags"
    assert resolver.resolve_value("tags", ["a", "b"]) == "a|b"


def test_unknown_transformer_name_is_rejected():
    with pytest.raises(ValueError):
        MongoFieldResolver({"email": {"transformer": "rot13"}})


def test_resolve_condition_renames_and_converts(resolver):
    where = (field("price") > 10) & field("id").in_([OID])
    resolved = resolver.resolve_condition(where)

    assert resolved.conditions[0].field == "price_cents"
    assert resolved.conditions[0].value == 1000
    assert resolved.conditions[1].field == "_id"
    assert resolved.conditions[1].value == [ObjectId(OID)]


def test_resolve_condition_keeps_pattern_values(resolver):
    resolved = resolver.resolve_condition(field("id").like("507f%"))

    assert resolved.field == "_id"
    assert resolved.value == "507f%"


def test_resolve_condition_leaves_raw_filters_alone(resolver):
    raw = RawCondition({"created_at": 1})
    assert resolver.resolve_condition(raw) is raw
    assert resolver.resolve_condition(None) is None


def test_resolve_object_walks_update_operators(resolver):
    update = {
        "$set": {"created_at": "2024-01-01", "price": 2.5},
        "$push": {"address.lines": {"$each": ["a"]}},
    }
    assert resolver.resolve_object(update) == {
        "$set": {"createdAt": "2024-01-01", "price_cents": 250},
        "$push": {"addr.lines": {"$each": ["a"]}},
    }


def test_resolve_object_converts_operator_lists(resolver):
    assert resolver.resolve_object({"price": {"$in": [1, 2]}}) == {
        "price_cents": {"$in": [100, 200]}
    }


def test_resolve_sort(resolver):
    assert resolver.resolve_sort([("created_at", -1), ("name", 1)]) == [
        ("createdAt", -1),
        ("name", 1),
    ]
    assert resolver.resolve_sort(None) is None


def test_document_round_trip(resolver):
    entity = {"id": OID, "price": 12.5, "name": "widget"}
    document = resolver.transform_to_document(entity)

    assert document == {"_id": ObjectId(OID), "price_cents": 1250, "name": "widget"}
    assert resolver.transform_to_entity(document) == entity


class Product(BaseModel):
    id: str = Field(alias="_id", json_schema_extra={"transformer": "object_id"})
    name: str
    created_at: str = Field(alias="createdAt")


@dataclass
class Order:
    id: str = dataclass_field(metadata={"name": "_id"})
    total: float = dataclass_field(default=0, metadata={"transformer": "cents"})
    items: List[str] = dataclass_field(default_factory=list)


def test_from_pydantic_model_uses_aliases():
    resolver = MongoFieldResolver.from_model(Product)
    mappings = resolver.get_field_mappings()

    assert set(mappings) == {"id", "created_at"}
    assert resolver.resolve_field("created_at") == "createdAt"
    assert resolver.resolve_value("id", OID) == ObjectId(OID)


def test_from_dataclass_uses_field_metadata():
    resolver = MongoFieldResolver.from_model(Order)

    assert resolver.resolve_field("id") == "_id"
    assert resolver.resolve_field("total") == "total"
    assert resolver.resolve_value("total", 1.5) == 150
    assert resolver.resolve_database_field("items") is None


def test_from_model_rejects_plain_classes():
    class Plain:
        pass

    with pytest.raises(TypeError):
        MongoFieldResolver.from_model(Plain)
