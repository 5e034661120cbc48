"""
Stock value transformers for field mappings.

Each transformer converts a domain value to its stored form (`to`) and back
(`from_`). Values of an unexpected type are returned unchanged.

Symmetric, so `from_(to(v)) == v`: object_id, object_id_array, date,
timestamp (millisecond precision, timezone aware), array_to_string (for
items without commas) and object_to_json.

Lossy, not invertible: lowercase, uppercase and trim keep the stored form on
read; cents rounds to whole cents; boolean_to_number reads any number other
than 1 as False.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple

from bson import ObjectId


class PropertyTransformer(NamedTuple):
    to: Callable[[Any], Any]
    from_: Callable[[Any], Any]


def _to_object_id(value: Any) -> Any:
    if not value or isinstance(value, ObjectId):
        return value
    return ObjectId(value)


def _from_object_id(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    return value


def _to_object_id_array(value: Any) -> Any:
    if not isinstance(value, (list, tuple)):
        return value
    return [_to_object_id(item) for item in value]


def _from_object_id_array(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    return [_from_object_id(item) for item in value]


def _to_iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _from_iso(value: Any) -> Any:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return value


def _to_timestamp(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(round(value.timestamp() * 1000))
    return value


def _from_timestamp(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


def _to_joined(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return value


def _from_joined(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    return [item for item in value.split(",") if item.strip()]


def _to_json(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _from_json(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def _to_number(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _from_number(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return value


def _to_cents(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return int(round(value * 100))


def _from_cents(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return value / 100


def _string_op(op: Callable[[str], str]) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        if isinstance(value, str):
            return op(value)
        return value

    return apply


def _identity(value: Any) -> Any:
    return value


object_id = PropertyTransformer(_to_object_id, _from_object_id)
object_id_array = PropertyTransformer(_to_object_id_array, _from_object_id_array)
date = PropertyTransformer(_to_iso, _from_iso)
timestamp = PropertyTransformer(_to_timestamp, _from_timestamp)
array_to_string = PropertyTransformer(_to_joined, _from_joined)
object_to_json = PropertyTransformer(_to_json, _from_json)
boolean_to_number = PropertyTransformer(_to_number, _from_number)
lowercase = PropertyTransformer(_string_op(str.lower), _identity)
uppercase = PropertyTransformer(_string_op(str.upper), _identity)
cents = PropertyTransformer(_to_cents, _from_cents)
trim = PropertyTransformer(_string_op(str.strip), _identity)

TRANSFORMERS = {
    "object_id": object_id,
    "object_id_array": object_id_array,
    "date": date,
    "timestamp": timestamp,
    "array_to_string": array_to_string,
    "object_to_json": object_to_json,
    "boolean_to_number": boolean_to_number,
    "lowercase": lowercase,
    "uppercase": uppercase,
    "cents": cents,
    "trim": trim,
}
