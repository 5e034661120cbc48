import re
from typing import Any, Iterable, List, Optional

from pymongo import UpdateMany, UpdateOne
from pymongo.errors import BulkWriteError, PyMongoError

UPDATE_OPERATORS = frozenset(
    {
        "$currentDate",
        "$inc",
        "$min",
        "$max",
        "$mul",
        "$rename",
        "$set",
        "$setOnInsert",
        "$unset",
        "$addToSet",
        "$pop",
        "$pull",
        "$push",
        "$pullAll",
        "$bit",
    }
)

DUPLICATE_KEY_CODES = frozenset({11000, 11001, 12582})
DOCUMENT_VALIDATION_FAILURE_CODE = 121

_QUOTED = re.compile(r'"([^"]+)"')
_DUP_KEY = re.compile(r"dup key: \{\s*[^:]*:\s*(.+?)\s*\}")


def contains_update_operators(data: Any) -> bool:
    """True when `data` is an update document keyed by update operators."""
    if not isinstance(data, dict):
        return False
    return any(key in UPDATE_OPERATORS for key in data)


def is_bulk_update(operations: Iterable[Any]) -> bool:
    return all(isinstance(op, (UpdateOne, UpdateMany)) for op in operations)


def error_codes(error: BaseException) -> List[int]:
    """Native codes carried by a driver error; bulk errors report one per failed item."""
    if isinstance(error, BulkWriteError):
        details = error.details or {}
        codes = [e.get("code") for e in details.get("writeErrors", [])]
        codes += [
            e.get("code") for e in [details.get("writeConcernError")] if e
        ]
        return [code for code in codes if code is not None]
    code = getattr(error, "code", None)
    return [code] if code is not None else []


def is_duplicate_error(error: BaseException) -> bool:
    return any(code in DUPLICATE_KEY_CODES for code in error_codes(error))


def is_invalid_data_error(error: BaseException) -> bool:
    return DOCUMENT_VALIDATION_FAILURE_CODE in error_codes(error)


def _ids_from_text(message: str) -> List[Any]:
    quoted = _QUOTED.findall(message)
    if quoted:
        return quoted
    match = _DUP_KEY.search(message)
    if match:
        return [match.group(1).strip("'\" ")]
    return []


def get_duplicated_document_ids(error: PyMongoError) -> List[Any]:
    """
    Best-effort extraction of the values that violated a unique index.

    Structured `keyValue` details win; otherwise the error text is scraped,
    and as a last resort the `_id` of the rejected document is used.
    """
    ids: List[Any] = []
    if isinstance(error, BulkWriteError):
        for write_error in (error.details or {}).get("writeErrors", []):
            if write_error.get("code") not in DUPLICATE_KEY_CODES:
                continue
            ids.extend(_ids_from_write_error(write_error))
        return ids

    details = getattr(error, "details", None) or {}
    ids = _ids_from_write_error({"errmsg": str(error), **details})
    return ids


def _ids_from_write_error(write_error: dict) -> List[Any]:
    key_value: Optional[dict] = write_error.get("keyValue")
    if key_value:
        return list(key_value.values())
    ids = _ids_from_text(write_error.get("errmsg") or "")
    if ids:
        return ids
    op = write_error.get("op")
    if isinstance(op, dict) and "_id" in op:
        return [op["_id"]]
    return []
