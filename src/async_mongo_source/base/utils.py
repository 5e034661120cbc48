import inspect
import logging
from dataclasses import is_dataclass, asdict
from typing import Any

logger = logging.getLogger(__name__)


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and containers to storage-compatible formats.

    It handles:
    - Pydantic BaseModel instances with field aliases
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item)
    - Pydantic URL types (converting to strings)

    Native store values (ObjectId, datetime) are returned unchanged, so the
    result can be handed straight to the driver.

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    # Handle dataclasses
    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Handle Pydantic models. Python mode keeps ObjectId and datetime intact.
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump(by_alias=True))

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_for_storage(item) for item in data)

    if isinstance(data, set):
        return [prepare_for_storage(item) for item in data]

    # Pydantic URL types and other special types
    if data.__class__.__module__.startswith("pydantic.networks"):
        return str(data)

    return data


async def maybe_await(value: Any) -> Any:
    """Awaits `value` when the driver handed back an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value
