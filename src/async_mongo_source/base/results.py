from dataclasses import dataclass, field
from typing import Any, List, Literal

Status = Literal["success", "failure"]


@dataclass
class UpdateStats:
    status: Status
    modified_count: int = 0
    upserted_count: int = 0
    upserted_ids: List[Any] = field(default_factory=list)


@dataclass
class RemoveStats:
    status: Status
    deleted_count: int = 0
