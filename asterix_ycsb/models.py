from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple


class Status(str, Enum):
    OK = "OK"
    BATCHED_OK = "BATCHED_OK"
    ERROR = "ERROR"


class ResultPhase(str, Enum):
    BEFORE_RESULTS = "BEFORE_RESULTS"
    INSIDE_RESULTS = "INSIDE_RESULTS"


@dataclass(frozen=True)
class TableSchema:
    primary_key: str
    # Non-key fields, sorted by name
    fields: Tuple[str, ...]
    field_types: Dict[str, str] = field(default_factory=dict)


@dataclass
class OpStats:
    ok: int = 0
    batched: int = 0
    errors: int = 0

    def record(self, status: Status) -> None:
        if status is Status.OK:
            self.ok += 1
        elif status is Status.BATCHED_OK:
            self.batched += 1
        else:
            self.errors += 1

    def merge(self, other: "OpStats") -> None:
        self.ok += other.ok
        self.batched += other.batched
        self.errors += other.errors
