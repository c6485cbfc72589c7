from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


@dataclass(frozen=True)
class Bar:
    time: int  # epoch seconds, UTC
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class QueryStatus(str, Enum):
    OK = "ok"
    NO_DATA = "no_data"
    ERROR = "error"
