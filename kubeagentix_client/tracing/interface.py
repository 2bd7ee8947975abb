"""TraceCollector ABC — no internal deps."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class TraceCollector(ABC):
    """Collects advisory per-turn telemetry (event ids, timings, outcomes)."""

    @abstractmethod
    def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def flush(self, trace_id: str) -> None: ...
