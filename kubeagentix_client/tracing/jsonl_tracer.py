"""JSONL file-based trace collector."""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any

from kubeagentix_client.tracing.interface import TraceCollector


class JSONLTraceCollector(TraceCollector):
    """Writes trace entries to ``./traces/{trace_id}.jsonl``.

    ``emit`` only buffers, so it is safe to call from inside event dispatch.
    Entries are written when the turn finishes and ``flush`` is awaited.
    """

    def __init__(self, trace_dir: str = "./traces") -> None:
        self._dir = Path(trace_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._buffers: dict[str, list[dict[str, Any]]] = {}

    def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        entry = {
            "ts": time.time(),
            "trace_id": trace_id,
            "event": event_type,
            **data,
        }
        self._buffers.setdefault(trace_id, []).append(entry)

    async def flush(self, trace_id: str) -> None:
        entries = self._buffers.pop(trace_id, [])
        if not entries:
            return
        await asyncio.to_thread(self._write, self._dir / f"{trace_id}.jsonl", entries)

    @staticmethod
    def _write(path: Path, entries: list[dict[str, Any]]) -> None:
        with open(path, "a") as f:
            for entry in entries:
                f.write(json.dumps(entry, default=str) + "\n")
