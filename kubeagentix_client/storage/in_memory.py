"""Dict-backed KV store — suitable for single-process dev/test."""

from __future__ import annotations

import copy
from typing import Any

from kubeagentix_client.storage.interface import KVStore, StoreUnavailableError


class InMemoryKVStore(KVStore):
    def __init__(
        self,
        name: str = "memory",
        entries: dict[str, dict[str, Any]] | None = None,
        available: bool = True,
    ) -> None:
        self.name = name
        self._entries: dict[str, dict[str, Any]] = dict(entries or {})
        self._available = available
        self.put_count = 0

    def _check(self) -> None:
        if not self._available:
            raise StoreUnavailableError(f"store {self.name!r} is unavailable")

    async def get(self, key: str) -> dict[str, Any] | None:
        self._check()
        value = self._entries.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def get_all(self) -> list[tuple[str, dict[str, Any]]]:
        self._check()
        return [(k, copy.deepcopy(v)) for k, v in self._entries.items()]

    async def put(self, key: str, value: dict[str, Any]) -> None:
        self._check()
        self._entries[key] = copy.deepcopy(value)
        self.put_count += 1

    def __len__(self) -> int:
        return len(self._entries)
