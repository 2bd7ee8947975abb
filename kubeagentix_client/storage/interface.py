"""Key-value store interface — one instance per store identifier."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StoreUnavailableError(RuntimeError):
    """The backing store does not exist or cannot be opened."""


class KVStore(ABC):
    """Async get/put by key over JSON-compatible values.

    Swap to another embedded store by implementing this ABC.
    """

    name: str

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def get_all(self) -> list[tuple[str, dict[str, Any]]]: ...

    @abstractmethod
    async def put(self, key: str, value: dict[str, Any]) -> None: ...
