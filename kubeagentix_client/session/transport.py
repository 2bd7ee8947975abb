"""Stream transport — ABC, httpx implementation, and a test mock."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

import httpx

from kubeagentix_client.errors import AgentError
from kubeagentix_client.session.models import AgentRequest

logger = logging.getLogger(__name__)

INVOKE_PATH = "/api/agent/invoke"

_RETRYABLE_STATUSES = frozenset({408, 429})


class StreamTransport(ABC):
    """Sends one turn request and yields the raw response body.

    Implementations raise ``AgentError`` when the agent rejects the request
    before any bytes stream. Closing the iterator early (``aclose``) must
    release the underlying connection.
    """

    @abstractmethod
    def stream(self, request: AgentRequest) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None:
        return None


# ---------------------------------------------------------------------------
# httpx implementation
# ---------------------------------------------------------------------------

class HttpxStreamTransport(StreamTransport):
    def __init__(
        self,
        base_url: str,
        path: str = INVOKE_PATH,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def stream(self, request: AgentRequest) -> AsyncIterator[bytes]:
        try:
            async with self._client.stream(
                "POST",
                self._url,
                json=request.to_wire(),
                headers={"Accept": "application/x-ndjson"},
            ) as resp:
                if resp.is_error:
                    await resp.aread()
                    raise AgentError(
                        "AGENT_ERROR",
                        f"Agent request failed: {resp.reason_phrase or resp.status_code}",
                        retryable=resp.status_code >= 500 or resp.status_code in _RETRYABLE_STATUSES,
                        status_code=resp.status_code,
                    )
                logger.debug("stream open %s (%d)", self._url, resp.status_code)
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            raise AgentError("NETWORK_ERROR", f"Agent stream failed: {exc}", retryable=True) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Test mock — deterministic, pre-loaded chunks
# ---------------------------------------------------------------------------

class MockStreamTransport(StreamTransport):
    """Yields pre-configured byte chunks for every request. Used in unit tests.

    If *pause_after* is set, the stream blocks after that many chunks until
    ``release()`` is called, which lets a test cancel mid-read.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        error: AgentError | None = None,
        pause_after: int | None = None,
    ) -> None:
        self._chunks = list(chunks or [])
        self._error = error
        self._pause_after = pause_after
        self._release = asyncio.Event()
        self.requests: list[AgentRequest] = []
        self.closed_streams = 0

    def release(self) -> None:
        self._release.set()

    async def stream(self, request: AgentRequest) -> AsyncIterator[bytes]:
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        try:
            for i, chunk in enumerate(self._chunks):
                if self._pause_after is not None and i == self._pause_after:
                    await self._release.wait()
                yield chunk
                await asyncio.sleep(0)
        finally:
            self.closed_streams += 1

    @property
    def call_count(self) -> int:
        return len(self.requests)
