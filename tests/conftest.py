"""Shared fixtures for kubeagentix_client tests."""

from __future__ import annotations

import json

import pytest

from kubeagentix_client.session.client import AgentSession
from kubeagentix_client.session.models import RequestContext
from kubeagentix_client.session.transport import MockStreamTransport
from kubeagentix_client.storage.conversations import (
    LEGACY_STORE_NAME,
    PRIMARY_STORE_NAME,
    ConversationStore,
)
from kubeagentix_client.storage.in_memory import InMemoryKVStore
from kubeagentix_client.tracing.jsonl_tracer import JSONLTraceCollector


def _ndjson(*records: dict) -> bytes:
    return "".join(json.dumps(r) + "\n" for r in records).encode("utf-8")


@pytest.fixture
def ndjson():
    """Serialize records the way the agent endpoint does: one JSON object per line."""
    return _ndjson


@pytest.fixture
def primary_kv():
    return InMemoryKVStore(PRIMARY_STORE_NAME)


@pytest.fixture
def legacy_kv():
    return InMemoryKVStore(LEGACY_STORE_NAME)


@pytest.fixture
def conversation_store(primary_kv, legacy_kv):
    return ConversationStore(primary=primary_kv, legacy=legacy_kv)


@pytest.fixture
def trace_collector(tmp_path):
    return JSONLTraceCollector(trace_dir=str(tmp_path / "traces"))


@pytest.fixture
def make_session(conversation_store, trace_collector):
    """Factory: ``make_session(transport, **kwargs) -> AgentSession``."""

    def _make(transport: MockStreamTransport, **kwargs) -> AgentSession:
        kwargs.setdefault("user_id", "user-123")
        kwargs.setdefault("context", RequestContext(cluster="prod-eu", namespace="default"))
        return AgentSession(
            transport,
            conversation_store,
            trace_collector=trace_collector,
            **kwargs,
        )

    return _make
