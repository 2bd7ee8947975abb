"""kubeagentix_client — streaming session client for the KubeAgentiX agent endpoint.

Usage::

    from kubeagentix_client import create_session

    async with create_session() as session:
        session.subscribe(print)
        await session.send_message("Which namespaces can I access?")
        print(session.session.messages)
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from kubeagentix_client.errors import AgentError
from kubeagentix_client.session.client import AgentSession
from kubeagentix_client.session.models import (
    AnyEvent,
    Message,
    ModelPreferences,
    RequestContext,
    Session,
    StoredConversation,
    ToolPreferences,
)
from kubeagentix_client.session.state import TurnPhase
from kubeagentix_client.session.transport import HttpxStreamTransport
from kubeagentix_client.storage.conversations import (
    LEGACY_STORE_NAME,
    PRIMARY_STORE_NAME,
    ConversationStore,
)
from kubeagentix_client.storage.sqlite import SqliteKVStore
from kubeagentix_client.tracing.jsonl_tracer import JSONLTraceCollector

__all__ = [
    "AgentError",
    "AgentSession",
    "AnyEvent",
    "ConversationStore",
    "Message",
    "ModelPreferences",
    "RequestContext",
    "Session",
    "StoredConversation",
    "ToolPreferences",
    "TurnPhase",
    "create_session",
]


def create_session(
    *,
    endpoint: str | None = None,
    user_id: str | None = None,
    data_dir: str | None = None,
    trace_dir: str | None = None,
    conversation_id: str | None = None,
    context: RequestContext | None = None,
) -> AgentSession:
    """Wire all components and return an AgentSession (call ``start()`` or use ``async with``).

    Environment variables (all optional):
      AGENT_ENDPOINT   — default ``http://localhost:8080``
      AGENT_USER_ID    — default ``anonymous``
      AGENT_DATA_DIR   — conversation store directory, default ``./data``
      AGENT_TRACE_DIR  — default ``./traces``
      AGENT_PROVIDER   — model provider id, default ``claude``
      AGENT_MODEL      — provider-specific model name
      AGENT_CLUSTER / AGENT_NAMESPACE — default request scope
    """
    endpoint = endpoint or os.environ.get("AGENT_ENDPOINT", "http://localhost:8080")
    user_id = user_id or os.environ.get("AGENT_USER_ID", "anonymous")
    data_dir = data_dir or os.environ.get("AGENT_DATA_DIR", "./data")
    trace_dir = trace_dir or os.environ.get("AGENT_TRACE_DIR", "./traces")

    if context is None:
        context = RequestContext(
            cluster=os.environ.get("AGENT_CLUSTER", "default"),
            namespace=os.environ.get("AGENT_NAMESPACE", "default"),
        )

    # -- components --
    transport = HttpxStreamTransport(endpoint)
    store = ConversationStore(
        primary=SqliteKVStore(data_dir, PRIMARY_STORE_NAME),
        legacy=SqliteKVStore(data_dir, LEGACY_STORE_NAME, read_only=True),
    )
    model_preferences = ModelPreferences(
        provider_id=os.environ.get("AGENT_PROVIDER", "claude"),
        model=os.environ.get("AGENT_MODEL") or None,
    )

    return AgentSession(
        transport,
        store,
        user_id=user_id,
        conversation_id=conversation_id,
        context=context,
        model_preferences=model_preferences,
        trace_collector=JSONLTraceCollector(trace_dir),
    )
