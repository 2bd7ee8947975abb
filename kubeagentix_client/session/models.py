"""Core data models — wire records, request scoping, and session snapshots.

Only Pydantic + stdlib. Wire names are camelCase (``conversationId``,
``chunkId``, ``toolCall``); Python attributes are snake_case. All timestamps
are epoch milliseconds, matching what the agent endpoint emits.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from kubeagentix_client.errors import AgentError, MalformedRecordError


def now_ms() -> int:
    return int(time.time() * 1000)


def new_conversation_id() -> str:
    return f"conv-{now_ms()}-{uuid.uuid4().hex[:10]}"


class WireModel(BaseModel):
    """Base for everything that crosses the wire or lands in storage."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Message(WireModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: int | None = None


# ---------------------------------------------------------------------------
# Request scoping & preferences
# ---------------------------------------------------------------------------

class RequestContext(WireModel):
    """Scoping fields attached to every turn.

    Unknown fields are kept so newer servers can add scope keys without a
    client release.
    """

    model_config = ConfigDict(extra="allow")

    cluster: str = "default"
    namespace: str = "default"
    cluster_context: str | None = None
    scope_id: str | None = None
    working_namespace: str | None = None
    workspace_id: str | None = None
    tenant_id: str | None = None
    integration_profile_id: str | None = None
    environment: Literal["dev", "stage", "prod", "unknown"] | None = None
    client_label: str | None = None
    selected_resources: list[str] | None = None  # e.g. ["pod/xyz", "service/abc"]
    time_range: str | None = None  # e.g. "1h", "24h", "7d"

    def same_scope(self, other: RequestContext | None) -> bool:
        """Content equality over every field; a missing resource list equals ``[]``."""
        if other is None:
            return False
        mine = self.model_dump(exclude={"selected_resources"})
        theirs = other.model_dump(exclude={"selected_resources"})
        if mine != theirs:
            return False
        return list(self.selected_resources or []) == list(other.selected_resources or [])


class ToolPreferences(WireModel):
    model_config = ConfigDict(frozen=True)

    selected_tools: list[str] | None = None
    excluded_tools: list[str] | None = None
    max_tool_calls: int = Field(default=5, ge=0)  # per turn
    tool_timeout: int | None = None  # ms, per tool


class ModelPreferences(WireModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str | None = "claude"  # claude_code | claude | openai | gemini | ollama
    model: str | None = None
    api_key: str | None = None
    auth_token: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)
    use_extended_thinking: bool | None = None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class ToolCall(WireModel):
    """A single tool invocation requested by the agent."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(WireModel):
    call_id: str
    tool_name: str
    success: bool
    result: Any = None
    error: str | None = None
    execution_time_ms: float | None = None


class ResponseSummary(WireModel):
    tool_call_count: int = 0
    execution_time_ms: float = 0
    tokens_used: int | None = None


class ErrorPayload(WireModel):
    code: str
    message: str
    retryable: bool = False

    def to_agent_error(self) -> AgentError:
        return AgentError(self.code, self.message, self.retryable)


# ---------------------------------------------------------------------------
# Inbound events (agent → client)
# ---------------------------------------------------------------------------

class _EventBase(WireModel):
    chunk_id: str = ""
    timestamp: float = 0


class ThinkingEvent(_EventBase):
    type: Literal["thinking"] = "thinking"
    content: str = ""


class ToolCallEvent(_EventBase):
    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall | None = None


class ToolResultEvent(_EventBase):
    type: Literal["tool_result"] = "tool_result"
    tool_result: ToolResult | None = None


class TextEvent(_EventBase):
    type: Literal["text"] = "text"
    text: str = ""
    is_done: bool | None = None


class CompleteEvent(_EventBase):
    type: Literal["complete"] = "complete"
    summary: ResponseSummary | None = None


class ErrorEvent(_EventBase):
    type: Literal["error"] = "error"
    error: ErrorPayload | None = None


class UnknownEvent(_EventBase):
    """Any tag this client does not know yet. Raw fields are preserved."""

    model_config = ConfigDict(extra="allow")

    type: str


ResponseEvent = Annotated[
    Union[ThinkingEvent, ToolCallEvent, ToolResultEvent, TextEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

AnyEvent = Union[
    ThinkingEvent, ToolCallEvent, ToolResultEvent, TextEvent, CompleteEvent, ErrorEvent, UnknownEvent,
]

KNOWN_EVENT_TYPES = frozenset({"thinking", "tool_call", "tool_result", "text", "complete", "error"})

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(ResponseEvent)


def parse_event(line: str) -> AnyEvent:
    """Parse one serialized record into a typed event.

    Raises ``MalformedRecordError`` for anything that is not a JSON object
    with a string ``type``, or a known type whose payload does not validate.
    """
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(f"invalid JSON: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise MalformedRecordError("record is not an object with a string 'type'")

    if raw["type"] not in KNOWN_EVENT_TYPES:
        return UnknownEvent.model_validate(raw)

    try:
        return _EVENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise MalformedRecordError(f"invalid {raw['type']} payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Outbound request (client → agent)
# ---------------------------------------------------------------------------

class AgentRequest(WireModel):
    conversation_id: str
    user_id: str
    tenant_id: str | None = None
    messages: list[Message]
    context: RequestContext
    tool_preferences: ToolPreferences | None = None
    model_preferences: ModelPreferences | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Session snapshot & persisted projection
# ---------------------------------------------------------------------------

class Session(BaseModel):
    """Read-only view of the conversation handed to callers."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    conversation_id: str
    messages: list[Message] = Field(default_factory=list)
    is_loading: bool = False
    current_tool: ToolCall | None = None
    last_error: AgentError | None = None


class StoredConversation(WireModel):
    id: str
    user_id: str
    tenant_id: str | None = None

    cluster: str
    namespace: str | None = None
    selected_resources: list[str] | None = None

    messages: list[Message] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)

    outcome: Literal["resolved", "partial", "failed", "in_progress"] = "in_progress"
    resolution_time_ms: int | None = None

    feedback_score: int | None = Field(default=None, ge=1, le=5)
    user_feedback: str | None = None

    created_at: int = Field(default_factory=now_ms)
    resolved_at: int | None = None
    last_updated_at: int = Field(default_factory=now_ms)
