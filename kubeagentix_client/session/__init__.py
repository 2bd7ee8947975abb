from kubeagentix_client.session.models import (
    AgentRequest,
    AnyEvent,
    CompleteEvent,
    ErrorEvent,
    Message,
    ModelPreferences,
    RequestContext,
    ResponseSummary,
    Session,
    StoredConversation,
    TextEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallEvent,
    ToolPreferences,
    ToolResult,
    ToolResultEvent,
    UnknownEvent,
    parse_event,
)
from kubeagentix_client.session.decoder import ChunkDecoder, decode_stream
from kubeagentix_client.session.dispatcher import EventDispatcher
from kubeagentix_client.session.state import SessionStateMachine, Turn, TurnPhase
from kubeagentix_client.session.transport import HttpxStreamTransport, MockStreamTransport, StreamTransport
from kubeagentix_client.session.client import AgentSession

__all__ = [
    "AgentRequest",
    "AgentSession",
    "AnyEvent",
    "ChunkDecoder",
    "CompleteEvent",
    "ErrorEvent",
    "EventDispatcher",
    "HttpxStreamTransport",
    "Message",
    "MockStreamTransport",
    "ModelPreferences",
    "RequestContext",
    "ResponseSummary",
    "Session",
    "SessionStateMachine",
    "StoredConversation",
    "StreamTransport",
    "TextEvent",
    "ThinkingEvent",
    "ToolCall",
    "ToolCallEvent",
    "ToolPreferences",
    "ToolResult",
    "ToolResultEvent",
    "Turn",
    "TurnPhase",
    "UnknownEvent",
    "decode_stream",
    "parse_event",
]
