"""Session state machine — owns the canonical in-memory conversation.

Turn lifecycle::

    idle → sending → streaming → {completed, errored, cancelled} → idle

Everything here is synchronous. The facade feeds decoded events in arrival
order; this module only decides how each one changes the conversation.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum

from kubeagentix_client.errors import AgentError
from kubeagentix_client.session.models import (
    AnyEvent,
    CompleteEvent,
    ErrorEvent,
    Message,
    RequestContext,
    Session,
    StoredConversation,
    TextEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallEvent,
    ToolResult,
    ToolResultEvent,
    UnknownEvent,
    new_conversation_id,
    now_ms,
)

logger = logging.getLogger(__name__)

_turn_ids = itertools.count(1)


class TurnPhase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnPhase.COMPLETED, TurnPhase.ERRORED, TurnPhase.CANCELLED)


@dataclass
class Turn:
    """Per-turn scratch state. Nothing here reaches history until completion."""

    conversation_id: str
    id: int = field(default_factory=lambda: next(_turn_ids))
    phase: TurnPhase = TurnPhase.SENDING
    accumulator: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    committed: bool = False  # completion appended an assistant message
    error: AgentError | None = None

    @property
    def text(self) -> str:
        return "".join(self.accumulator)


class SessionStateMachine:
    def __init__(self, conversation_id: str | None = None) -> None:
        self._conversation_id = conversation_id or new_conversation_id()
        self._messages: list[Message] = []
        self._tool_calls: list[ToolCall] = []
        self._tool_results: list[ToolResult] = []
        self._current_tool: ToolCall | None = None
        self._last_error: AgentError | None = None
        self._active: Turn | None = None
        self._created_at = now_ms()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def is_loading(self) -> bool:
        return self._active is not None

    @property
    def phase(self) -> TurnPhase:
        return self._active.phase if self._active is not None else TurnPhase.IDLE

    @property
    def active_turn(self) -> Turn | None:
        return self._active

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def snapshot(self) -> Session:
        return Session(
            conversation_id=self._conversation_id,
            messages=list(self._messages),
            is_loading=self.is_loading,
            current_tool=self._current_tool,
            last_error=self._last_error,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_turn(self, text: str) -> Turn | None:
        """idle → sending. Returns ``None`` (and changes nothing) if rejected."""
        if not text.strip():
            return None
        if self._active is not None:
            logger.warning(
                "Ignoring send on %s: turn %d is still %s",
                self._conversation_id, self._active.id, self._active.phase.value,
            )
            return None

        self._messages.append(Message(role="user", content=text, timestamp=now_ms()))
        self._last_error = None
        self._active = Turn(conversation_id=self._conversation_id)
        logger.debug("turn=%d sending (history=%d)", self._active.id, len(self._messages))
        return self._active

    def mark_streaming(self, turn: Turn) -> None:
        if self._owns(turn) and turn.phase is TurnPhase.SENDING:
            turn.phase = TurnPhase.STREAMING

    def apply(self, turn: Turn, event: AnyEvent) -> bool:
        """Integrate one event. Returns True once the turn is terminal."""
        if not self._owns(turn):
            return True
        if turn.phase is TurnPhase.SENDING:
            turn.phase = TurnPhase.STREAMING

        if isinstance(event, TextEvent):
            if event.text:
                turn.accumulator.append(event.text)
        elif isinstance(event, ToolCallEvent):
            if event.tool_call is not None:
                self._current_tool = event.tool_call
                turn.tool_calls.append(event.tool_call)
        elif isinstance(event, ToolResultEvent):
            if event.tool_result is not None:
                turn.tool_results.append(event.tool_result)
        elif isinstance(event, CompleteEvent):
            self._complete(turn)
        elif isinstance(event, ErrorEvent):
            if event.error is not None:
                self.fail(turn, event.error.to_agent_error())
        elif isinstance(event, (ThinkingEvent, UnknownEvent)):
            pass  # observers only
        return turn.phase.is_terminal

    def fail(self, turn: Turn, error: AgentError) -> None:
        """Any non-terminal phase → errored. History stays as it was."""
        if not self._owns(turn):
            return
        self._last_error = error
        turn.error = error
        self._finish(turn, TurnPhase.ERRORED)
        logger.info("turn=%d errored: %s %s", turn.id, error.code, error.message)

    def cancel(self, turn: Turn) -> bool:
        """sending|streaming → cancelled. Not an error: ``last_error`` is untouched."""
        if not self._owns(turn):
            return False
        self._finish(turn, TurnPhase.CANCELLED)
        logger.info("turn=%d cancelled", turn.id)
        return True

    def end_of_stream(self, turn: Turn) -> None:
        """The body ended without ``complete``/``error``: close the turn, commit nothing."""
        if not self._owns(turn):
            return
        logger.warning(
            "turn=%d stream ended without a terminal event (%d chars discarded)",
            turn.id, len(turn.text),
        )
        self._finish(turn, TurnPhase.COMPLETED)

    def reset(self, conversation_id: str | None = None) -> str:
        """Start a fresh conversation. Any active turn is abandoned."""
        if self._active is not None:
            self._finish(self._active, TurnPhase.CANCELLED)
        self._conversation_id = conversation_id or new_conversation_id()
        self._messages = []
        self._tool_calls = []
        self._tool_results = []
        self._last_error = None
        self._created_at = now_ms()
        return self._conversation_id

    def restore(self, conversation: StoredConversation) -> None:
        """Resume a persisted conversation. Only valid while idle."""
        if self._active is not None:
            raise RuntimeError("cannot restore a conversation while a turn is in flight")
        self._conversation_id = conversation.id
        self._messages = list(conversation.messages)
        self._tool_calls = list(conversation.tool_calls)
        self._tool_results = list(conversation.tool_results)
        self._current_tool = None
        self._last_error = None
        self._created_at = conversation.created_at

    # ------------------------------------------------------------------
    # Persistence projection
    # ------------------------------------------------------------------

    def to_stored(self, user_id: str, context: RequestContext) -> StoredConversation:
        return StoredConversation(
            id=self._conversation_id,
            user_id=user_id,
            tenant_id=context.tenant_id,
            cluster=context.cluster,
            namespace=context.namespace,
            selected_resources=context.selected_resources,
            messages=list(self._messages),
            tool_calls=list(self._tool_calls),
            tool_results=list(self._tool_results),
            outcome="in_progress",
            created_at=self._created_at,
            last_updated_at=now_ms(),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _owns(self, turn: Turn) -> bool:
        return self._active is turn and not turn.phase.is_terminal

    def _complete(self, turn: Turn) -> None:
        text = turn.text
        if text:
            self._messages.append(Message(role="assistant", content=text, timestamp=now_ms()))
            self._tool_calls.extend(turn.tool_calls)
            self._tool_results.extend(turn.tool_results)
            turn.committed = True
        self._finish(turn, TurnPhase.COMPLETED)
        logger.info(
            "turn=%d completed (committed=%s, history=%d)",
            turn.id, turn.committed, len(self._messages),
        )

    def _finish(self, turn: Turn, phase: TurnPhase) -> None:
        turn.phase = phase
        self._current_tool = None
        if self._active is turn:
            self._active = None
