"""AgentSession — the facade UI callers talk to."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Callable

from kubeagentix_client.errors import AgentError
from kubeagentix_client.session.decoder import ChunkDecoder
from kubeagentix_client.session.dispatcher import EventDispatcher, Observer
from kubeagentix_client.session.models import (
    AgentRequest,
    AnyEvent,
    Message,
    ModelPreferences,
    RequestContext,
    Session,
    StoredConversation,
    ToolPreferences,
)
from kubeagentix_client.session.state import SessionStateMachine, Turn, TurnPhase
from kubeagentix_client.session.transport import StreamTransport
from kubeagentix_client.storage.conversations import ConversationStore
from kubeagentix_client.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)


@dataclass
class _TurnRun:
    turn: Turn
    request: AgentRequest
    trace_id: str
    decoder: ChunkDecoder
    started: float
    events: int = 0
    record: StoredConversation | None = None


class AgentSession:
    """Public API: ``await session.send_message(text)``; watch events with ``subscribe``.

    One instance per conversation surface. Each turn opens a stream through
    the transport, decodes it, fans events out to observers, and lets the
    state machine integrate them in arrival order. The only suspension point
    is the next network read.
    """

    def __init__(
        self,
        transport: StreamTransport,
        store: ConversationStore | None = None,
        *,
        user_id: str = "anonymous",
        conversation_id: str | None = None,
        context: RequestContext | None = None,
        tool_preferences: ToolPreferences | None = None,
        model_preferences: ModelPreferences | None = None,
        trace_collector: TraceCollector | None = None,
        on_complete: Callable[[list[Message]], Any] | None = None,
        on_error: Callable[[AgentError], Any] | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._user_id = user_id
        self._state = SessionStateMachine(conversation_id)
        self._dispatcher = EventDispatcher()
        self._context = context or RequestContext()
        self._tool_prefs = tool_preferences or ToolPreferences()
        self._model_prefs = model_preferences or ModelPreferences()
        self._trace = trace_collector
        self._on_complete = on_complete
        self._on_error = on_error
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the store and run the one-time legacy migration."""
        if self._store is not None:
            await self._store.start()
            await self._store.migrate_legacy()

    async def aclose(self) -> None:
        self.cancel()
        if self._store is not None:
            await self._store.stop()
        await self._transport.aclose()

    async def __aenter__(self) -> AgentSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._state.snapshot()

    @property
    def conversation_id(self) -> str:
        return self._state.conversation_id

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def phase(self) -> TurnPhase:
        return self._state.phase

    @property
    def context(self) -> RequestContext:
        return self._context

    def set_context(self, context: RequestContext) -> bool:
        """Replace the context unless it is structurally the same. Returns True if replaced."""
        if self._context.same_scope(context):
            return False
        self._context = context
        return True

    @property
    def tool_preferences(self) -> ToolPreferences:
        return self._tool_prefs

    def set_tool_preferences(self, preferences: ToolPreferences) -> None:
        self._tool_prefs = preferences

    @property
    def model_preferences(self) -> ModelPreferences:
        return self._model_prefs

    def set_model_preferences(self, preferences: ModelPreferences) -> None:
        self._model_prefs = preferences

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(observer)

    def build_request(self) -> AgentRequest:
        return AgentRequest(
            conversation_id=self._state.conversation_id,
            user_id=self._user_id,
            tenant_id=self._context.tenant_id,
            messages=self._state.messages,
            context=self._context,
            tool_preferences=self._tool_prefs,
            model_preferences=self._model_prefs,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> TurnPhase | None:
        """Run one turn to its terminal phase.

        Returns ``None`` if the message was rejected (blank, or a turn is
        already in flight), otherwise the phase the turn ended in.
        """
        turn = self._state.begin_turn(text)
        if turn is None:
            return None

        run = _TurnRun(
            turn=turn,
            request=self.build_request(),
            trace_id=f"{turn.conversation_id}-{turn.id}",
            decoder=ChunkDecoder(),
            started=time.time(),
        )
        self._emit_trace(run.trace_id, "turn_start", {
            "conversation_id": turn.conversation_id,
            "history": len(run.request.messages),
        })

        task = asyncio.ensure_future(self._run_turn(run))
        self._task = task
        try:
            # wait() only raises when the caller itself is cancelled; a turn
            # cancelled through cancel() just completes the task.
            await asyncio.wait({task})
        except asyncio.CancelledError:
            self._state.cancel(turn)
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None
            self._emit_trace(run.trace_id, "turn_done", {
                "outcome": turn.phase.value,
                "committed": turn.committed,
                "events": run.events,
                "malformed": run.decoder.malformed_count,
                "latency_ms": round((time.time() - run.started) * 1000, 2),
            })
            await self._flush_trace(run.trace_id)

        if task.cancelled():
            self._state.cancel(turn)
        else:
            task.result()
        return turn.phase

    def cancel(self) -> bool:
        """Abort the in-flight turn, if any. Partial text is discarded."""
        turn = self._state.active_turn
        if turn is None or not self._state.cancel(turn):
            return False
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        return True

    def clear_history(self) -> str:
        """Start over with a fresh conversation id and empty history."""
        self.cancel()
        return self._state.reset()

    async def resume(self, conversation_id: str) -> bool:
        """Load a stored conversation into this session. Returns False if not found."""
        if self._store is None:
            return False
        stored = await self._store.get(conversation_id)
        if stored is None:
            return False
        self.cancel()
        self._state.restore(stored)
        return True

    # ------------------------------------------------------------------
    # Turn internals
    # ------------------------------------------------------------------

    async def _run_turn(self, run: _TurnRun) -> None:
        turn = run.turn
        try:
            async with aclosing(self._transport.stream(run.request)) as chunks:
                async for chunk in chunks:
                    self._state.mark_streaming(turn)
                    if self._integrate(run, run.decoder.feed(chunk)):
                        break
                else:
                    self._integrate(run, run.decoder.finish())
        except AgentError as exc:
            self._state.fail(turn, exc)
        except Exception as exc:
            logger.exception("turn=%d failed unexpectedly", turn.id)
            self._state.fail(turn, AgentError("UNKNOWN_ERROR", str(exc), retryable=True))

        if not turn.phase.is_terminal:
            self._state.end_of_stream(turn)

        if turn.phase is TurnPhase.ERRORED and turn.error is not None:
            await self._notify(self._on_error, turn.error)
        elif run.record is not None:
            if self._store is not None:
                await self._store.save(run.record)
            await self._notify(self._on_complete, list(run.record.messages))

    def _integrate(self, run: _TurnRun, events: list[AnyEvent]) -> bool:
        """Dispatch and apply *events* in order. True once the turn is terminal."""
        turn = run.turn
        for event in events:
            if turn.phase.is_terminal:
                return True
            run.events += 1
            self._emit_trace(run.trace_id, "event", {"type": event.type, "chunk_id": event.chunk_id})
            self._dispatcher.dispatch(event)
            if turn.phase.is_terminal:
                return True
            if self._state.apply(turn, event):
                if turn.committed:
                    run.record = self._state.to_stored(self._user_id, run.request.context)
                return True
        return turn.phase.is_terminal

    async def _notify(self, callback: Callable[..., Any] | None, arg: Any) -> None:
        """Run a completion/error callback; coroutine callbacks are awaited."""
        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Session callback %r failed", callback)

    def _emit_trace(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        if self._trace is not None:
            self._trace.emit(trace_id, event_type, data)

    async def _flush_trace(self, trace_id: str) -> None:
        if self._trace is None:
            return
        try:
            await self._trace.flush(trace_id)
        except OSError as exc:
            logger.warning("Failed to write trace %s: %s", trace_id, exc)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
