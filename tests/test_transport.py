"""Tests for HttpxStreamTransport and the demo agent app."""

from __future__ import annotations

import json

import httpx
import pytest

from kubeagentix_client.adapters.web_fastapi.app import create_app, demo_reply
from kubeagentix_client.errors import AgentError
from kubeagentix_client.session.client import AgentSession
from kubeagentix_client.session.models import AgentRequest, Message, RequestContext
from kubeagentix_client.session.state import TurnPhase
from kubeagentix_client.session.transport import INVOKE_PATH, HttpxStreamTransport


def _request(**overrides) -> AgentRequest:
    fields = dict(
        conversation_id="conv-1",
        user_id="user-123",
        messages=[Message(role="user", content="hello")],
        context=RequestContext(cluster="prod-eu"),
    )
    fields.update(overrides)
    return AgentRequest(**fields)


def _transport(handler) -> HttpxStreamTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxStreamTransport("http://agent.test/", client=client)


async def _collect(transport: HttpxStreamTransport, request: AgentRequest) -> bytes:
    return b"".join([chunk async for chunk in transport.stream(request)])


class TestHttpxStreamTransport:
    async def test_posts_wire_body_and_yields_bytes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["accept"] = request.headers["accept"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b'{"type":"complete"}\n')

        body = await _collect(_transport(handler), _request())

        assert body == b'{"type":"complete"}\n'
        assert seen["url"] == "http://agent.test" + INVOKE_PATH
        assert seen["accept"] == "application/x-ndjson"
        assert seen["body"]["conversationId"] == "conv-1"
        assert seen["body"]["context"]["cluster"] == "prod-eu"

    @pytest.mark.parametrize("status, retryable", [(500, True), (503, True), (429, True), (400, False), (403, False)])
    async def test_http_error_status(self, status, retryable):
        transport = _transport(lambda request: httpx.Response(status, json={"error": "nope"}))

        with pytest.raises(AgentError) as excinfo:
            await _collect(transport, _request())

        assert excinfo.value.code == "AGENT_ERROR"
        assert excinfo.value.status_code == status
        assert excinfo.value.retryable is retryable
        assert excinfo.value.message.startswith("Agent request failed")

    async def test_connection_failure_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AgentError) as excinfo:
            await _collect(_transport(handler), _request())

        assert excinfo.value.code == "NETWORK_ERROR"
        assert excinfo.value.retryable is True

    async def test_borrowed_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = HttpxStreamTransport("http://agent.test", client=client)

        await transport.aclose()

        assert not client.is_closed
        await client.aclose()


class TestDemoAgent:
    def _transport(self) -> HttpxStreamTransport:
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()))
        return HttpxStreamTransport("http://demo", client=client)

    def test_demo_reply_echoes_last_user_message(self):
        messages = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
        ]
        assert demo_reply(messages) == "Demo agent received: second"

    async def test_session_round_trip(self, conversation_store):
        session = AgentSession(
            self._transport(),
            conversation_store,
            user_id="user-123",
            context=RequestContext(cluster="kind-local"),
        )
        received = []
        session.subscribe(lambda e: received.append(e.type))

        phase = await session.send_message("hello")

        assert phase is TurnPhase.COMPLETED
        assert session.session.messages[-1].content == "Demo agent received: hello"
        assert received[0] == "thinking"
        assert received[-1] == "complete"
        assert await conversation_store.get(session.conversation_id) is not None

    @pytest.mark.parametrize("body, message", [
        ({"messages": [{"role": "user", "content": "hi"}], "context": {"cluster": "c"}}, "Missing conversationId"),
        ({"conversationId": "conv-1", "messages": [], "context": {"cluster": "c"}}, "No messages provided"),
        ({"conversationId": "conv-1", "messages": [{"role": "user", "content": "hi"}], "context": {}},
         "Missing cluster in context"),
    ])
    async def test_invalid_requests_are_rejected(self, body, message):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()), base_url="http://demo") as c:
            resp = await c.post(INVOKE_PATH, json=body)

        assert resp.status_code == 400
        assert resp.json() == {"error": message, "code": "INVALID_REQUEST"}

    @pytest.mark.parametrize("content, message", [
        (b"{not json", "Request body is not valid JSON"),
        (b'[{"conversationId": "conv-1"}]', "Request body must be a JSON object"),
        (b'{"conversationId": "conv-1", "messages": [{"role": "user"}], "context": []}',
         "Missing cluster in context"),
    ])
    async def test_malformed_bodies_are_rejected(self, content, message):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()), base_url="http://demo") as c:
            resp = await c.post(INVOKE_PATH, content=content, headers={"Content-Type": "application/json"})

        assert resp.status_code == 400
        assert resp.json() == {"error": message, "code": "INVALID_REQUEST"}

    async def test_rejection_surfaces_as_agent_error(self):
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()))
        transport = HttpxStreamTransport("http://demo", client=client)

        with pytest.raises(AgentError) as excinfo:
            await _collect(transport, _request(conversation_id=""))

        assert excinfo.value.status_code == 400
        assert excinfo.value.retryable is False

    async def test_health(self):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()), base_url="http://demo") as c:
            resp = await c.get("/health")
        assert resp.json() == {"status": "ok"}
