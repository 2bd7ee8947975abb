"""FastAPI demo agent — streams canned NDJSON turns for local development.

Speaks the same wire protocol as the real agent endpoint, so the client can
be exercised end to end without the server-side orchestration.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from kubeagentix_client.session.models import (
    CompleteEvent,
    ResponseSummary,
    TextEvent,
    ThinkingEvent,
    now_ms,
)
from kubeagentix_client.session.transport import INVOKE_PATH

logger = logging.getLogger(__name__)


def _invalid(message: str) -> JSONResponse:
    return JSONResponse({"error": message, "code": "INVALID_REQUEST"}, status_code=400)


def _line(event: Any) -> str:
    return json.dumps(event.model_dump(mode="json", by_alias=True, exclude_none=True)) + "\n"


def demo_reply(messages: list[dict[str, Any]]) -> str:
    last_user = next(
        (m.get("content", "") for m in reversed(messages) if isinstance(m, dict) and m.get("role") == "user"),
        "",
    )
    return f"Demo agent received: {last_user}"


def create_app() -> FastAPI:
    app = FastAPI(title="KubeAgentiX demo agent", version="0.1.0")

    @app.post(INVOKE_PATH)
    async def invoke(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return _invalid("Request body is not valid JSON")
        if not isinstance(body, dict):
            return _invalid("Request body must be a JSON object")

        if not body.get("conversationId"):
            return _invalid("Missing conversationId")
        messages = body.get("messages") or []
        if not isinstance(messages, list) or not messages:
            return _invalid("No messages provided")
        context = body.get("context") or {}
        if not isinstance(context, dict) or not (context.get("cluster") or context.get("clusterContext")):
            return _invalid("Missing cluster in context")

        reply = demo_reply(messages)

        async def ndjson_stream():
            t0 = time.time()
            yield _line(ThinkingEvent(chunk_id=str(uuid.uuid4()), timestamp=now_ms(), content="Reading the request"))
            words = reply.split(" ")
            for i, word in enumerate(words):
                token_text = word if i == len(words) - 1 else word + " "
                yield _line(TextEvent(chunk_id=str(uuid.uuid4()), timestamp=now_ms(), text=token_text))
            yield _line(CompleteEvent(
                chunk_id=str(uuid.uuid4()),
                timestamp=now_ms(),
                summary=ResponseSummary(
                    tool_call_count=0,
                    execution_time_ms=round((time.time() - t0) * 1000, 2),
                ),
            ))
            yield "\n"

        return StreamingResponse(
            ndjson_stream(),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache"},
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


# Module-level instance for ``uvicorn kubeagentix_client.adapters.web_fastapi.app:app``
app = create_app()


def serve() -> None:
    """Entry-point for ``kubeagentix-demo-agent`` console script."""
    import uvicorn

    uvicorn.run(
        "kubeagentix_client.adapters.web_fastapi.app:app",
        host="127.0.0.1",
        port=8080,
        log_level="info",
    )
