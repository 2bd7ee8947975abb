"""CLI JSON-lines adapter — sends text from argv/stdin, prints events as JSON."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

from kubeagentix_client import create_session
from kubeagentix_client.session.state import TurnPhase


async def run_cli(text: str, conversation_id: str | None = None) -> int:
    async with create_session(conversation_id=conversation_id) as session:
        if conversation_id:
            await session.resume(conversation_id)

        session.subscribe(
            lambda event: print(json.dumps(event.model_dump(mode="json", by_alias=True)), flush=True)
        )
        phase = await session.send_message(text)

        snapshot = session.session
        print(json.dumps({
            "conversationId": snapshot.conversation_id,
            "phase": phase.value if phase else None,
            "messages": [m.model_dump(mode="json", by_alias=True) for m in snapshot.messages],
            "error": None if snapshot.last_error is None else {
                "code": snapshot.last_error.code,
                "message": snapshot.last_error.message,
                "retryable": snapshot.last_error.retryable,
            },
        }), flush=True)
        return 1 if phase is TurnPhase.ERRORED else 0


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    conversation_id = os.environ.get("AGENT_CONVERSATION_ID") or None
    if len(sys.argv) > 1:
        text = " ".join(sys.argv[1:])
    else:
        raw = sys.stdin.read().strip()
        if not raw:
            print("Usage: kubeagentix-chat <text>  OR  echo '{\"text\":\"...\"}' | kubeagentix-chat", file=sys.stderr)
            sys.exit(1)
        try:
            data = json.loads(raw)
            text = data.get("text", raw)
            conversation_id = data.get("conversationId", conversation_id)
        except (json.JSONDecodeError, AttributeError):
            text = raw

    sys.exit(asyncio.run(run_cli(text, conversation_id)))


if __name__ == "__main__":
    main()
