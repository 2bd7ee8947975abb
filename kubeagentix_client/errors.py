"""Exception types shared across the client."""

from __future__ import annotations


class AgentError(Exception):
    """A caller-visible failure of a turn.

    Raised by the transport when the agent rejects a request before any
    bytes stream, and built from ``error`` events reported by the agent.
    """

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"AgentError(code={self.code!r}, message={self.message!r}, "
            f"retryable={self.retryable}, status_code={self.status_code})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AgentError):
            return NotImplemented
        return (
            self.code == other.code
            and self.message == other.message
            and self.retryable == other.retryable
            and self.status_code == other.status_code
        )

    __hash__ = Exception.__hash__


class MalformedRecordError(ValueError):
    """A single event line could not be parsed."""
