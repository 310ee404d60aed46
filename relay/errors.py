"""Relay errors."""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for failures handled inside the relay."""


class MalformedFrame(RelayError):
    """Raised when an inbound websocket frame cannot be decoded."""


class MalformedPayload(RelayError):
    """Raised when event attributes are missing or carry unparsable JSON."""

    @classmethod
    def missing(cls, *keys: str) -> MalformedPayload:
        return cls(f"missing event attribute(s): {', '.join(keys)}")

    @classmethod
    def invalid_json(cls, key: str, detail: object) -> MalformedPayload:
        return cls(f"attribute {key} is not valid JSON: {detail}")


class NotFound(RelayError):
    """Raised when a remote lookup has no record (or no name) for a key."""


class UpstreamError(RelayError):
    """Raised when a remote lookup fails or returns malformed data."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DeliveryError(RelayError):
    """Raised when the chat API rejects or fails a message."""
