"""Error taxonomy shared by the request handlers and the data feeds."""

from __future__ import annotations

from aiocoap import (
    INTERNAL_SERVER_ERROR,
    METHOD_NOT_ALLOWED,
    NOT_FOUND,
    UNSUPPORTED_CONTENT_FORMAT,
    Message,
)

TEXT_PLAIN = 0


class StationError(Exception):
    """Base class; carries the CoAP code a client sees when this error reaches it."""

    code = INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_message(self) -> Message:
        return Message(
            code=self.code,
            payload=self.message.encode("utf-8"),
            content_format=TEXT_PLAIN,
        )


class RoutingError(StationError):
    code = NOT_FOUND
    default_message = "File not found"


class MethodError(StationError):
    code = METHOD_NOT_ALLOWED

    def __init__(self, allowed: tuple[str, ...]) -> None:
        self.allowed = allowed
        super().__init__(f"Methods other than {', '.join(allowed)} are disallowed")


class NegotiationError(StationError):
    code = UNSUPPORTED_CONTENT_FORMAT

    def __init__(self, required: str) -> None:
        self.required = required
        super().__init__(f"Accept header must be {required}")


class DataUnavailableError(StationError):
    code = NOT_FOUND
    default_message = "No data available"


class MalformedInputError(StationError):
    """Raised by feed parsers; never reaches a client."""

    default_message = "Malformed input"


class TransportError(StationError):
    """A stream or registry exchange failed."""

    default_message = "Transport failure"
