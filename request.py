"""Request model and line-oriented request parser."""

from __future__ import annotations

import re
from dataclasses import dataclass

from config import DEFAULT_KEEP_ALIVE

CONNECTION_PARAM = "connection:"
KEEP_ALIVE_TOKEN = "keep-alive"
LINE_WHITESPACE = " \t\r\n\f"
_TOKEN_SEPARATOR = re.compile(r"[ \t\r\n\f]+")


class ProtocolError(ValueError):
    """Raised when the client sends lines the server refuses to interpret."""


class LineTooLongError(ProtocolError):
    """Raised when a protocol line exceeds MAX_LINE_BYTES."""


@dataclass(frozen=True, slots=True)
class Request:
    method: str
    path: str
    keep_alive: bool = DEFAULT_KEEP_ALIVE


@dataclass(frozen=True, slots=True)
class StartOfRequest:
    method: str
    path: str


@dataclass(frozen=True, slots=True)
class HeaderParam:
    name: str
    value: str | None = None

    def connection_keep_alive(self) -> bool | None:
        """Return the persistence requested by a Connection line, else None."""
        if self.name.lower() != CONNECTION_PARAM or self.value is None:
            return None
        return self.value.lower() == KEEP_ALIVE_TOKEN


@dataclass(frozen=True, slots=True)
class EndOfHeader:
    pass


@dataclass(frozen=True, slots=True)
class ConnectionClosed:
    pass


ParsedLine = StartOfRequest | HeaderParam | EndOfHeader | ConnectionClosed


def tokenize(line: str) -> list[str]:
    """Split on ASCII whitespace only; other code points stay inside tokens."""
    stripped = line.strip(LINE_WHITESPACE)
    if not stripped:
        return []
    return _TOKEN_SEPARATOR.split(stripped)


def parse_line(line: str | None, *, new_header: bool) -> ParsedLine:
    """Classify one protocol line; None means the stream has ended."""
    if line is None:
        return ConnectionClosed()

    tokens = tokenize(line)
    if new_header:
        if len(tokens) < 2:
            raise ProtocolError(f"Malformed request line: {line!r}")
        return StartOfRequest(method=tokens[0].upper(), path=tokens[1].lower())

    if not tokens:
        return EndOfHeader()
    value = tokens[1] if len(tokens) > 1 else None
    return HeaderParam(name=tokens[0], value=value)


class RequestBuilder:
    """Accumulates one header block into a Request."""

    def __init__(self, start: StartOfRequest, *, keep_alive: bool = DEFAULT_KEEP_ALIVE) -> None:
        self.method = start.method
        self.path = start.path
        self.keep_alive = keep_alive

    def apply(self, param: HeaderParam) -> None:
        requested = param.connection_keep_alive()
        if requested is not None:
            self.keep_alive = requested

    def build(self) -> Request:
        return Request(method=self.method, path=self.path, keep_alive=self.keep_alive)
