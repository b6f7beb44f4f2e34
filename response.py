"""Status table and response head serialization."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple

from config import SERVER_NAME

PROTOCOL = "HTTP/1.1"
HTML_START = "<html><body><b>"
HTML_END = "</b></body></html>"


class StatusCode(IntEnum):
    OK = 200
    MOVED_PERMANENTLY = 301
    FORBIDDEN = 403
    NOT_FOUND = 404
    UNSUPPORTED_MEDIA_TYPE = 415
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class StatusInfo(NamedTuple):
    reason: str
    message: str | None


STATUS_TABLE: dict[StatusCode, StatusInfo] = {
    StatusCode.OK: StatusInfo("OK", None),
    StatusCode.MOVED_PERMANENTLY: StatusInfo("Moved Permanently", None),
    StatusCode.FORBIDDEN: StatusInfo("Forbidden", "HTTP method not supported"),
    StatusCode.NOT_FOUND: StatusInfo("Not Found", "File not found"),
    StatusCode.UNSUPPORTED_MEDIA_TYPE: StatusInfo(
        "Unsupported Media Type",
        "The server does not support this file type",
    ),
    StatusCode.INTERNAL_SERVER_ERROR: StatusInfo(
        "Internal Server Error",
        "There was an internal error with the server.",
    ),
    StatusCode.SERVICE_UNAVAILABLE: StatusInfo(
        "Service Unavailable",
        "The server is too busy to accept this connection",
    ),
}


def html_message(text: str) -> str:
    return f"{HTML_START}{text}{HTML_END}"


def default_body(status: StatusCode) -> str:
    """HTML body for a status that carries a fixed message."""
    message = STATUS_TABLE[status].message
    if message is None:
        raise ValueError(f"Status {int(status)} has no default body")
    return html_message(message)


def server_identification(secure: bool) -> str:
    channel = "(secure)" if secure else "(plaintext)"
    return f"{SERVER_NAME} {channel}"


@dataclass(frozen=True, slots=True)
class ResponseHead:
    status: StatusCode
    secure: bool
    content_type: str
    content_length: int
    keep_alive: bool
    location: str | None = None

    def to_bytes(self) -> bytes:
        """Serialize the status line and headers, ending with the blank line."""
        lines = [f"{PROTOCOL} {int(self.status)} {STATUS_TABLE[self.status].reason}"]
        if self.location is not None:
            lines.append(f"Location: {self.location}")
        lines.append(f"Server: {server_identification(self.secure)}")
        lines.append(f"Content-Type: {self.content_type}")
        lines.append(f"Content-Length: {self.content_length}")
        lines.append(f"Connection: {'keep-alive' if self.keep_alive else 'close'}")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1", errors="replace")
