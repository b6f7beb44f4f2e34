"""Low-level connection reads and response writes."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import threading
from pathlib import Path
from typing import BinaryIO, Protocol

from config import CONTENT_ROOT, MAX_LINE_BYTES, WRITE_CHUNK_SIZE
from request import LineTooLongError, Request
from resolver import FilePayload, Outcome, RedirectPayload
from response import ResponseHead, StatusCode, default_body

logger = logging.getLogger(__name__)


class FileStreamError(OSError):
    """Raised when a cataloged file cannot be opened for a response."""

    def __init__(self, file_path: Path, cause: OSError) -> None:
        super().__init__(f"Cannot open {file_path}: {cause}")
        self.file_path = file_path
        self.cause = cause


class ResponseSink(Protocol):
    secure: bool

    def send(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class ClientConnection:
    """One accepted client stream: line reader, byte writer, secure flag."""

    def __init__(
        self,
        sock: socket.socket,
        address: tuple[str, int],
        *,
        secure: bool,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self.address = address
        self.secure = secure
        self._sock = sock
        self._reader: BinaryIO = sock.makefile("rb")
        self._max_line_bytes = max_line_bytes
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def peer(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    def read_line(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream."""
        raw = self._reader.readline(self._max_line_bytes + 1)
        if not raw:
            return None
        if len(raw) > self._max_line_bytes and not raw.endswith(b"\n"):
            raise LineTooLongError(f"Line exceeded {self._max_line_bytes} bytes")
        return raw.decode("utf-8", errors="surrogateescape").rstrip("\r\n")

    def send(self, data: bytes) -> None:
        self._sock.sendall(data)

    def interrupt(self) -> None:
        """Unblock a pending read from another thread."""
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        with contextlib.suppress(OSError):
            self._reader.close()
        self.interrupt()
        self._sock.close()


def write_response(
    connection: ResponseSink,
    outcome: Outcome,
    request: Request,
    *,
    content_root: str | Path = CONTENT_ROOT,
    write_chunk_size: int = WRITE_CHUNK_SIZE,
) -> int:
    """Write the head and body for one outcome and return the bytes sent.

    The connection is closed afterwards unless the request asked to keep it.
    """
    payload = outcome.payload
    send_body = request.method != "HEAD"
    location: str | None = None
    body = b""
    file_obj: BinaryIO | None = None
    open_error: FileStreamError | None = None

    if isinstance(payload, RedirectPayload):
        location = payload.target
        content_length = 0
    elif isinstance(payload, FilePayload):
        content_length = len(payload.path)
        file_path = Path(content_root) / payload.path
        try:
            file_obj = file_path.open("rb")
            content_length = os.fstat(file_obj.fileno()).st_size
        except OSError as exc:
            open_error = FileStreamError(file_path, exc)
    else:
        body = payload.text.encode("utf-8")
        content_length = len(body)

    head = ResponseHead(
        status=outcome.status,
        secure=connection.secure,
        content_type=outcome.content_type,
        content_length=content_length,
        keep_alive=request.keep_alive,
        location=location,
    ).to_bytes()

    bytes_sent = 0
    try:
        connection.send(head)
        bytes_sent += len(head)
        if open_error is not None:
            raise open_error from open_error.cause

        if file_obj is not None:
            if send_body:
                while True:
                    chunk = file_obj.read(write_chunk_size)
                    if not chunk:
                        break
                    connection.send(chunk)
                    bytes_sent += len(chunk)
        elif body and send_body:
            connection.send(body)
            bytes_sent += len(body)
    finally:
        if file_obj is not None:
            file_obj.close()

    if not request.keep_alive:
        connection.close()
    return bytes_sent


def write_service_unavailable(sock: socket.socket) -> None:
    """Refuse a plaintext connection the worker pool has no room for."""
    body = default_body(StatusCode.SERVICE_UNAVAILABLE).encode("utf-8")
    head = ResponseHead(
        status=StatusCode.SERVICE_UNAVAILABLE,
        secure=False,
        content_type="text/html",
        content_length=len(body),
        keep_alive=False,
    ).to_bytes()
    with sock:
        sock.sendall(head + body)
