"""Unit tests for response heads and the response writer."""

import socket
from pathlib import Path

import pytest

from request import Request
from resolver import FilePayload, Outcome, RedirectPayload, TextPayload
from response import ResponseHead, StatusCode, default_body, server_identification
from socket_handler import ClientConnection, FileStreamError, write_response


class RecordingConnection:
    def __init__(self, *, secure: bool = False) -> None:
        self.secure = secure
        self.sent: list[bytes] = []
        self.closed = False

    def send(self, data: bytes) -> None:
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True

    @property
    def raw(self) -> bytes:
        return b"".join(self.sent)


def _split(raw: bytes) -> tuple[list[str], bytes]:
    head, body = raw.split(b"\r\n\r\n", 1)
    return head.decode("iso-8859-1").split("\r\n"), body


def test_head_lists_headers_in_fixed_order() -> None:
    raw = ResponseHead(
        status=StatusCode.NOT_FOUND,
        secure=False,
        content_type="text/html",
        content_length=12,
        keep_alive=True,
    ).to_bytes()

    lines, body = _split(raw)

    assert lines == [
        "HTTP/1.1 404 Not Found",
        f"Server: {server_identification(False)}",
        "Content-Type: text/html",
        "Content-Length: 12",
        "Connection: keep-alive",
    ]
    assert body == b""


def test_redirect_head_puts_location_after_status_line() -> None:
    raw = ResponseHead(
        status=StatusCode.MOVED_PERMANENTLY,
        secure=True,
        content_type="text/html",
        content_length=0,
        keep_alive=False,
        location="/new",
    ).to_bytes()

    lines, _body = _split(raw)

    assert lines[0] == "HTTP/1.1 301 Moved Permanently"
    assert lines[1] == "Location: /new"
    assert lines[2] == f"Server: {server_identification(True)}"
    assert lines[-1] == "Connection: close"


def test_server_identification_reports_channel() -> None:
    assert "(secure)" in server_identification(True)
    assert "(plaintext)" in server_identification(False)


@pytest.mark.parametrize(
    ("status", "reason"),
    [
        (StatusCode.OK, "OK"),
        (StatusCode.MOVED_PERMANENTLY, "Moved Permanently"),
        (StatusCode.FORBIDDEN, "Forbidden"),
        (StatusCode.NOT_FOUND, "Not Found"),
        (StatusCode.UNSUPPORTED_MEDIA_TYPE, "Unsupported Media Type"),
        (StatusCode.INTERNAL_SERVER_ERROR, "Internal Server Error"),
    ],
)
def test_status_line_reason_phrases(status: StatusCode, reason: str) -> None:
    raw = ResponseHead(
        status=status,
        secure=False,
        content_type="text/html",
        content_length=0,
        keep_alive=True,
    ).to_bytes()

    assert raw.startswith(f"HTTP/1.1 {int(status)} {reason}\r\n".encode("ascii"))


def test_default_body_rejects_statuses_without_message() -> None:
    with pytest.raises(ValueError):
        default_body(StatusCode.OK)


def test_get_file_streams_exact_bytes_in_chunks(tmp_path: Path) -> None:
    content = bytes(range(256)) * 10
    (tmp_path / "logo.png").write_bytes(content)
    connection = RecordingConnection()
    outcome = Outcome(StatusCode.OK, FilePayload("logo.png"), content_type="image/png")

    sent = write_response(
        connection,
        outcome,
        Request(method="GET", path="/logo.png", keep_alive=True),
        content_root=tmp_path,
        write_chunk_size=1024,
    )

    lines, body = _split(connection.raw)
    assert "Content-Type: image/png" in lines
    assert f"Content-Length: {len(content)}" in lines
    assert body == content
    assert sent == len(connection.raw)
    assert [len(chunk) for chunk in connection.sent[1:]] == [1024, 1024, 512]
    assert connection.closed is False


def test_text_outcome_writes_body_and_closes_when_not_persistent() -> None:
    connection = RecordingConnection()
    outcome = Outcome.message(StatusCode.NOT_FOUND)

    write_response(connection, outcome, Request(method="GET", path="/x.html", keep_alive=False))

    lines, body = _split(connection.raw)
    assert lines[0] == "HTTP/1.1 404 Not Found"
    assert "Connection: close" in lines
    assert f"Content-Length: {len(body)}" in lines
    assert b"File not found" in body
    assert connection.closed is True


@pytest.mark.parametrize(
    "outcome",
    [
        Outcome.message(StatusCode.FORBIDDEN),
        Outcome.message(StatusCode.NOT_FOUND),
        Outcome(StatusCode.OK, TextPayload(""), content_type="text/plain"),
        Outcome(StatusCode.MOVED_PERMANENTLY, RedirectPayload("/new")),
    ],
)
def test_head_requests_never_carry_a_body(outcome: Outcome) -> None:
    connection = RecordingConnection()

    write_response(connection, outcome, Request(method="HEAD", path="/notes.txt"))

    _lines, body = _split(connection.raw)
    assert body == b""


def test_head_error_reports_length_of_suppressed_body() -> None:
    connection = RecordingConnection()
    outcome = Outcome.message(StatusCode.FORBIDDEN)
    assert isinstance(outcome.payload, TextPayload)

    write_response(connection, outcome, Request(method="HEAD", path="/"))

    lines, _body = _split(connection.raw)
    assert f"Content-Length: {len(outcome.payload.text)}" in lines


def test_redirect_has_location_and_empty_body() -> None:
    connection = RecordingConnection()

    write_response(
        connection,
        Outcome(StatusCode.MOVED_PERMANENTLY, RedirectPayload("/new")),
        Request(method="GET", path="/old"),
    )

    lines, body = _split(connection.raw)
    assert lines[:2] == ["HTTP/1.1 301 Moved Permanently", "Location: /new"]
    assert "Content-Length: 0" in lines
    assert body == b""


def test_unopenable_file_still_sends_head_then_raises(tmp_path: Path) -> None:
    connection = RecordingConnection()
    outcome = Outcome(StatusCode.OK, FilePayload("gone.html"), content_type="text/html")

    with pytest.raises(FileStreamError) as excinfo:
        write_response(
            connection,
            outcome,
            Request(method="GET", path="/gone.html"),
            content_root=tmp_path,
        )

    lines, body = _split(connection.raw)
    assert lines[0] == "HTTP/1.1 200 OK"
    assert f"Content-Length: {len('gone.html')}" in lines
    assert body == b""
    assert excinfo.value.file_path == tmp_path / "gone.html"
    assert isinstance(excinfo.value.cause, FileNotFoundError)
    assert excinfo.value.__cause__ is excinfo.value.cause


def test_client_connection_decodes_lines_as_utf8() -> None:
    server_side, client_side = socket.socketpair()
    connection = ClientConnection(server_side, ("127.0.0.1", 50000), secure=False)
    try:
        client_side.sendall(b"GET /voil\xc3\xa0.html HTTP/1.1\r\nX-Raw: \xff\r\n")
        client_side.shutdown(socket.SHUT_WR)

        assert connection.read_line() == "GET /voilà.html HTTP/1.1"
        assert connection.read_line() == "X-Raw: \udcff"
        assert connection.read_line() is None
    finally:
        connection.close()
        client_side.close()
