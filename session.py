"""Per-connection request loop: read header blocks, resolve, respond."""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from pathlib import Path

from catalog import ContentCatalog
from config import CONTENT_ROOT, DEFAULT_KEEP_ALIVE, LOG_FORMAT, WRITE_CHUNK_SIZE
from metrics import MetricsRegistry
from request import (
    ConnectionClosed,
    HeaderParam,
    ProtocolError,
    Request,
    RequestBuilder,
    StartOfRequest,
    parse_line,
)
from resolver import Outcome, resolve
from socket_handler import ClientConnection, FileStreamError, write_response

logger = logging.getLogger(__name__)


class SessionState(Enum):
    AWAITING_HEADER_START = "awaiting-header-start"
    IN_HEADER = "in-header"


class Session:
    """Serves sequential header blocks on one connection until it closes."""

    def __init__(
        self,
        connection: ClientConnection,
        catalog: ContentCatalog,
        *,
        content_root: str | Path = CONTENT_ROOT,
        metrics: MetricsRegistry | None = None,
        log_format: str = LOG_FORMAT,
        write_chunk_size: int = WRITE_CHUNK_SIZE,
        default_keep_alive: bool = DEFAULT_KEEP_ALIVE,
    ) -> None:
        self.connection = connection
        self.catalog = catalog
        self.content_root = Path(content_root)
        self.metrics = metrics or MetricsRegistry()
        self.log_format = log_format
        self.write_chunk_size = write_chunk_size
        self.default_keep_alive = default_keep_alive
        self.state = SessionState.AWAITING_HEADER_START
        self.requests_served = 0
        self._builder: RequestBuilder | None = None
        self._operation = "read"

    @property
    def channel(self) -> str:
        return "secure" if self.connection.secure else "plaintext"

    def run(self) -> None:
        """Drive the session to completion; faults end this session only."""
        logger.info("New %s session for client %s", self.channel, self.connection.peer)
        self.metrics.session_opened(secure=self.connection.secure)
        try:
            self._serve()
        except ProtocolError as exc:
            self.metrics.record_fault(exc.__class__.__name__)
            logger.warning("Protocol fault from %s: %s", self.connection.peer, exc)
        except FileStreamError as exc:
            self.metrics.record_fault(exc.__class__.__name__)
            logger.error(
                "I/O fault for %s during open of %s: %s",
                self.connection.peer,
                exc.file_path,
                exc,
            )
        except OSError as exc:
            self.metrics.record_fault(exc.__class__.__name__)
            logger.warning(
                "I/O fault for %s during %s: %s",
                self.connection.peer,
                self._operation,
                exc,
            )
        finally:
            self.connection.close()
            self.metrics.session_closed()
            logger.info(
                "Session for %s closed after %d request(s)",
                self.connection.peer,
                self.requests_served,
            )

    def _serve(self) -> None:
        while not self.connection.closed:
            self._operation = "read"
            line = self.connection.read_line()
            parsed = parse_line(
                line,
                new_header=self.state is SessionState.AWAITING_HEADER_START,
            )

            if isinstance(parsed, ConnectionClosed):
                logger.info("Client %s closed its stream", self.connection.peer)
                return

            if isinstance(parsed, StartOfRequest):
                self._builder = RequestBuilder(parsed, keep_alive=self.default_keep_alive)
                self.state = SessionState.IN_HEADER
                logger.debug(
                    "New header from %s: method=%s path=%s",
                    self.connection.peer,
                    parsed.method,
                    parsed.path,
                )
                continue

            if self._builder is None:
                raise ProtocolError("Header line received outside a header block")
            if isinstance(parsed, HeaderParam):
                self._builder.apply(parsed)
                logger.debug("  param: %s %s", parsed.name, parsed.value or "")
                continue

            request = self._builder.build()
            self._builder = None
            self.state = SessionState.AWAITING_HEADER_START
            self.handle(request)

    def handle(self, request: Request) -> Outcome:
        """Resolve and answer one complete header block."""
        started_at = time.perf_counter()
        outcome = resolve(request.method, request.path, self.catalog)
        self._operation = f"write of {request.path}"
        bytes_sent = write_response(
            self.connection,
            outcome,
            request,
            content_root=self.content_root,
            write_chunk_size=self.write_chunk_size,
        )
        self.requests_served += 1
        self._record_and_log(request, outcome, bytes_sent, started_at)
        return outcome

    def _record_and_log(
        self,
        request: Request,
        outcome: Outcome,
        bytes_sent: int,
        started_at: float,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        self.metrics.record_response(status_code=int(outcome.status), bytes_sent=bytes_sent)
        event = {
            "client": self.connection.address[0],
            "channel": self.channel,
            "method": request.method,
            "path": request.path,
            "status": int(outcome.status),
            "bytes_out": bytes_sent,
            "keep_alive": request.keep_alive,
            "latency_ms": round(duration_ms, 3),
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            (
                "client=%s channel=%s method=%s path=%s status=%s "
                "bytes_out=%s keep_alive=%s duration_ms=%.2f"
            ),
            event["client"],
            event["channel"],
            event["method"],
            event["path"],
            event["status"],
            event["bytes_out"],
            event["keep_alive"],
            duration_ms,
        )
