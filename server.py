"""Static content server entry point: listeners, admission and TLS."""

from __future__ import annotations

import argparse
import logging
import socket
import ssl
import threading
from pathlib import Path

from catalog import ContentCatalog, RedirectDefinitionsError
from config import (
    CATALOG_PER_SESSION,
    CONTENT_ROOT,
    DEFAULT_KEEP_ALIVE,
    HOST,
    IDLE_TIMEOUT_SECS,
    LOG_FORMAT,
    LOG_LEVEL,
    REDIRECT_DEFS_NAME,
    REQUEST_QUEUE_SIZE,
    SERVER_PORT,
    SSL_PORT,
    TLS_HANDSHAKE_TIMEOUT_SECS,
    TLS_CERT_FILE,
    TLS_KEY_FILE,
    WORKER_COUNT,
    WRITE_CHUNK_SIZE,
)
from metrics import MetricsRegistry
from session import Session
from socket_handler import ClientConnection, write_service_unavailable
from thread_pool import AcceptedClient, ThreadPool

logger = logging.getLogger(__name__)

MAX_PORT = 65535


class ContentServer:
    def __init__(
        self,
        host: str = HOST,
        port: int = SERVER_PORT,
        secure_port: int | None = SSL_PORT,
        *,
        content_root: str | Path = CONTENT_ROOT,
        redirect_defs: str | Path | None = None,
        tls_cert_file: str = TLS_CERT_FILE,
        tls_key_file: str = TLS_KEY_FILE,
        handshake_timeout_secs: float = TLS_HANDSHAKE_TIMEOUT_SECS,
        worker_count: int = WORKER_COUNT,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        idle_timeout_secs: float | None = IDLE_TIMEOUT_SECS,
        catalog_per_session: bool = CATALOG_PER_SESSION,
        default_keep_alive: bool = DEFAULT_KEEP_ALIVE,
        write_chunk_size: int = WRITE_CHUNK_SIZE,
        log_format: str = LOG_FORMAT,
    ) -> None:
        self.host = host
        self.port = port
        self.secure_port = secure_port
        self.content_root = Path(content_root)
        self.redirect_defs = (
            Path(redirect_defs) if redirect_defs is not None else self.content_root / REDIRECT_DEFS_NAME
        )
        self.tls_cert_file = tls_cert_file
        self.tls_key_file = tls_key_file
        self.handshake_timeout_secs = handshake_timeout_secs
        self.worker_count = worker_count
        self.request_queue_size = request_queue_size
        self.idle_timeout_secs = idle_timeout_secs
        self.catalog_per_session = catalog_per_session
        self.default_keep_alive = default_keep_alive
        self.write_chunk_size = write_chunk_size
        self.log_format = log_format

        self.catalog: ContentCatalog | None = None
        self.secure_error: Exception | None = None
        self.metrics = MetricsRegistry()
        self.ready = threading.Event()

        self._tls_context: ssl.SSLContext | None = None
        self._listeners: list[socket.socket] = []
        self._acceptors: list[threading.Thread] = []
        self._pool: ThreadPool | None = None
        self._stop_event = threading.Event()
        self._stop_lock = threading.Lock()
        self._stopped = False
        self._active: set[ClientConnection] = set()
        self._active_lock = threading.Lock()

    def start(self) -> None:
        """Load the catalog, open both listeners and block until stop()."""
        self.catalog = ContentCatalog.load(self.content_root, self.redirect_defs)

        plain_listener = self._listen(self.port)
        self.port = plain_listener.getsockname()[1]
        self._listeners.append(plain_listener)
        logger.info("Plaintext listener waiting for clients on %s:%s", self.host, self.port)

        secure_listener: socket.socket | None = None
        if self.secure_port is not None:
            try:
                self._tls_context = self._build_tls_context()
                secure_listener = self._listen(self.secure_port)
            except (OSError, ssl.SSLError) as exc:
                self.secure_error = exc
                logger.error("Error setting up the secure listener: %s", exc)
            else:
                self.secure_port = secure_listener.getsockname()[1]
                self._listeners.append(secure_listener)
                logger.info(
                    "Secure listener waiting for clients on %s:%s",
                    self.host,
                    self.secure_port,
                )

        self._pool = ThreadPool(
            worker_count=self.worker_count,
            queue_size=self.request_queue_size,
            handler=self._handle_client,
        )
        self._pool.start()

        self._acceptors.append(self._spawn_acceptor(plain_listener, secure=False))
        if secure_listener is not None:
            self._acceptors.append(self._spawn_acceptor(secure_listener, secure=True))
        self.ready.set()

        try:
            while not self._stop_event.wait(0.5):
                pass
        finally:
            self.stop()

    def stop(self) -> None:
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
        self._stop_event.set()
        for listener in self._listeners:
            listener.close()
        self._listeners.clear()
        for acceptor in self._acceptors:
            if acceptor is not threading.current_thread():
                acceptor.join(timeout=1.0)
        self._acceptors.clear()

        with self._active_lock:
            active = list(self._active)
        for connection in active:
            connection.interrupt()

        if self._pool is not None:
            self._pool.shutdown()
            self._pool = None
        logger.info("Server stopped; metrics=%s", self.metrics.snapshot())

    def _listen(self, port: int) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.host, port))
            listener.listen(128)
            listener.settimeout(0.2)
        except OSError:
            listener.close()
            raise
        return listener

    def _build_tls_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=self.tls_cert_file, keyfile=self.tls_key_file)
        return context

    def _spawn_acceptor(self, listener: socket.socket, *, secure: bool) -> threading.Thread:
        name = "secure-acceptor" if secure else "plaintext-acceptor"
        thread = threading.Thread(
            target=self._accept_loop,
            args=(listener,),
            kwargs={"secure": secure},
            name=name,
            daemon=True,
        )
        thread.start()
        return thread

    def _accept_loop(self, listener: socket.socket, *, secure: bool) -> None:
        while not self._stop_event.is_set():
            try:
                client_socket, address = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            client = AcceptedClient(sock=client_socket, address=address, secure=secure)
            if self._pool is not None and self._pool.submit(client):
                continue

            self.metrics.connection_rejected()
            logger.warning("Worker pool saturated; refusing client %s:%s", *address)
            if secure:
                client_socket.close()
                continue
            try:
                write_service_unavailable(client_socket)
            except OSError as exc:
                logger.warning("Could not refuse client %s:%s cleanly: %s", *address, exc)

    def _catalog_for_session(self) -> ContentCatalog:
        if self.catalog_per_session or self.catalog is None:
            return ContentCatalog.load(self.content_root, self.redirect_defs)
        return self.catalog

    def _handle_client(self, client: AcceptedClient) -> None:
        sock = client.sock
        if client.secure:
            if self._tls_context is None:
                sock.close()
                return
            sock.settimeout(self.handshake_timeout_secs)
            try:
                sock = self._tls_context.wrap_socket(sock, server_side=True)
            except (OSError, ssl.SSLError) as exc:
                self.metrics.record_fault(exc.__class__.__name__)
                logger.warning("TLS handshake with %s:%s failed: %s", *client.address, exc)
                sock.close()
                return

        sock.settimeout(self.idle_timeout_secs)
        connection = ClientConnection(sock, client.address, secure=client.secure)
        with self._active_lock:
            if self._stop_event.is_set():
                connection.close()
                return
            self._active.add(connection)
        try:
            try:
                catalog = self._catalog_for_session()
            except (RedirectDefinitionsError, OSError) as exc:
                self.metrics.record_fault(exc.__class__.__name__)
                logger.error("Could not load catalog for %s: %s", connection.peer, exc)
                return
            session = Session(
                connection,
                catalog,
                content_root=self.content_root,
                metrics=self.metrics,
                log_format=self.log_format,
                write_chunk_size=self.write_chunk_size,
                default_keep_alive=self.default_keep_alive,
            )
            session.run()
        finally:
            with self._active_lock:
                self._active.discard(connection)
            connection.close()


def _port(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise argparse.ArgumentTypeError(f"invalid port number: {value!r}")
    port = int(value)
    if port > MAX_PORT:
        raise argparse.ArgumentTypeError(f"port out of range: {value!r}")
    return port


def _positive_int(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise argparse.ArgumentTypeError(f"invalid count: {value!r}")
    count = int(value)
    if count < 1:
        raise argparse.ArgumentTypeError(f"count must be at least 1: {value!r}")
    return count


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serve static content over plaintext and TLS listeners",
        allow_abbrev=False,
    )
    parser.add_argument("--serverPort", dest="server_port", type=_port, required=True, metavar="PORT")
    parser.add_argument("--sslPort", dest="ssl_port", type=_port, required=True, metavar="PORT")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--root", default=CONTENT_ROOT, help="content root directory")
    parser.add_argument("--cert", default=TLS_CERT_FILE, help="PEM certificate chain")
    parser.add_argument("--key", default=TLS_KEY_FILE, help="PEM private key")
    parser.add_argument("--workers", type=_positive_int, default=WORKER_COUNT)
    parser.add_argument("--queue-size", type=_positive_int, default=REQUEST_QUEUE_SIZE)
    parser.add_argument("--idle-timeout", type=float, default=IDLE_TIMEOUT_SECS)
    parser.add_argument("--log-format", choices=["plain", "json"], default=LOG_FORMAT)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )
    server = ContentServer(
        host=args.host,
        port=args.server_port,
        secure_port=args.ssl_port,
        content_root=args.root,
        tls_cert_file=args.cert,
        tls_key_file=args.key,
        worker_count=args.workers,
        request_queue_size=args.queue_size,
        idle_timeout_secs=args.idle_timeout,
        log_format=args.log_format,
    )
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    except (RedirectDefinitionsError, OSError) as exc:
        logger.error("Server failed to start: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
