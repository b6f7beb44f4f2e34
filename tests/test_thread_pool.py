"""Tests for the bounded worker pool and the session counters."""

import socket
import threading

from metrics import MetricsRegistry
from thread_pool import AcceptedClient, ThreadPool


def _client(port: int = 0) -> AcceptedClient:
    left, right = socket.socketpair()
    right.close()
    return AcceptedClient(sock=left, address=("127.0.0.1", port), secure=False)


def test_thread_pool_starts_fixed_worker_count() -> None:
    pool = ThreadPool(worker_count=3, queue_size=4, handler=lambda _client: None)
    pool.start()

    try:
        assert pool.worker_count == 3
        assert len(pool.threads) == 3
        assert all(thread.is_alive() for thread in pool.threads)
    finally:
        pool.shutdown()


def test_thread_pool_submit_returns_false_when_full() -> None:
    pool = ThreadPool(worker_count=1, queue_size=1, handler=lambda _client: None)
    first, second = _client(1), _client(2)

    try:
        assert pool.submit(first) is True
        assert pool.submit(second) is False
    finally:
        pool.shutdown()
        second.sock.close()

    assert first.sock.fileno() == -1


def test_thread_pool_runs_handler_and_survives_handler_errors() -> None:
    handled: list[int] = []
    done = threading.Event()

    def handler(client: AcceptedClient) -> None:
        handled.append(client.address[1])
        client.sock.close()
        if client.address[1] == 1:
            raise RuntimeError("boom")
        done.set()

    pool = ThreadPool(worker_count=1, queue_size=4, handler=handler)
    pool.start()
    try:
        assert pool.submit(_client(1))
        assert pool.submit(_client(2))
        assert done.wait(timeout=2)
    finally:
        pool.shutdown()

    assert handled == [1, 2]


def test_submit_after_shutdown_is_refused() -> None:
    pool = ThreadPool(worker_count=1, queue_size=1, handler=lambda _client: None)
    pool.start()
    pool.shutdown()
    client = _client()

    assert pool.submit(client) is False
    client.sock.close()


def test_metrics_snapshot_counts_sessions_and_statuses() -> None:
    metrics = MetricsRegistry()
    metrics.session_opened(secure=True)
    metrics.session_opened(secure=False)
    metrics.record_response(status_code=200, bytes_sent=150)
    metrics.record_response(status_code=404, bytes_sent=50)
    metrics.record_response(status_code=404, bytes_sent=50)
    metrics.session_closed()
    metrics.connection_rejected()
    metrics.record_fault("ProtocolError")

    snapshot = metrics.snapshot()

    assert snapshot["sessions_opened"] == 2
    assert snapshot["active_sessions"] == 1
    assert snapshot["secure_sessions"] == 1
    assert snapshot["total_responses"] == 3
    assert snapshot["bytes_sent_total"] == 250
    assert snapshot["responses_by_status"] == {"200": 1, "404": 2}
    assert snapshot["rejected_connections"] == 1
    assert snapshot["faults_by_class"] == {"ProtocolError": 1}
