"""Bounded worker pool that runs one session per accepted connection."""

from __future__ import annotations

import logging
import queue
import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AcceptedClient:
    sock: socket.socket
    address: tuple[str, int]
    secure: bool


ClientHandler = Callable[[AcceptedClient], None]


class ThreadPool:
    """Fixed number of workers fed from a bounded queue of accepted clients."""

    def __init__(self, worker_count: int, queue_size: int, handler: ClientHandler) -> None:
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        if queue_size <= 0:
            raise ValueError("queue_size must be positive")

        self._handler = handler
        self._queue: queue.Queue[AcceptedClient] = queue.Queue(maxsize=queue_size)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._worker_count = worker_count

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def threads(self) -> tuple[threading.Thread, ...]:
        return tuple(self._threads)

    def start(self) -> None:
        for index in range(self._worker_count):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"session-worker-{index}",
                daemon=True,
            )
            self._threads.append(worker)
            worker.start()

    def submit(self, client: AcceptedClient) -> bool:
        """Queue a client; False means the pool is saturated or stopping."""
        if self._stop_event.is_set():
            return False
        try:
            self._queue.put_nowait(client)
        except queue.Full:
            return False
        return True

    def shutdown(self, *, timeout: float = 1.0) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        while True:
            try:
                pending = self._queue.get_nowait()
            except queue.Empty:
                break
            pending.sock.close()
        for thread in self._threads:
            thread.join(timeout=timeout)

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                client = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            try:
                self._handler(client)
            except Exception:
                logger.exception("Unhandled error serving %s:%s", *client.address)
