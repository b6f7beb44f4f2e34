"""Thread-safe in-memory counters for sessions and responses."""

from __future__ import annotations

import threading
from collections import Counter


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions_opened = 0
        self._sessions_closed = 0
        self._secure_sessions = 0
        self._rejected_connections = 0
        self._total_responses = 0
        self._bytes_sent_total = 0
        self._status_counts: Counter[str] = Counter()
        self._faults_by_class: Counter[str] = Counter()

    def session_opened(self, *, secure: bool) -> None:
        with self._lock:
            self._sessions_opened += 1
            if secure:
                self._secure_sessions += 1

    def session_closed(self) -> None:
        with self._lock:
            self._sessions_closed += 1

    def connection_rejected(self) -> None:
        with self._lock:
            self._rejected_connections += 1

    def record_response(self, *, status_code: int, bytes_sent: int) -> None:
        with self._lock:
            self._total_responses += 1
            self._bytes_sent_total += bytes_sent
            self._status_counts[str(status_code)] += 1

    def record_fault(self, error_class: str) -> None:
        with self._lock:
            self._faults_by_class[error_class] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "sessions_opened": self._sessions_opened,
                "sessions_closed": self._sessions_closed,
                "active_sessions": max(0, self._sessions_opened - self._sessions_closed),
                "secure_sessions": self._secure_sessions,
                "rejected_connections": self._rejected_connections,
                "total_responses": self._total_responses,
                "bytes_sent_total": self._bytes_sent_total,
                "responses_by_status": dict(self._status_counts),
                "faults_by_class": dict(self._faults_by_class),
            }
