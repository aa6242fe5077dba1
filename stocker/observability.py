"""Per-app request outcome and latency counters, reported by /health."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock


@dataclass
class RequestStats:
    total: int
    unauthorized: int
    method_not_allowed: int
    not_found: int
    server_errors: int
    average_ms: float
    max_ms: float


class RequestStatsRecorder:
    """
    Counts every response leaving the app by outcome.

    Rejections by the security stages (401, 405) never reach a route, so this
    is the only place they show up besides the audit log.
    """

    def __init__(self):
        self.started_at = datetime.now(timezone.utc)
        self._statuses: Counter = Counter()
        self._total_ms = 0.0
        self._max_ms = 0.0
        self._lock = Lock()

    def record(self, status_code: int, elapsed_ms: float):
        with self._lock:
            self._statuses[status_code] += 1
            self._total_ms += elapsed_ms
            self._max_ms = max(self._max_ms, elapsed_ms)

    def snapshot(self) -> RequestStats:
        with self._lock:
            total = sum(self._statuses.values())
            return RequestStats(
                total=total,
                unauthorized=self._statuses[401],
                method_not_allowed=self._statuses[405],
                not_found=self._statuses[404],
                server_errors=sum(n for status, n in self._statuses.items() if status >= 500),
                average_ms=round(self._total_ms / total, 3) if total else 0.0,
                max_ms=round(self._max_ms, 3),
            )

    def uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()
