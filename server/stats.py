"""
Siteadmin - Statistics Recorder
===============================
Process-lifetime usage counters for the admin dashboard.

Counters are only ever incremented (or, for current connections,
decremented on close) and are never reset while the process runs.
All mutations happen on the event loop thread, so no locking is needed.
"""

import time
from datetime import datetime, timezone
from typing import Any


class StatisticsRecorder:
    """
    Counts handled requests, real-time connections and errors.

    Attributes:
        requests_total:        Requests counted since start.
        requests_by_endpoint:  Per-path request counts.
        connections_total:     Connections ever opened.
        connections_current:   Connections open right now.
        connections_peak:      Highest value connections_current reached.
        errors_total:          Errors recorded since start.
        last_error:            {"time", "message"} of the latest error, or None.
    """

    def __init__(self):
        self.started_at = time.monotonic()
        self.started_at_iso = datetime.now(timezone.utc).isoformat()
        self.requests_total: int = 0
        self.requests_by_endpoint: dict[str, int] = {}
        self.connections_total: int = 0
        self.connections_current: int = 0
        self.connections_peak: int = 0
        self.errors_total: int = 0
        self.last_error: dict[str, str] | None = None

    def record_request(self, endpoint: str) -> None:
        self.requests_total += 1
        self.requests_by_endpoint[endpoint] = self.requests_by_endpoint.get(endpoint, 0) + 1

    def record_connection_opened(self) -> None:
        self.connections_total += 1
        self.connections_current += 1
        self.connections_peak = max(self.connections_peak, self.connections_current)

    def record_connection_closed(self) -> None:
        # Never below zero, even on an unmatched close
        self.connections_current = max(0, self.connections_current - 1)

    def record_error(self, message: str) -> None:
        self.errors_total += 1
        self.last_error = {
            "time": datetime.now(timezone.utc).isoformat(),
            "message": message,
        }

    def uptime(self) -> dict[str, int]:
        """Elapsed time since start as whole days plus remaining hours."""
        seconds = int(time.monotonic() - self.started_at)
        days, remainder = divmod(seconds, 86400)
        return {"days": days, "hours": remainder // 3600, "seconds": seconds}

    def snapshot(self) -> dict[str, Any]:
        """
        Get a read-only copy of all counters.

        Returns:
            Dict in the wire format served by GET /statistics.
        """
        return {
            "requestsTotal": self.requests_total,
            "requestsByEndpoint": dict(self.requests_by_endpoint),
            "connectionsTotal": self.connections_total,
            "connectionsCurrent": self.connections_current,
            "connectionsPeak": self.connections_peak,
            "errorsTotal": self.errors_total,
            "lastError": dict(self.last_error) if self.last_error else None,
            "startedAt": self.started_at_iso,
            "uptime": self.uptime(),
        }
