import csv
import os
import threading
import time

HEADERS = ["timestamp", "event_type", "ticket_id", "outcome", "latency_ms"]


class AuditLog:
    """Appends one CSV row per broker event. Rows never include credentials or secrets."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        # Initialize CSV with headers if it doesn't exist
        if not os.path.exists(path):
            with open(path, "w", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(HEADERS)

    def log_event(self, event_type: str, ticket_id: str, outcome: str, latency_ms: int = 0):
        with self._lock, open(self.path, "a", newline="") as f:
            writer = csv.writer(f)
            writer.writerow([time.time(), event_type, ticket_id[:8], outcome, latency_ms])
