import threading
import time
from typing import Callable

from fastapi import Request, HTTPException

WINDOW_SECONDS = 60


class RateLimiter:
    def __init__(self, max_per_minute: int = 30, enabled: bool = True, clock: Callable[[], float] = time.time):
        """
        Sliding one-minute window of request timestamps per client IP.

        :param max_per_minute: requests allowed per IP in any 60 second window
        :param enabled: when False every request passes
        """
        self.max_per_minute = max_per_minute
        self.enabled = enabled
        self.clock = clock
        self._requests = {}  # Stores IP -> [timestamp1, timestamp2...]
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._requests)

    def check(self, request: Request):
        """
        check Enforces rate limiting based on client IP

        :param request: incoming request, used for its client address
        :type request: Request
        """
        if not self.enabled:
            return

        client_ip = request.client.host if request.client else "unknown"
        now = self.clock()

        with self._lock:
            # Forget clients with nothing left inside the window
            idle = [ip for ip, times in self._requests.items() if not times or now - times[-1] >= WINDOW_SECONDS]
            for ip in idle:
                del self._requests[ip]

            recent = [t for t in self._requests.get(client_ip, []) if now - t < WINDOW_SECONDS]

            # Check count
            if len(recent) >= self.max_per_minute:
                self._requests[client_ip] = recent
                raise HTTPException(status_code=429, detail="Too many login tickets requested. Please wait.")

            # Add current request
            recent.append(now)
            self._requests[client_ip] = recent
