"""Session statistics for the SOCKS proxy server.

Tracks, in a thread-safe manner:
- Active and total session counts
- Bytes relayed in each direction

The counters are read at shutdown to decide how long to wait for in-flight
sessions and to log a final summary.

Example:
    stats = ProxyStats()
    stats.connection_started()
    stats.update_bytes(sent=1024, received=2048)
    stats.connection_ended()
"""

import threading
import time


class ProxyStats:
    """Thread-safe statistics tracker for SOCKS proxy sessions.

    ``sent`` counts bytes forwarded from clients to targets, ``received``
    counts bytes forwarded from targets back to clients.
    """

    def __init__(self) -> None:
        self.active_connections = 0
        self.total_connections = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.start_time = time.monotonic()
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Add relayed byte counts.

        Args:
            sent: Bytes forwarded client -> target
            received: Bytes forwarded target -> client
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received

    def connection_started(self) -> None:
        """Record a newly accepted session."""
        with self._lock:
            self.active_connections += 1
            self.total_connections += 1

    def connection_ended(self) -> None:
        """Record a finished session."""
        with self._lock:
            self.active_connections -= 1

    def uptime(self) -> float:
        """Seconds since the tracker was created."""
        return time.monotonic() - self.start_time

    def wait_idle(self, timeout: float, poll_interval: float = 0.1) -> bool:
        """Block until no session is active or ``timeout`` elapses.

        Returns:
            bool: True if all sessions finished in time
        """
        deadline = time.monotonic() + timeout
        while self.active_connections > 0:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(poll_interval, remaining))
        return True
