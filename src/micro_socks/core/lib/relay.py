"""Bidirectional byte relay between a client and its destination.

Each direction runs in its own thread and copies through a pooled buffer until
its source reaches end-of-stream or fails. The destination is then half-closed
so the peer sees EOF while the opposite direction keeps flowing. ``relay``
returns only after both directions are done.
"""

import contextlib
import socket
import threading

from loguru import logger

from .buffer_pool import BufferPool
from .proxy_stats import ProxyStats


def _pipe(src: socket.socket, dst: socket.socket, pool: BufferPool, direction: str) -> int:
    """Copy ``src`` into ``dst`` until EOF or error, then half-close ``dst``."""
    total = 0
    try:
        with pool.borrow() as buf:
            view = memoryview(buf)
            while True:
                n = src.recv_into(buf)
                if not n:
                    break
                dst.sendall(view[:n])
                total += n
    except OSError as e:
        logger.debug(f"Relay {direction} stopped: {e}")
    finally:
        with contextlib.suppress(OSError):
            dst.shutdown(socket.SHUT_WR)
    return total


def relay(
    client: socket.socket,
    remote: socket.socket,
    pool: BufferPool,
    stats: ProxyStats | None = None,
) -> tuple[int, int]:
    """Forward data between ``client`` and ``remote`` until both sides finish.

    Handshake deadlines are cleared first; the relay itself has no idle timeout.

    Returns:
        tuple[int, int]: Bytes forwarded client -> remote and remote -> client
    """
    client.settimeout(None)
    remote.settimeout(None)

    counts = {"upstream": 0}

    def upstream() -> None:
        counts["upstream"] = _pipe(client, remote, pool, "client->target")

    worker = threading.Thread(target=upstream, name="relay-upstream", daemon=True)
    worker.start()
    downstream = _pipe(remote, client, pool, "target->client")
    worker.join()

    sent = counts["upstream"]
    if stats is not None:
        stats.update_bytes(sent, downstream)
    return sent, downstream
