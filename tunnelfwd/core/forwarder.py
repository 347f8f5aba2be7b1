"""Bidirectional byte relay between a local connection and a tunnel stream."""

import socket
import threading
from typing import Callable, Optional

import paramiko

from ..utils.exceptions import ForwardingError
from ..utils.logging import get_logger

logger = get_logger("core.forwarder")

LOCAL_TO_REMOTE = "local -> remote"
REMOTE_TO_LOCAL = "remote -> local"

CHUNK_SIZE = 32768

# Errors a socket or an SSH channel raises when the other end goes away.
RELAY_ERRORS = (OSError, EOFError, paramiko.SSHException)


class StreamForwarder:
    """
    Copies bytes between one client connection and one logical stream.

    Each direction runs in its own thread. The pair is torn down as soon as
    either direction returns, so a half-closed peer never leaks descriptors.
    A direction that fails before teardown started reports a ForwardingError
    to ``sink`` (or only logs it when ``pair_errors_fatal`` is False).
    """

    def __init__(
            self,
            client: socket.socket,
            stream,
            peer: str,
            sink: Callable[[ForwardingError], object],
            pair_errors_fatal: bool = True,
            chunk_size: int = CHUNK_SIZE,
    ):
        self.client = client
        self.stream = stream
        self.peer = peer
        self.sink = sink
        self.pair_errors_fatal = pair_errors_fatal
        self.chunk_size = chunk_size
        self.bytes_sent = {LOCAL_TO_REMOTE: 0, REMOTE_TO_LOCAL: 0}

        self._lock = threading.Lock()
        self._closing = False
        self._closed = threading.Event()
        self._threads = [
            threading.Thread(
                target=self._copy, args=(client, stream, LOCAL_TO_REMOTE),
                name=f"fwd-{peer}-up", daemon=True,
            ),
            threading.Thread(
                target=self._copy, args=(stream, client, REMOTE_TO_LOCAL),
                name=f"fwd-{peer}-down", daemon=True,
            ),
        ]

    def start(self) -> None:
        logger.info(f"Forwarding connection from {self.peer}")
        for thread in self._threads:
            thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for both directions to return; True if they did within the timeout."""
        for thread in self._threads:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def close(self) -> None:
        """Close both halves of the pair. Safe to call from any thread, any number of times."""
        with self._lock:
            if self._closing:
                return
            self._closing = True

        _close_quietly(self.client)
        _close_quietly(self.stream)
        self._closed.set()
        logger.debug(
            f"Closed pair for {self.peer} "
            f"(sent {self.bytes_sent[LOCAL_TO_REMOTE]} bytes up, "
            f"{self.bytes_sent[REMOTE_TO_LOCAL]} bytes down)"
        )

    def _copy(self, source, destination, direction: str) -> None:
        try:
            while True:
                data = source.recv(self.chunk_size)
                if not data:
                    break
                destination.sendall(data)
                self.bytes_sent[direction] += len(data)
        except RELAY_ERRORS as e:
            if not self._closing:
                self._report(ForwardingError(direction, self.peer, e))
        else:
            target = "remote host" if direction == LOCAL_TO_REMOTE else "local host"
            logger.info(f"Data sent to {target} ({direction}) for {self.peer}")
        finally:
            self.close()

    def _report(self, error: ForwardingError) -> None:
        if self.pair_errors_fatal:
            self.sink(error)
        else:
            logger.warning(f"{error}; closing this connection only")


def _close_quietly(conn) -> None:
    """Shut down then close a socket or channel, waking any thread blocked on it."""
    try:
        conn.shutdown(socket.SHUT_RDWR)
    except RELAY_ERRORS:
        pass
    try:
        conn.close()
    except RELAY_ERRORS as e:
        logger.debug(f"Error closing {conn!r}: {e}")
