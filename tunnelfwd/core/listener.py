"""Accept loop that pairs each local connection with a tunnel stream."""

import socket
import threading
from typing import Set

from .forwarder import StreamForwarder
from .network import close_listener, format_address
from .shutdown import ShutdownCoordinator
from ..utils.exceptions import DialError, ListenerError
from ..utils.logging import get_logger

logger = get_logger("core.listener")


class AcceptLoop:
    """
    Accepts local connections and starts a StreamForwarder for each one.

    Every connection gets a fresh stream from the shared tunnel. The loop
    stops once the shutdown coordinator has latched; the coordinator closes
    the listener, which unblocks a pending accept().
    """

    def __init__(
            self,
            listener: socket.socket,
            tunnel,
            shutdown: ShutdownCoordinator,
            pair_errors_fatal: bool = True,
    ):
        self.listener = listener
        self.tunnel = tunnel
        self.shutdown = shutdown
        self.pair_errors_fatal = pair_errors_fatal
        self._pairs: Set[StreamForwarder] = set()
        self._pairs_lock = threading.Lock()
        self._closed = False

    @property
    def active_pairs(self) -> int:
        with self._pairs_lock:
            return len(self._pairs)

    def run(self) -> None:
        """Accept connections until shutdown; fatal errors go to the coordinator."""
        while not self.shutdown.is_set():
            try:
                conn, addr = self.listener.accept()
            except OSError as e:
                if self._closed or self.shutdown.is_set():
                    break
                self.shutdown.trigger(ListenerError(f"Accept failed: {e}"))
                break

            if self.shutdown.is_set():
                logger.debug(f"Shutdown in progress, dropping connection from {format_address(addr)}")
                conn.close()
                break

            self._handle(conn, addr)

        logger.debug("Accept loop stopped")

    def close(self) -> None:
        """Close the listener, unblocking run()."""
        self._closed = True
        close_listener(self.listener)

    def close_pairs(self) -> None:
        """Close every live forwarding pair."""
        with self._pairs_lock:
            pairs = list(self._pairs)
        for pair in pairs:
            pair.close()

    def _handle(self, conn: socket.socket, addr) -> None:
        peer = format_address(addr)
        try:
            stream = self.tunnel.open_stream((addr[0], addr[1]))
        except DialError as e:
            conn.close()
            self.shutdown.trigger(e)
            return

        pair = StreamForwarder(
            conn, stream, peer,
            sink=self.shutdown.trigger,
            pair_errors_fatal=self.pair_errors_fatal,
        )
        with self._pairs_lock:
            self._pairs.add(pair)
        if self.shutdown.is_set():
            # close_pairs() may already have run
            pair.close()
        try:
            threading.Thread(
                target=self._run_pair, args=(pair,), name=f"pair-{peer}", daemon=True
            ).start()
        except RuntimeError as e:
            pair.close()
            with self._pairs_lock:
                self._pairs.discard(pair)
            self.shutdown.trigger(ListenerError(f"Cannot start forwarding for {peer}: {e}"))

    def _run_pair(self, pair: StreamForwarder) -> None:
        try:
            pair.start()
            pair.join()
        finally:
            pair.close()
            with self._pairs_lock:
                self._pairs.discard(pair)
            logger.debug(f"Pair for {pair.peer} released")
