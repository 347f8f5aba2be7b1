"""Process-wide shutdown coordination."""

import signal
import threading
from typing import Callable, List, Optional, Tuple

from ..utils.logging import get_logger

logger = get_logger("core.shutdown")


class Interrupt(Exception):
    """Shutdown cause for an OS signal or an explicit stop request."""

    def __init__(self, signum: Optional[int] = None):
        self.signum = signum
        if signum is None:
            message = "Stop requested"
        else:
            message = f"Received signal {signal.Signals(signum).name}"
        super().__init__(message)


class ShutdownCoordinator:
    """
    One-shot latch that every shutdown trigger funnels into.

    The first call to :meth:`trigger` records the cause and runs the
    registered teardown actions in registration order. Later triggers are
    dropped and never block. Waiters observe the same terminal state.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._event = threading.Event()
        self._actions: List[Tuple[str, Callable[[], None]]] = []
        self._cause: Optional[BaseException] = None

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    @property
    def exit_code(self) -> int:
        """0 after an interrupt, 1 after a fatal error."""
        if self._cause is None or isinstance(self._cause, Interrupt):
            return 0
        return 1

    def register(self, name: str, action: Callable[[], None]) -> None:
        """Add a teardown action; if shutdown already happened, run it now."""
        with self._lock:
            self._actions.append((name, action))
            # re-checked after the append: a signal handler may latch in between
            if self._cause is None:
                return
        self._drain()

    def trigger(self, cause: BaseException) -> bool:
        """
        Request shutdown.

        Args:
            cause: An Interrupt or the fatal error that ends the process

        Returns:
            True if this call latched the shutdown, False if one was already under way
        """
        with self._lock:
            if self._cause is not None:
                logger.debug(f"Ignoring shutdown trigger after the first: {cause}")
                return False
            self._cause = cause

        if isinstance(cause, Interrupt):
            logger.warning(f"{cause}, shutting down...")
        else:
            logger.error(f"Fatal error, shutting down: {cause}")

        try:
            self._drain()
        finally:
            self._event.set()
        return True

    def is_set(self) -> bool:
        """True once a trigger has been latched (teardown may still be running)."""
        return self._cause is not None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until teardown has finished or the timeout expires."""
        return self._event.wait(timeout)

    def _drain(self) -> None:
        """Run pending teardown actions in order, each exactly once."""
        while True:
            with self._lock:
                if not self._actions:
                    return
                name, action = self._actions.pop(0)
            self._run_action(name, action)

    @staticmethod
    def _run_action(name: str, action: Callable[[], None]) -> None:
        logger.debug(f"Teardown: {name}")
        try:
            action()
        except Exception as e:
            logger.error(f"Error during teardown of {name}: {e}")


def install_signal_handlers(coordinator: ShutdownCoordinator) -> None:
    """Route SIGINT, SIGTERM and (where available) SIGHUP into the coordinator."""
    def handler(signum, frame):
        coordinator.trigger(Interrupt(signum))

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, handler)
