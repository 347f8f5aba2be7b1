"""Main orchestration module for the tunnel port forwarder."""

import logging
import sys
import threading
from typing import Callable, Optional, Sequence

from .config.environment import load_config, parse_args
from .config.models import ForwardConfig
from .core.listener import AcceptLoop
from .core.network import bind_listener
from .core.shutdown import Interrupt, ShutdownCoordinator, install_signal_handlers
from .core.tunnel import SSHTunnel
from .utils.console import console
from .utils.exceptions import (
    AuthError, ConfigurationError, DialError, ListenerError, SSHTunnelError, TunnelForwardError
)
from .utils.logging import setup_logging, get_logger

logger = get_logger("main")


class PortForwarder:
    """Ties the tunnel, the accept loop and the shutdown coordinator together."""

    def __init__(
            self,
            config: ForwardConfig,
            tunnel_factory: Callable[[ForwardConfig], SSHTunnel] = SSHTunnel,
            shutdown: Optional[ShutdownCoordinator] = None,
    ):
        self.config = config
        self.tunnel_factory = tunnel_factory
        self.shutdown = shutdown or ShutdownCoordinator()

        self.tunnel = None
        self.accept_loop: Optional[AcceptLoop] = None
        self._accept_thread: Optional[threading.Thread] = None

    @property
    def local_address(self):
        """Address the listener is actually bound to."""
        return self.accept_loop.listener.getsockname()

    def start(self) -> None:
        """
        Establish the tunnel, bind the listener and start accepting.

        Startup errors propagate; whatever was already opened is closed first.
        """
        if self.tunnel is not None:
            raise SSHTunnelError("Port forwarder already started")

        self.tunnel = self.tunnel_factory(self.config)
        self.tunnel.start()

        try:
            listener = bind_listener(self.config.local)
        except ListenerError:
            self.tunnel.close()
            raise

        self.accept_loop = AcceptLoop(
            listener, self.tunnel, self.shutdown,
            pair_errors_fatal=self.config.pair_errors_fatal,
        )

        self.shutdown.register("listener", self.accept_loop.close)
        self.shutdown.register("forwarding pairs", self.accept_loop.close_pairs)
        self.shutdown.register("SSH tunnel", self.tunnel.close)

        self._accept_thread = threading.Thread(
            target=self.accept_loop.run, name="accept-loop", daemon=True
        )
        self._accept_thread.start()

    def wait(self, poll_interval: float = 1.0) -> int:
        """Block until shutdown completes; returns the process exit code."""
        while not self.shutdown.wait(poll_interval):
            pass
        if self._accept_thread is not None:
            self._accept_thread.join(poll_interval)
        return self.shutdown.exit_code

    def stop(self) -> None:
        """Request an orderly shutdown."""
        self.shutdown.trigger(Interrupt())

    def is_running(self) -> bool:
        return self.accept_loop is not None and not self.shutdown.is_set()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        log_file=args.log_file,
    )

    try:
        config = load_config(args)

        console.print_banner(str(config.local), str(config.ssh), str(config.remote))

        forwarder = PortForwarder(config)
        install_signal_handlers(forwarder.shutdown)
        forwarder.start()

        console.print_info("Forwarder running. Press Ctrl+C to stop.")
        exit_code = forwarder.wait()

    except ConfigurationError as e:
        console.print_error(f"Configuration error: {e}")
        sys.exit(1)
    except AuthError as e:
        console.print_error(f"Authentication error: {e}")
        sys.exit(1)
    except DialError as e:
        console.print_error(f"Remote dial error: {e}")
        sys.exit(1)
    except TunnelForwardError as e:
        console.print_error(f"Startup failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error in main")
        console.print_error(f"Unexpected error: {e}")
        sys.exit(1)

    cause = forwarder.shutdown.cause
    if exit_code:
        console.print_error(f"Stopped: {cause}")
    else:
        console.print_warning(f"Stopped: {cause}")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
