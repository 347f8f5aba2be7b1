"""Network utilities for the local side of the forwarder."""

import errno
import socket
from typing import Optional

from ..config.models import Address
from ..system.process import ProcessManager
from ..utils.exceptions import ListenerError, PortInUseError
from ..utils.logging import get_logger

logger = get_logger("core.network")

LISTEN_BACKLOG = 128


def bind_listener(address: Address, process_manager: Optional[ProcessManager] = None) -> socket.socket:
    """
    Bind and listen on a local TCP address.

    Args:
        address: Address to listen on; port 0 picks an ephemeral port
        process_manager: Used to name the process holding a busy port

    Returns:
        Listening socket

    Raises:
        PortInUseError: If the port is already taken
        ListenerError: If the address cannot be bound for another reason
    """
    try:
        infos = socket.getaddrinfo(
            address.host, address.port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
        )
    except socket.gaierror as e:
        raise ListenerError(f"Failed to resolve local address {address}: {e}") from e

    family, socktype, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, socktype, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(LISTEN_BACKLOG)
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            process_info = (process_manager or ProcessManager()).find_process_by_port(address.port)
            raise PortInUseError(address.port, process_info) from e
        raise ListenerError(f"Failed to listen on {address}: {e}") from e

    logger.info(f"Listening on {format_address(sock.getsockname())}")
    return sock


def close_listener(sock: socket.socket) -> None:
    """Close a listening socket so a thread blocked in accept() returns."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Not every platform allows shutdown() on a listening socket.
        pass
    sock.close()


def format_address(sockaddr) -> str:
    """Render a socket address tuple as host:port."""
    host, port = sockaddr[0], sockaddr[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
