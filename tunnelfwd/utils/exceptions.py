"""Custom exception classes for the tunnel port forwarder."""

from typing import Optional


class TunnelForwardError(Exception):
    """Base exception for all port forwarding related errors."""
    pass


class ConfigurationError(TunnelForwardError):
    """Exception raised when configuration is invalid."""
    pass


class SSHTunnelError(TunnelForwardError):
    """Exception raised when SSH tunnel operations fail."""
    pass


class AuthError(SSHTunnelError):
    """Exception raised when the SSH server rejects our credentials."""
    pass


class TunnelConnectError(SSHTunnelError):
    """Exception raised when the SSH host cannot be reached."""
    pass


class DialError(SSHTunnelError):
    """Exception raised when a stream to the remote address cannot be opened."""

    def __init__(self, remote: str, reason: object):
        self.remote = remote
        self.reason = reason
        super().__init__(f"Cannot reach {remote} through tunnel: {reason}")


class ListenerError(TunnelForwardError):
    """Exception raised when the local listener fails."""
    pass


class PortInUseError(ListenerError):
    """Exception raised when the local port is already in use."""

    def __init__(self, port: int, process_info: Optional[str] = None):
        self.port = port
        self.process_info = process_info
        message = f"Port {port} is already in use"
        if process_info:
            message += f" by {process_info}"
        super().__init__(message)


class ForwardingError(TunnelForwardError):
    """Exception raised when copying bytes for a forwarding pair fails."""

    def __init__(self, direction: str, peer: str, cause: BaseException):
        self.direction = direction
        self.peer = peer
        self.cause = cause
        super().__init__(f"Forwarding failed ({direction}) for {peer}: {cause}")
