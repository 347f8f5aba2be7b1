"""SSH tunnel management functionality."""
import threading
from typing import Optional

import paramiko

from ..config.models import Address, ForwardConfig
from ..utils.exceptions import AuthError, DialError, SSHTunnelError, TunnelConnectError
from ..utils.logging import get_logger

logger = get_logger("core.tunnel")


class SSHTunnel:
    """
    The single SSH connection every forwarded stream is multiplexed over.

    One instance dials the SSH host once; each accepted local connection then
    gets its own ``direct-tcpip`` channel to the fixed remote address.
    """

    def __init__(self, config: ForwardConfig):
        self.config = config
        self._client: Optional[paramiko.SSHClient] = None
        self._transport: Optional[paramiko.Transport] = None
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

    @property
    def remote(self) -> Address:
        return self.config.remote

    def start(self) -> None:
        """
        Dial the SSH host and verify the remote address is reachable.

        Raises:
            AuthError: If the server rejects the configured credential
            TunnelConnectError: If the SSH host cannot be reached
            DialError: If the remote address cannot be reached through the tunnel
            SSHTunnelError: If the tunnel was already started
        """
        with self._lock:
            if self._started:
                raise SSHTunnelError("SSH tunnel already started")
            self._started = True

        ssh = self.config.ssh
        logger.info(f"Connecting to SSH host {ssh} as {self.config.user} ({self.config.auth_method} auth)")

        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(ssh.host, port=ssh.port, **self._auth_kwargs())
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthError(f"Authentication failed for {self.config.user}@{ssh}: {e}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TunnelConnectError(f"Failed to connect to SSH host {ssh}: {e}") from e

        self._client = client
        self._transport = client.get_transport()

        if self.config.keepalive_interval:
            self._transport.set_keepalive(self.config.keepalive_interval)

        logger.info(f"SSH established at: {ssh}")

        try:
            self._verify_remote()
        except DialError:
            self.close()
            raise

        logger.info(f"SSH tunnel established at: {self.remote}")

    def open_stream(self, origin: Optional[tuple[str, int]] = None) -> paramiko.Channel:
        """
        Open a new logical stream to the remote address.

        Args:
            origin: Address of the local peer the stream is opened for

        Returns:
            A connected channel

        Raises:
            DialError: If the tunnel is down or the remote refuses the stream
        """
        transport = self._transport
        if transport is None or not transport.is_active():
            raise DialError(str(self.remote), "SSH tunnel is not active")

        try:
            return transport.open_channel(
                "direct-tcpip",
                dest_addr=self.remote.as_tuple(),
                src_addr=origin or ("127.0.0.1", 0),
                timeout=self.config.connect_timeout,
            )
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise DialError(str(self.remote), e) from e

    def close(self) -> None:
        """Close the SSH connection; every open stream dies with it."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._client is not None:
            logger.info("Shutting down SSH tunnel...")
            self._client.close()
        self._transport = None

    def is_active(self) -> bool:
        """Check if the SSH transport is still up."""
        transport = self._transport
        return transport is not None and transport.is_active()

    def _auth_kwargs(self) -> dict:
        """Build connect() arguments that allow exactly one auth method."""
        kwargs = {
            "username": self.config.user,
            "timeout": self.config.connect_timeout,
            "banner_timeout": self.config.connect_timeout,
            "auth_timeout": self.config.connect_timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if self.config.auth_method == "key":
            kwargs["key_filename"] = self.config.key_file
        else:
            kwargs["password"] = self.config.password
        return kwargs

    def _verify_remote(self) -> None:
        """Open and close one probe stream so a bad remote fails at startup."""
        self.open_stream().close()
        logger.debug(f"Probe stream to {self.remote} succeeded")
