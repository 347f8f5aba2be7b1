"""Configuration data models."""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional


@dataclass(frozen=True)
class Address:
    """A TCP endpoint written as ``host:port``."""
    host: str
    port: int

    @classmethod
    def parse(cls, text: str) -> "Address":
        """
        Parse ``host:port`` or ``[ipv6]:port`` into an Address.

        Raises:
            ValueError: If the text is not a valid address
        """
        text = text.strip()
        if text.startswith("["):
            host, sep, rest = text[1:].partition("]")
            if not sep or not rest.startswith(":"):
                raise ValueError(f"Invalid address: {text!r}")
            port_text = rest[1:]
        else:
            host, sep, port_text = text.rpartition(":")
            if not sep:
                raise ValueError(f"Invalid address (expected host:port): {text!r}")
            if ":" in host:
                raise ValueError(f"IPv6 addresses must be bracketed: {text!r}")

        if not host:
            raise ValueError(f"Missing host in address: {text!r}")

        try:
            port = int(port_text)
        except ValueError:
            raise ValueError(f"Invalid port in address: {text!r}") from None

        if not (0 <= port <= 65535):
            raise ValueError(f"Port must be between 0 and 65535: {text!r}")

        return cls(host, port)

    def as_tuple(self) -> tuple[str, int]:
        return self.host, self.port

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ForwardConfig:
    """Complete forwarder configuration, built once at startup."""
    local: Address
    ssh: Address
    remote: Address
    user: str
    password: Optional[str] = None
    key_file: Optional[str] = None
    keepalive_interval: int = 0
    connect_timeout: float = 10.0
    pair_errors_fatal: bool = True

    def __post_init__(self):
        """Validate forwarder configuration after initialization."""
        if not self.user:
            raise ValueError("SSH user cannot be empty")

        if not self.key_file and not self.password:
            raise ValueError("Either a private key file or a password is required")

        if self.key_file and not Path(self.key_file).is_file():
            raise ValueError(f"SSH key file not found: {self.key_file}")

        if not (1 <= self.ssh.port <= 65535):
            raise ValueError("SSH port must be between 1 and 65535")

        if not (1 <= self.remote.port <= 65535):
            raise ValueError("Remote port must be between 1 and 65535")

        if self.keepalive_interval < 0:
            raise ValueError("Keepalive interval cannot be negative")

        if self.connect_timeout <= 0:
            raise ValueError("Connect timeout must be positive")

    @property
    def auth_method(self) -> Literal["key", "password"]:
        """The single auth method used to log in; a key file wins over a password."""
        if self.key_file:
            return "key"
        return "password"
