"""Configuration loading from environment variables and command-line options."""

import argparse
import os
from typing import Optional, Sequence

from dotenv import load_dotenv

from .models import Address, ForwardConfig
from ..utils.exceptions import ConfigurationError
from ..utils.logging import get_logger

logger = get_logger("config")

DEFAULT_LOCAL = "127.0.0.1:10080"
DEFAULT_SSH = "127.0.0.1:22"

_TRUE_VALUES = ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser; unset options fall back to the environment."""
    parser = argparse.ArgumentParser(
        prog="tunnelfwd",
        description="Forward a local TCP port to a remote address through one SSH connection.",
    )
    parser.add_argument("--local", "-local",
                        help=f"Local address and port to listen on (default: {DEFAULT_LOCAL})")
    parser.add_argument("--ssh", "-ssh",
                        help=f"SSH host address and port (default: {DEFAULT_SSH})")
    parser.add_argument("--remote", "-remote",
                        help="Remote address and port reachable from the SSH host, e.g. 127.0.0.1:80")
    parser.add_argument("--user", "-user", help="SSH user to login")
    parser.add_argument("--pwd", "-pwd", dest="password",
                        help="SSH user password (used only when no key file is given)")
    parser.add_argument("--key", "-key", dest="key_file",
                        help="SSH private key file path, e.g. ~/.ssh/id_rsa")
    parser.add_argument("--keepalive", type=int,
                        help="Send SSH keepalives every N seconds (0 disables)")
    parser.add_argument("--isolate-errors", action="store_true", default=None,
                        help="Close only the failing connection instead of shutting down")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--log-file", help="Also write logs to logs/<LOG_FILE>")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line options."""
    return build_parser().parse_args(argv)


def load_config(args: Optional[argparse.Namespace] = None) -> ForwardConfig:
    """
    Load and validate configuration from the environment and command line.

    Command-line options take precedence over environment variables, which
    may come from a ``.env`` file.

    Args:
        args: Parsed command-line options (parsed from ``sys.argv`` if omitted)

    Returns:
        Validated forwarder configuration

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if args is None:
        args = parse_args()

    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    logger.debug("Loading configuration from environment and command line")

    remote = _pick(args.remote, "TUNNELFWD_REMOTE")
    if not remote:
        raise ConfigurationError("Remote address is missing")

    try:
        keepalive = args.keepalive
        if keepalive is None:
            keepalive = int(_pick(None, "TUNNELFWD_KEEPALIVE") or 0)

        isolate = args.isolate_errors
        if isolate is None:
            isolate = (_pick(None, "TUNNELFWD_ISOLATE_ERRORS") or "").lower() in _TRUE_VALUES

        key_file = _pick(args.key_file, "TUNNELFWD_KEY")
        if key_file:
            key_file = os.path.expanduser(key_file)

        config = ForwardConfig(
            local=Address.parse(_pick(args.local, "TUNNELFWD_LOCAL") or DEFAULT_LOCAL),
            ssh=Address.parse(_pick(args.ssh, "TUNNELFWD_SSH") or DEFAULT_SSH),
            remote=Address.parse(remote),
            user=_pick(args.user, "TUNNELFWD_USER") or "",
            password=_pick(args.password, "TUNNELFWD_PASSWORD"),
            key_file=key_file,
            keepalive_interval=keepalive,
            pair_errors_fatal=not isolate,
        )

    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Configuration validation failed: {e}") from e

    if config.key_file and config.password:
        logger.warning("Both a key file and a password are configured; using the key file")

    logger.debug("Configuration loaded and validated successfully")
    return config


def _pick(cli_value: Optional[str], env_key: str) -> Optional[str]:
    """Return the command-line value if given, else the environment variable."""
    if cli_value:
        return cli_value
    return os.getenv(env_key) or None
