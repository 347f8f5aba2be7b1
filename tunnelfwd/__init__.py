"""
Tunnel Forward - forward a local TCP port to a remote address through SSH.

This package provides functionality to:
- Open one SSH connection to an intermediary host
- Relay every local connection over its own channel to a fixed remote address
- Shut everything down on the first fatal error or interrupt
"""

__version__ = "1.0.0"
