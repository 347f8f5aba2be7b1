"""Shared fixtures: an in-memory tunnel and helpers for socket tests."""

import os
import queue
import socket
import threading

import pytest

from tunnelfwd.config.models import Address, ForwardConfig
from tunnelfwd.utils.exceptions import DialError, SSHTunnelError

ENV_KEYS = (
    "TUNNELFWD_LOCAL", "TUNNELFWD_SSH", "TUNNELFWD_REMOTE", "TUNNELFWD_USER",
    "TUNNELFWD_PASSWORD", "TUNNELFWD_KEY", "TUNNELFWD_KEEPALIVE", "TUNNELFWD_ISOLATE_ERRORS",
)


class LoopbackTunnel:
    """Tunnel stand-in whose streams are socketpairs; the far ends are the 'remote'."""

    instances = 0

    def __init__(self, config=None):
        LoopbackTunnel.instances += 1
        self.config = config
        self.started = False
        self.closed = False
        self.fail_dial = False
        self.stream_factory = None
        self.opened = 0
        self.origins = []
        self.remote_ends = queue.Queue()
        self._lock = threading.Lock()
        self._sockets = []

    def start(self):
        if self.started:
            raise SSHTunnelError("SSH tunnel already started")
        self.started = True

    def open_stream(self, origin=None):
        if self.closed or self.fail_dial:
            raise DialError("stub:80", "connection refused")
        self.opened += 1
        self.origins.append(origin)
        if self.stream_factory is not None:
            return self.stream_factory()
        near, far = socket.socketpair()
        with self._lock:
            self._sockets.extend((near, far))
        self.remote_ends.put(far)
        return near

    def next_remote(self, timeout=5.0) -> socket.socket:
        far = self.remote_ends.get(timeout=timeout)
        far.settimeout(timeout)
        return far

    def close(self):
        self.closed = True
        with self._lock:
            sockets = list(self._sockets)
        for sock in sockets:
            sock.close()


class FailingStream:
    """A stream whose reads fail immediately, like a channel reset by the remote."""

    def __init__(self):
        self.closed = False

    def recv(self, size):
        raise ConnectionResetError("connection reset by remote")

    def sendall(self, data):
        raise ConnectionResetError("connection reset by remote")

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True


def recv_exact(sock: socket.socket, size: int, timeout: float = 5.0) -> bytes:
    sock.settimeout(timeout)
    chunks = []
    remaining = size
    while remaining:
        data = sock.recv(remaining)
        if not data:
            break
        chunks.append(data)
        remaining -= len(data)
    return b"".join(chunks)


@pytest.fixture
def make_config():
    def factory(**overrides):
        values = dict(
            local=Address("127.0.0.1", 0),
            ssh=Address("127.0.0.1", 22),
            remote=Address("10.0.0.5", 80),
            user="tester",
            password="secret",
        )
        values.update(overrides)
        return ForwardConfig(**values)
    return factory


@pytest.fixture
def loopback_tunnel():
    tunnel = LoopbackTunnel()
    yield tunnel
    tunnel.close()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove TUNNELFWD_* variables and restore them after the test."""
    for key in ENV_KEYS:
        # setenv first so the original state is recorded even when unset
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "id_test"
    path.write_text("not a real key\n")
    os.chmod(path, 0o600)
    return str(path)
