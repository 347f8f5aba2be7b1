from unittest import mock

import paramiko
import pytest

from tunnelfwd.config.models import Address
from tunnelfwd.core import tunnel as tunnel_module
from tunnelfwd.core.tunnel import SSHTunnel
from tunnelfwd.utils.exceptions import AuthError, DialError, SSHTunnelError, TunnelConnectError


@pytest.fixture
def ssh_client(monkeypatch):
    client = mock.MagicMock(name="SSHClient()")
    transport = client.get_transport.return_value
    transport.is_active.return_value = True
    monkeypatch.setattr(tunnel_module.paramiko, "SSHClient", mock.MagicMock(return_value=client))
    return client


def test_password_login_uses_only_the_password(make_config, ssh_client):
    tunnel = SSHTunnel(make_config(ssh=Address("bastion", 2222)))
    tunnel.start()

    args, kwargs = ssh_client.connect.call_args
    assert args == ("bastion",)
    assert kwargs["port"] == 2222
    assert kwargs["username"] == "tester"
    assert kwargs["password"] == "secret"
    assert "key_filename" not in kwargs
    assert kwargs["allow_agent"] is False
    assert kwargs["look_for_keys"] is False


def test_key_login_ignores_configured_password(make_config, ssh_client, key_file):
    tunnel = SSHTunnel(make_config(key_file=key_file, password="secret"))
    tunnel.start()

    _, kwargs = ssh_client.connect.call_args
    assert kwargs["key_filename"] == key_file
    assert "password" not in kwargs


def test_start_verifies_remote_with_a_probe_stream(make_config, ssh_client):
    tunnel = SSHTunnel(make_config())
    tunnel.start()

    transport = ssh_client.get_transport.return_value
    args, kwargs = transport.open_channel.call_args
    assert args == ("direct-tcpip",)
    assert kwargs["dest_addr"] == ("10.0.0.5", 80)
    transport.open_channel.return_value.close.assert_called_once()
    assert tunnel.is_active()


def test_authentication_failure(make_config, ssh_client):
    ssh_client.connect.side_effect = paramiko.AuthenticationException("denied")
    tunnel = SSHTunnel(make_config())

    with pytest.raises(AuthError, match="tester@127.0.0.1:22"):
        tunnel.start()
    ssh_client.close.assert_called_once()
    assert not tunnel.is_active()


@pytest.mark.parametrize("error", [
    ConnectionRefusedError("refused"),
    paramiko.SSHException("bad banner"),
])
def test_connect_failure(make_config, ssh_client, error):
    ssh_client.connect.side_effect = error

    with pytest.raises(TunnelConnectError):
        SSHTunnel(make_config()).start()


def test_unreachable_remote_fails_startup_and_closes(make_config, ssh_client):
    transport = ssh_client.get_transport.return_value
    transport.open_channel.side_effect = paramiko.ChannelException(2, "Connect failed")
    tunnel = SSHTunnel(make_config())

    with pytest.raises(DialError, match="10.0.0.5:80"):
        tunnel.start()
    ssh_client.close.assert_called_once()


def test_only_one_session_per_tunnel(make_config, ssh_client):
    tunnel = SSHTunnel(make_config())
    tunnel.start()

    with pytest.raises(SSHTunnelError, match="already started"):
        tunnel.start()
    assert ssh_client.connect.call_count == 1


def test_open_stream_passes_the_client_origin(make_config, ssh_client):
    tunnel = SSHTunnel(make_config())
    tunnel.start()
    transport = ssh_client.get_transport.return_value

    channel = tunnel.open_stream(("127.0.0.1", 51000))

    assert channel is transport.open_channel.return_value
    _, kwargs = transport.open_channel.call_args
    assert kwargs["src_addr"] == ("127.0.0.1", 51000)


def test_open_stream_on_dead_transport(make_config, ssh_client):
    tunnel = SSHTunnel(make_config())
    tunnel.start()
    ssh_client.get_transport.return_value.is_active.return_value = False

    with pytest.raises(DialError, match="not active"):
        tunnel.open_stream()


def test_open_stream_after_close(make_config, ssh_client):
    tunnel = SSHTunnel(make_config())
    tunnel.start()
    tunnel.close()
    tunnel.close()

    ssh_client.close.assert_called_once()
    with pytest.raises(DialError):
        tunnel.open_stream()


def test_keepalive_is_configured(make_config, ssh_client):
    SSHTunnel(make_config(keepalive_interval=15)).start()
    ssh_client.get_transport.return_value.set_keepalive.assert_called_once_with(15)


def test_keepalive_disabled_by_default(make_config, ssh_client):
    SSHTunnel(make_config()).start()
    ssh_client.get_transport.return_value.set_keepalive.assert_not_called()
