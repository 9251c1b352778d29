#!/usr/bin/env python3
"""
Tests for the SSH command runner.

paramiko is patched out, no host is contacted.
"""

from unittest.mock import MagicMock, patch

import paramiko
import pytest

from multiarch_builder.core.config import ArchMapping, ExecutionTarget
from multiarch_builder.core.errors import (
    AuthenticationError,
    ConnectionError as BuilderConnectionError,
)
from multiarch_builder.runners.ssh_runner import (
    LocalConnection,
    SSHCommandRunner,
    SSHConnection,
)


def _mock_client(lines=(b"step 1\n", b"step 2\n"), exit_code=0):
    client = MagicMock()
    channel = MagicMock()
    channel.makefile.return_value.__enter__.return_value = iter(lines)
    channel.recv_exit_status.return_value = exit_code
    client.get_transport.return_value.open_session.return_value = channel
    client.get_transport.return_value.is_active.return_value = True
    return client, channel


class TestSSHConnection:
    """Test SSHConnection."""

    @patch("multiarch_builder.runners.ssh_runner.paramiko.SSHClient")
    def test_connect_parameters(self, mock_ssh_client):
        client, _ = _mock_client()
        mock_ssh_client.return_value = client
        target = ExecutionTarget.from_string("ssh -p 2222 builder@hostA")

        connection = SSHConnection(target, timeout=5)
        connection.connect()

        client.connect.assert_called_once_with(
            hostname="hostA", port=2222, timeout=5, allow_agent=True, username="builder"
        )
        assert connection.is_connected()

    @patch("multiarch_builder.runners.ssh_runner.time.sleep")
    @patch("multiarch_builder.runners.ssh_runner.paramiko.SSHClient")
    def test_connect_retries_then_fails(self, mock_ssh_client, mock_sleep):
        mock_ssh_client.return_value.connect.side_effect = OSError("no route to host")
        connection = SSHConnection(ExecutionTarget.from_string("builder@hostA"))

        with pytest.raises(BuilderConnectionError, match="failed to connect after 3 attempts"):
            connection.connect()
        assert mock_ssh_client.return_value.connect.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("multiarch_builder.runners.ssh_runner.paramiko.SSHClient")
    def test_authentication_failure_is_not_retried(self, mock_ssh_client):
        mock_ssh_client.return_value.connect.side_effect = paramiko.AuthenticationException(
            "denied"
        )
        connection = SSHConnection(ExecutionTarget.from_string("builder@hostA"))

        with pytest.raises(AuthenticationError):
            connection.connect()
        assert mock_ssh_client.return_value.connect.call_count == 1

    def test_execute_requires_connection(self):
        connection = SSHConnection(ExecutionTarget.from_string("builder@hostA"))
        with pytest.raises(BuilderConnectionError, match="connection not established"):
            connection.execute_command("uname -m")

    def test_execute_command_streams_prefixed_lines(self, capsys):
        client, channel = _mock_client(exit_code=3)
        connection = SSHConnection(ExecutionTarget.from_string("builder@hostA"))
        connection.ssh_client = client

        exit_code, output = connection.execute_command(
            "docker buildx build .", live_output=True, prefix="[linux/amd64] "
        )

        assert exit_code == 3
        assert output == "step 1\nstep 2"
        channel.set_combine_stderr.assert_called_once_with(True)
        channel.exec_command.assert_called_once_with("docker buildx build .")
        captured = capsys.readouterr()
        assert "[linux/amd64] step 1\n[linux/amd64] step 2\n" in captured.out

    @patch("multiarch_builder.runners.ssh_runner.paramiko.agent.AgentRequestHandler")
    def test_agent_forwarding(self, mock_agent_handler):
        client, channel = _mock_client()
        connection = SSHConnection(ExecutionTarget.from_string("ssh -A builder@hostA"))
        connection.ssh_client = client

        connection.execute_command("git clone repo", live_output=False)

        mock_agent_handler.assert_called_once_with(channel)


class TestLocalConnection:
    """Test LocalConnection."""

    def test_runs_through_console(self):
        connection = LocalConnection(ExecutionTarget.from_string("local"))
        with patch("multiarch_builder.runners.ssh_runner.Console") as mock_console:
            mock_console.return_value.run.return_value = (0, "ok")
            assert connection.execute_command("echo ok", live_output=False) == (0, "ok")
        mock_console.return_value.run.assert_called_once_with(
            "echo ok", timeout=None, secret=True, prefix=""
        )


class TestSSHCommandRunner:
    """Test SSHCommandRunner."""

    def _runner(self):
        mappings = [
            ArchMapping("linux/amd64", ExecutionTarget.from_string("builder@hostA")),
            ArchMapping("linux/386", ExecutionTarget.from_string("ssh builder@hostA")),
        ]
        return SSHCommandRunner(mappings, live_output=False)

    @patch("multiarch_builder.runners.ssh_runner.SSHConnection")
    def test_connection_is_cached_per_host(self, mock_connection_class):
        connection = mock_connection_class.return_value
        connection.is_connected.return_value = True
        connection.execute_command.return_value = (0, "x86_64")
        runner = self._runner()

        runner.run_on_arch("linux/amd64", "uname -m")
        runner.run_on_arch("linux/386", "uname -m")

        assert mock_connection_class.call_count == 1
        connection.connect.assert_called_once()

    @patch("multiarch_builder.runners.ssh_runner.SSHConnection")
    def test_secret_command_is_masked(self, mock_connection_class):
        connection = mock_connection_class.return_value
        connection.execute_command.return_value = (1, "Error: password=s3cret")
        runner = self._runner()

        result = runner.run_on(
            ExecutionTarget.from_string("builder@hostA"),
            "echo s3cret | docker login",
            secret=True,
        )

        assert result.exit_code == 1
        assert result.command == "<secret>"
        assert result.output == ""
        connection.execute_command.assert_called_once_with(
            "echo s3cret | docker login", live_output=False, prefix=""
        )

    @patch("multiarch_builder.runners.ssh_runner.LocalConnection")
    @patch("multiarch_builder.runners.ssh_runner.SSHConnection")
    def test_local_target(self, mock_connection_class, mock_local_class):
        mock_local_class.return_value.execute_command.return_value = (0, "")
        runner = SSHCommandRunner(
            [ArchMapping("linux/amd64", ExecutionTarget.from_string("local"))],
            live_output=False,
        )

        runner.run_on_all("docker builder prune --force")

        mock_local_class.assert_called_once()
        mock_connection_class.assert_not_called()

    @patch("multiarch_builder.runners.ssh_runner.SSHConnection")
    def test_close(self, mock_connection_class):
        connection = mock_connection_class.return_value
        connection.execute_command.return_value = (0, "")
        runner = self._runner()
        runner.run_on_all("true")

        runner.close()

        connection.close.assert_called_once()
        assert runner.connections == {}
