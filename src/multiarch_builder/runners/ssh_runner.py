#!/usr/bin/env python3
"""
SSH Command Runner for the multi-arch builder

This module implements command dispatch to the build hosts using paramiko.
Targets named ``local`` are run on the orchestrating machine through the
Console class instead.
"""

import logging
import os
import threading
import time
from typing import Dict, Optional, Sequence

try:
    import paramiko
except ImportError:
    raise ImportError(
        "SSH runner requires paramiko. Install with: pip install paramiko"
    )

from multiarch_builder.core import constants
from multiarch_builder.core.config import ArchMapping, ExecutionTarget
from multiarch_builder.core.console import Console
from multiarch_builder.core.errors import (
    ConnectionError as BuilderConnectionError,
    AuthenticationError,
    create_error_context,
)
from multiarch_builder.runners.base import BaseCommandRunner, CommandResult


def _connection_error(target: ExecutionTarget, message: str, cause=None):
    context = create_error_context(
        operation="ssh_connection",
        component="SSHRunner",
        host=target.label,
    )
    return BuilderConnectionError(
        f"SSH error on {target.label}: {message}", context=context, cause=cause
    )


class SSHConnection:
    """Manages the SSH connection to a single host."""

    def __init__(self, target: ExecutionTarget, timeout: int = constants.SSH_CONNECT_TIMEOUT):
        """Initialize SSH connection.

        Args:
            target: Host to connect to
            timeout: Connection timeout in seconds
        """
        self.target = target
        self.timeout = timeout
        self.ssh_client: Optional[paramiko.SSHClient] = None
        self.logger = logging.getLogger(f"SSHConnection.{target.label}")
        self._max_connection_attempts = 3

    def connect(self) -> None:
        """Establish the SSH connection with retry logic.

        Raises:
            AuthenticationError: If the host rejects our credentials
            ConnectionError: If no attempt succeeded
        """
        last_error: Optional[Exception] = None
        for attempt in range(self._max_connection_attempts):
            try:
                client = paramiko.SSHClient()
                client.load_system_host_keys()
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

                connect_params = {
                    "hostname": self.target.hostname,
                    "port": self.target.port,
                    "timeout": self.timeout,
                    "allow_agent": True,
                }
                if self.target.username:
                    connect_params["username"] = self.target.username

                # Use SSH key if provided - expand path
                if self.target.key_filename:
                    expanded_key_path = os.path.expanduser(self.target.key_filename)
                    if os.path.exists(expanded_key_path):
                        connect_params["key_filename"] = expanded_key_path
                    else:
                        self.logger.warning(f"SSH key file not found: {expanded_key_path}")

                client.connect(**connect_params)
                self.ssh_client = client
                self.logger.debug(f"Connected to {self.target.label}")
                return

            except paramiko.AuthenticationException as e:
                context = create_error_context(
                    operation="ssh_connection", component="SSHRunner", host=self.target.label
                )
                raise AuthenticationError(
                    f"SSH authentication failed on {self.target.label}: {e}",
                    context=context,
                    cause=e,
                    suggestions=["Check that a non-interactive SSH key is loaded for this host"],
                )

            except (paramiko.SSHException, OSError) as e:
                last_error = e
                self.logger.warning(
                    f"SSH connection attempt {attempt + 1} to {self.target.label} failed: {e}"
                )
                if attempt < self._max_connection_attempts - 1:
                    time.sleep(2**attempt)  # Exponential backoff

        raise _connection_error(
            self.target,
            f"failed to connect after {self._max_connection_attempts} attempts",
            cause=last_error,
        )

    def is_connected(self) -> bool:
        """Check if connection is active."""
        if self.ssh_client is None:
            return False
        transport = self.ssh_client.get_transport()
        return transport is not None and transport.is_active()

    def close(self) -> None:
        """Close SSH connection safely."""
        if self.ssh_client:
            try:
                self.ssh_client.close()
            except (paramiko.SSHException, OSError) as e:
                self.logger.warning(f"Error closing connection: {e}")
            self.ssh_client = None

    def execute_command(self, command: str, live_output: bool = True, prefix: str = "") -> tuple:
        """Execute a command and wait for it to finish.

        stderr is merged into stdout. With agent forwarding enabled the local
        ssh agent is offered to the remote command, e.g. for git over ssh.

        Args:
            command: Command to execute
            live_output: Print output lines as they arrive
            prefix: Prefix of printed output lines

        Returns:
            Tuple of (exit_code, output)
        """
        if not self.is_connected():
            raise _connection_error(self.target, "connection not established")

        try:
            channel = self.ssh_client.get_transport().open_session()
            if self.target.forward_agent:
                paramiko.agent.AgentRequestHandler(channel)
            channel.set_combine_stderr(True)
            channel.exec_command(command)

            lines = []
            with channel.makefile("r") as stdout:
                for raw_line in stdout:
                    line = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
                    lines.append(line)
                    if live_output:
                        print(prefix + line, end="", flush=True)

            exit_code = channel.recv_exit_status()
            channel.close()
            return exit_code, "".join(lines).strip()

        except (paramiko.SSHException, OSError) as e:
            raise _connection_error(self.target, f"command execution failed: {e}", cause=e)


class LocalConnection:
    """Runs commands on the orchestrating machine."""

    def __init__(self, target: ExecutionTarget):
        self.target = target

    def connect(self) -> None:
        pass

    def is_connected(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def execute_command(self, command: str, live_output: bool = True, prefix: str = "") -> tuple:
        console = Console(shellVerbose=False, live_output=live_output)
        return console.run(command, timeout=None, secret=True, prefix=prefix)


class SSHCommandRunner(BaseCommandRunner):
    """Command runner dispatching over SSH, one cached connection per host."""

    def __init__(
        self,
        arch_mappings: Sequence[ArchMapping],
        live_output: bool = True,
        connect_timeout: int = constants.SSH_CONNECT_TIMEOUT,
    ):
        """Initialize SSH command runner.

        Args:
            arch_mappings: Architecture to host mapping of the run
            live_output: Stream remote output to the terminal
            connect_timeout: SSH connect timeout in seconds
        """
        super().__init__(arch_mappings)
        self.live_output = live_output
        self.connect_timeout = connect_timeout
        self.connections: Dict[ExecutionTarget, object] = {}
        self._lock = threading.Lock()
        self._target_locks: Dict[ExecutionTarget, threading.Lock] = {}

    def _get_connection(self, target: ExecutionTarget):
        # connects to different hosts may proceed in parallel
        with self._lock:
            target_lock = self._target_locks.setdefault(target, threading.Lock())
        with target_lock:
            connection = self.connections.get(target)
            if connection is not None and connection.is_connected():
                return connection

            if target.is_local:
                connection = LocalConnection(target)
            else:
                connection = SSHConnection(target, timeout=self.connect_timeout)
            connection.connect()
            with self._lock:
                self.connections[target] = connection
            return connection

    def _execute(
        self,
        target: ExecutionTarget,
        command: str,
        secret: bool = False,
        prefix: str = "",
    ) -> CommandResult:
        connection = self._get_connection(target)
        if self.live_output and not secret:
            print(f"{prefix}> {command}", flush=True)
        exit_code, output = connection.execute_command(
            command, live_output=self.live_output and not secret, prefix=prefix
        )
        if exit_code != 0:
            self.logger.warning(
                f"Command on {target.label} finished with exit code {exit_code}"
            )
        return CommandResult(
            target=target.label,
            command="<secret>" if secret else command,
            exit_code=exit_code,
            output="" if secret else output,
        )

    def close(self) -> None:
        """Close every cached connection."""
        with self._lock:
            for connection in self.connections.values():
                connection.close()
            self.connections.clear()
