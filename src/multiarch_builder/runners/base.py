#!/usr/bin/env python3
"""
Base Command Runner for the multi-arch builder

This module provides the abstract base class for runners dispatching
already-resolved command strings to the build hosts. A runner never
interpolates the command it is given: every locally known value is
substituted by the caller, and whatever is left (e.g. ``$(docker image ls
...)``) is evaluated by the shell of the target host.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Sequence

from multiarch_builder.core import constants
from multiarch_builder.core.config import ArchMapping, ExecutionTarget
from multiarch_builder.core.errors import (
    AuthenticationError,
    ConnectionError as BuilderConnectionError,
    DispatchError,
    create_error_context,
)


@dataclass
class CommandResult:
    """Result of one command executed on one host."""

    target: str
    command: str
    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "target": self.target,
            "command": self.command,
            "exit_code": self.exit_code,
        }


class BaseCommandRunner(ABC):
    """Abstract base class for command runners.

    Subclasses implement ``_execute``; the dispatch helpers below take care
    of the empty-command guard and host selection.
    """

    def __init__(self, arch_mappings: Sequence[ArchMapping]):
        """Initialize the runner.

        Args:
            arch_mappings: Architecture to host mapping of the run
        """
        self.arch_mappings = list(arch_mappings)
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def _execute(
        self,
        target: ExecutionTarget,
        command: str,
        secret: bool = False,
        prefix: str = "",
    ) -> CommandResult:
        """Execute a command on a host and wait for it to finish.

        Args:
            target: Host to run the command on
            command: Fully resolved command string
            secret: Hide the command text from logs
            prefix: Prefix of streamed output lines

        Returns:
            Result of the command
        """
        pass

    def close(self) -> None:
        """Release transport resources held by the runner."""

    def _check_command(self, command: str, target_label: str) -> None:
        if not command or not command.strip():
            context = create_error_context(
                operation="dispatch_command",
                component=self.__class__.__name__,
                host=target_label,
            )
            raise DispatchError("Remote command cannot be empty", context=context)

    def run_on(
        self,
        target: ExecutionTarget,
        command: str,
        secret: bool = False,
        prefix: str = "",
    ) -> CommandResult:
        """Run a command on one host.

        Raises:
            DispatchError: If the command is empty
        """
        self._check_command(command, target.label)
        if secret:
            self.logger.debug(f"Running <secret> on {target.label}")
        else:
            self.logger.debug(f"Running on {target.label}: {command}")
        return self._execute(target, command, secret=secret, prefix=prefix)

    def run_on_all(
        self, command: str, secret: bool = False, best_effort: bool = False
    ) -> List[CommandResult]:
        """Run a command on every build host, one host after another.

        A host listed for several architectures receives the command once.

        Args:
            command: Fully resolved command string
            secret: Hide the command text from logs
            best_effort: Keep going when a host cannot be reached, its
                result then carries the ssh failure exit code
        """
        self._check_command(command, "all")
        targets: List[ExecutionTarget] = []
        for mapping in self.arch_mappings:
            if mapping.target not in targets:
                targets.append(mapping.target)

        results = []
        for target in targets:
            try:
                results.append(
                    self.run_on(target, command, secret=secret, prefix=f"[{target.label}] ")
                )
            except (BuilderConnectionError, AuthenticationError) as e:
                if not best_effort:
                    raise
                self.logger.error(f"Skipping {target.label}: {e.message}")
                results.append(
                    CommandResult(
                        target=target.label,
                        command="<secret>" if secret else command,
                        exit_code=constants.SSH_FAILURE_EXIT_CODE,
                        output=e.message,
                    )
                )
        return results

    def run_on_arch(
        self, architecture: str, command: str, secret: bool = False
    ) -> List[CommandResult]:
        """Run a command on the host(s) mapped to an architecture."""
        self._check_command(command, architecture)
        return [
            self.run_on(mapping.target, command, secret=secret, prefix=f"[{architecture}] ")
            for mapping in self.arch_mappings
            if mapping.architecture == architecture
        ]

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
