#!/usr/bin/env python3
"""
Rollback and Cleanup handlers for the multi-arch builder

RollbackHandler removes the images of a failed run from every build host.
CleanupHandler reclaims the temporary build state of a run, on every build
host and locally, whatever branch the run took. Both are best effort: a host
that cannot be cleaned is reported and skipped.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import typing

from rich.console import Console as RichConsole

from multiarch_builder.core.config import BuildConfig
from multiarch_builder.runners.base import BaseCommandRunner, CommandResult
from multiarch_builder.tools import commands
from multiarch_builder.tools.build_task import BuildTaskResult, StatusStore


class RollbackHandler:
    """Removes every image tag of the run after a build failure."""

    def __init__(self, config: BuildConfig, runner: BaseCommandRunner):
        self.config = config
        self.runner = runner
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rich_console = RichConsole()

    def run(self, failed_results: typing.Sequence[BuildTaskResult]) -> typing.List[CommandResult]:
        """Report the failed builds and force-remove the run's images.

        The removal is issued on every host of the mapping, not only on the
        hosts whose build failed.

        Args:
            failed_results: Results of the failed build tasks

        Returns:
            list: One removal result per build host.
        """
        for result in failed_results:
            self.rich_console.print(
                f"[bold red]❌ Build of {result.architecture} on remote host "
                f"'{result.target}' finished with non-zero exit code "
                f"{result.exit_code}.[/bold red] See the output above."
            )
        self.rich_console.print(
            f"[yellow]🗑️  Created images {self.config.image.wildcard} will be removed[/yellow]"
        )

        removals = self.runner.run_on_all(
            commands.remove_images(self.config.image.wildcard), best_effort=True
        )
        for removal in removals:
            if not removal.success:
                self.logger.error(
                    f"Could not remove images on {removal.target} "
                    f"(exit code {removal.exit_code})"
                )
        return removals


class CleanupHandler:
    """Reclaims build cache, images, workspaces and status markers."""

    def __init__(
        self,
        config: BuildConfig,
        runner: BaseCommandRunner,
        status_store: typing.Optional[StatusStore] = None,
    ):
        self.config = config
        self.runner = runner
        self.status_store = status_store
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rich_console = RichConsole()

    def steps(self) -> typing.List[typing.Tuple[str, str]]:
        return [
            ("prune build cache", commands.builder_prune()),
            ("remove images", commands.remove_images(self.config.image.wildcard)),
            ("remove workspace", commands.remove_dir(self.config.working_dir)),
        ]

    def run(self) -> typing.List[str]:
        """Run every cleanup step on every build host.

        Failures are logged and collected, never raised.

        Returns:
            list: Descriptions of the steps that failed.
        """
        self.rich_console.print(f"\n[dim]{'=' * 60}[/dim]")
        self.rich_console.print(
            "[bold cyan]🧹 Cleanup the temporary data on all hosts[/bold cyan]"
        )

        failures = []
        for step, command in self.steps():
            for result in self.runner.run_on_all(command, best_effort=True):
                if not result.success:
                    message = f"{step} on {result.target} (exit code {result.exit_code})"
                    self.logger.warning(f"Cleanup failed: {message}")
                    failures.append(message)

        if self.status_store is not None:
            try:
                self.status_store.remove()
            except OSError as e:
                self.logger.warning(f"Could not remove status markers {self.status_store.path}: {e}")
                failures.append(f"remove status markers ({e})")

        return failures
