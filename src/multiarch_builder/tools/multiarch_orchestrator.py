#!/usr/bin/env python3
"""
Multi-Arch Orchestrator

This module drives one run end to end: the concurrent per-architecture
builds, then either the rollback or the manifest publication followed by
the removal of the per-architecture tags, and finally the cleanup of every
build host. The cleanup runs exactly once whichever branch was taken.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
import logging
import time
import typing

from multiarch_builder.core.config import BuildConfig
from multiarch_builder.core.constants import ExitCode
from multiarch_builder.core.errors import (
    AuthenticationError,
    BuildError,
    CleanupError,
    ConnectionError as BuilderConnectionError,
    PruneError,
    PublishError,
    create_error_context,
    handle_error,
)
from multiarch_builder.runners.base import BaseCommandRunner
from multiarch_builder.tools.build_task import StatusStore
from multiarch_builder.tools.coordinator import BuildCoordinator, RunResult
from multiarch_builder.tools.manifest_publisher import ManifestPublisher
from multiarch_builder.tools.registry_client import RegistryClient, TagPruner
from multiarch_builder.tools.rollback import CleanupHandler, RollbackHandler


class MultiArchOrchestrator:
    """Orchestrator of a multi-arch image run."""

    def __init__(
        self,
        config: BuildConfig,
        runner: typing.Optional[BaseCommandRunner] = None,
        registry_client: typing.Optional[RegistryClient] = None,
        live_output: bool = True,
    ):
        """Initialize the orchestrator.

        Args:
            config: The validated run configuration
            runner: Runner reaching the hosts, an SSH runner by default
            registry_client: Client of the registry API used for pruning
            live_output: Stream remote output of the default runner
        """
        self.config = config
        self._owns_runner = runner is None
        if runner is None:
            from multiarch_builder.runners.ssh_runner import SSHCommandRunner

            runner = SSHCommandRunner(config.arch_mappings, live_output=live_output)
        self.runner = runner
        self.registry_client = registry_client or RegistryClient(config.hub_api_url)
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self) -> RunResult:
        """Run the whole workflow.

        Returns:
            RunResult: The task results, the last phase reached and the
            exit code of the run.

        Raises:
            DispatchError: If an empty command reaches the runner. The
                cleanup has been attempted when this propagates.
        """
        result = RunResult(image=self.config.image.reference)
        start_time = time.time()
        status_store = StatusStore()
        try:
            self._run_phases(result, status_store)
        finally:
            result.total_duration = time.time() - start_time
            self._cleanup(status_store)
            if self._owns_runner:
                self.runner.close()
        return result

    def _run_phases(self, result: RunResult, status_store: StatusStore) -> None:
        result.phase = "build"
        coordinator = BuildCoordinator(self.config, self.runner, status_store)
        result.task_results = coordinator.run()

        if not result.all_succeeded:
            result.phase = "rollback"
            failed = result.failed_tasks
            RollbackHandler(self.config, self.runner).run(failed)
            result.exit_code = ExitCode.BUILD_FAILURE
            result.error_message = (
                f"{len(failed)} of {len(result.task_results)} builds failed: "
                + ", ".join(f"{r.architecture} on {r.target}" for r in failed)
            )
            handle_error(
                BuildError(
                    result.error_message,
                    context=create_error_context(
                        operation="build_images",
                        phase="build",
                        component="MultiArchOrchestrator",
                        tag=self.config.image.base_tag,
                    ),
                    suggestions=[
                        f"Images matching {self.config.image.wildcard} were removed from every host",
                        "Fix the failing build and start a new run",
                    ],
                )
            )
            return

        result.phase = "publish"
        try:
            ManifestPublisher(self.config, self.runner).publish()
        except (PublishError, BuilderConnectionError, AuthenticationError) as e:
            handle_error(e)
            result.exit_code = ExitCode.PUBLISH_FAILURE
            result.error_message = e.message
            return

        result.phase = "prune"
        try:
            TagPruner(self.config, self.registry_client).run()
        except PruneError as e:
            handle_error(e)
            result.exit_code = ExitCode.PRUNE_FAILURE
            result.error_message = e.message
            return

        result.phase = "complete"
        result.exit_code = ExitCode.SUCCESS

    def _cleanup(self, status_store: StatusStore) -> None:
        failures = CleanupHandler(self.config, self.runner, status_store).run()
        if failures:
            handle_error(
                CleanupError(
                    f"{len(failures)} cleanup steps failed, the result of the run is unchanged",
                    context=create_error_context(
                        operation="cleanup", phase="cleanup", component="CleanupHandler"
                    ),
                    suggestions=failures,
                )
            )

    def generate_report(self, result: RunResult, output_file: str) -> str:
        """Write the run report as JSON.

        Args:
            result: Result of the run
            output_file: Path of the report

        Returns:
            str: Path to the written report.
        """
        with open(output_file, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        self.logger.info(f"Run report written to {output_file}")
        return output_file
