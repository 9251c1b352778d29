#!/usr/bin/env python3
"""
Build Task Module for the multi-arch builder

A build task brings one architecture's image into existence on its native
host: it resets the workspace, clones the build inputs, logs in to the
registry and runs the build tool, which pushes the image under the
architecture's tag. Every step runs on that one host only, and the first
failing step ends the task.

Tasks of architectures sharing a host share that host's docker login and
buildx builder. The steps touching them run under a lock held per host,
only the build itself overlaps.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import os
import shutil
import tempfile
import threading
import time
import typing
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum

from rich.console import Console as RichConsole

from multiarch_builder.core import constants
from multiarch_builder.core.config import ArchMapping, BuildConfig
from multiarch_builder.core.errors import (
    ConnectionError as BuilderConnectionError,
    AuthenticationError,
)
from multiarch_builder.runners.base import BaseCommandRunner
from multiarch_builder.tools import commands


class TaskStatus(Enum):
    """Lifecycle of a build task."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


@dataclass
class BuildTaskResult:
    """Terminal state of one build task."""

    architecture: str
    target: str
    arch_tag: str
    status: TaskStatus
    exit_code: int
    duration: float = 0.0
    failed_step: typing.Optional[str] = None
    error_message: typing.Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "architecture": self.architecture,
            "target": self.target,
            "arch_tag": self.arch_tag,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "duration": self.duration,
            "failed_step": self.failed_step,
            "error_message": self.error_message,
        }


class StatusStore:
    """Local directory holding one exit-code marker per build task.

    Each task writes only its own marker, so no locking is needed.
    """

    def __init__(self, base_dir: typing.Optional[str] = None):
        self.path = tempfile.mkdtemp(prefix=constants.STATUS_DIR_PREFIX, dir=base_dir)

    def record(self, name: str, exit_code: int) -> None:
        with open(os.path.join(self.path, name), "w") as f:
            f.write(f"{exit_code}\n")

    def read_all(self) -> typing.Dict[str, int]:
        statuses = {}
        for name in sorted(os.listdir(self.path)):
            with open(os.path.join(self.path, name)) as f:
                statuses[name] = int(f.read().strip())
        return statuses

    def remove(self) -> None:
        if os.path.isdir(self.path):
            shutil.rmtree(self.path)


class StepFailed(Exception):
    """A step of a build task finished with a non-zero exit code."""

    def __init__(self, step: str, exit_code: int):
        super().__init__(f"step '{step}' finished with exit code {exit_code}")
        self.step = step
        self.exit_code = exit_code


class BuildTask:
    """Unit of work producing and publishing one architecture's image."""

    # steps changing state shared by every task on the host
    HOST_STEPS = frozenset(
        ["registry login", "ensure builder", "bootstrap builder", "remove stale builder"]
    )

    def __init__(
        self,
        mapping: ArchMapping,
        config: BuildConfig,
        runner: BaseCommandRunner,
        status_store: typing.Optional[StatusStore] = None,
        host_lock: typing.Optional[threading.Lock] = None,
    ):
        """Initialize the build task.

        Args:
            mapping: Architecture and the host building it
            config: The run configuration
            runner: Runner used to reach the host
            status_store: Optional store receiving the task's exit code
            host_lock: Lock shared by the tasks building on the same host
        """
        self.mapping = mapping
        self.config = config
        self.runner = runner
        self.status_store = status_store
        self.host_lock = host_lock
        self.arch_tag = config.image.arch_tag(mapping.architecture)
        self.status = TaskStatus.PENDING
        self.logger = logging.getLogger(f"BuildTask.{mapping.tag_suffix}")
        self.rich_console = RichConsole()

    @property
    def architecture(self) -> str:
        return self.mapping.architecture

    def _run_step(self, step: str, command: str, secret: bool = False) -> None:
        self.logger.info(f"[{self.architecture}] {step}")
        result = self.runner.run_on(
            self.mapping.target, command, secret=secret, prefix=f"[{self.architecture}] "
        )
        if not result.success:
            raise StepFailed(step, result.exit_code)

    def steps(self) -> typing.List[typing.Tuple[str, str, bool]]:
        """Get the (step name, command, secret) sequence of this task."""
        config = self.config
        image_dir = config.image_workspace(self.architecture)
        steps = [
            (
                "reset workspace",
                commands.reset_workspace(config.task_workspace(self.architecture)),
                False,
            ),
            ("create image directory", commands.make_dir(image_dir), False),
            (
                "fetch build inputs",
                commands.clone_repo(config.repo_url, config.repo_branch, image_dir),
                False,
            ),
            ("registry login", commands.docker_login(config.credentials), True),
        ]
        if config.use_cache:
            steps += [
                ("ensure builder", commands.ensure_builder(), False),
                ("bootstrap builder", commands.bootstrap_builder(), False),
            ]
        else:
            steps.append(("remove stale builder", commands.remove_builder(), False))
        steps.append(("build and push", commands.buildx_build(config, self.architecture), False))
        return steps

    def run(self) -> BuildTaskResult:
        """Run every step of the task on its host.

        Step failures and connection problems end the task as FAILED; they
        never escape this method. An empty command is a programming error
        and is raised.

        Returns:
            BuildTaskResult: The terminal state of the task.
        """
        self.status = TaskStatus.RUNNING
        target_label = self.mapping.target.label
        self.rich_console.print(
            f"[bold blue]🔨 Starting build of {self.architecture}[/bold blue] "
            f"on [cyan]{target_label}[/cyan] as [cyan]{self.arch_tag}[/cyan]"
        )

        start_time = time.time()
        exit_code = 0
        failed_step = None
        error_message = None
        try:
            for step, command, secret in self.steps():
                failed_step = step
                shared = step in self.HOST_STEPS and self.host_lock is not None
                lock = self.host_lock if shared else nullcontext()
                with lock:
                    self._run_step(step, command, secret=secret)
            failed_step = None
        except StepFailed as e:
            exit_code = e.exit_code
            error_message = str(e)
        except (BuilderConnectionError, AuthenticationError) as e:
            exit_code = constants.SSH_FAILURE_EXIT_CODE
            error_message = e.message

        if self.status_store is not None:
            self.status_store.record(self.mapping.tag_suffix, exit_code)

        self.status = TaskStatus.SUCCEEDED if exit_code == 0 else TaskStatus.FAILED
        duration = time.time() - start_time

        if self.status == TaskStatus.SUCCEEDED:
            self.rich_console.print(
                f"[bold green]✅ Build of {self.architecture} finished[/bold green] "
                f"in {duration:.2f}s"
            )
        else:
            self.rich_console.print(
                f"[bold red]❌ Build of {self.architecture} on {target_label} failed:[/bold red] "
                f"{error_message}"
            )

        return BuildTaskResult(
            architecture=self.architecture,
            target=target_label,
            arch_tag=self.arch_tag,
            status=self.status,
            exit_code=exit_code,
            duration=duration,
            failed_step=failed_step,
            error_message=error_message,
        )
