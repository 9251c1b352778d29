#!/usr/bin/env python3
"""
Build Coordinator for the multi-arch builder

This module launches one build task per architecture, all of them before
any is awaited, and joins the full set before the run may go on. Nothing
after the join (rollback, manifest, pruning) starts until every task has
reached a terminal state. The exit codes recorded by the tasks are then read
back, and a task without a recorded zero exit code counts as failed.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import dataclasses
import logging
import threading
import time
import typing
from concurrent.futures import ThreadPoolExecutor, wait, ALL_COMPLETED
from dataclasses import dataclass, field

from rich.console import Console as RichConsole

from multiarch_builder.core.config import BuildConfig
from multiarch_builder.runners.base import BaseCommandRunner
from multiarch_builder.tools.build_task import (
    BuildTask,
    BuildTaskResult,
    StatusStore,
    TaskStatus,
)


@dataclass
class RunResult:
    """Overall result of one multi-arch run."""

    image: str
    task_results: typing.List[BuildTaskResult] = field(default_factory=list)
    phase: str = "build"
    exit_code: int = 0
    total_duration: float = 0.0
    error_message: typing.Optional[str] = None

    @property
    def failed_tasks(self) -> typing.List[BuildTaskResult]:
        return [result for result in self.task_results if not result.succeeded]

    @property
    def all_succeeded(self) -> bool:
        """True when there is at least one task and every task succeeded."""
        return bool(self.task_results) and not self.failed_tasks

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "image": self.image,
            "phase": self.phase,
            "exit_code": self.exit_code,
            "total_duration": self.total_duration,
            "error_message": self.error_message,
            "successful_builds": len(self.task_results) - len(self.failed_tasks),
            "failed_builds": len(self.failed_tasks),
            "task_results": [result.to_dict() for result in self.task_results],
        }


class BuildCoordinator:
    """Fans the build tasks out and joins them."""

    def __init__(
        self,
        config: BuildConfig,
        runner: BaseCommandRunner,
        status_store: typing.Optional[StatusStore] = None,
    ):
        """Initialize the coordinator.

        Args:
            config: The run configuration
            runner: Runner shared by every task
            status_store: Store receiving each task's exit code
        """
        self.config = config
        self.runner = runner
        self.status_store = status_store
        self.tasks: typing.List[BuildTask] = []
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rich_console = RichConsole()

    def create_tasks(self) -> typing.List[BuildTask]:
        """Create one pending task per mapping entry, in mapping order.

        Tasks building on the same host share one lock.
        """
        host_locks = {target: threading.Lock() for target in self.config.build_targets}
        self.tasks = [
            BuildTask(
                mapping,
                self.config,
                self.runner,
                self.status_store,
                host_lock=host_locks[mapping.target],
            )
            for mapping in self.config.arch_mappings
        ]
        return self.tasks

    def _check_recorded_statuses(
        self, tasks: typing.Sequence[BuildTask], results: typing.List[BuildTaskResult]
    ) -> typing.List[BuildTaskResult]:
        """Fail every task whose recorded exit code is missing or non-zero."""
        recorded = self.status_store.read_all()
        checked = []
        for task, result in zip(tasks, results):
            exit_code = recorded.get(task.mapping.tag_suffix)
            if result.succeeded and exit_code != 0:
                if exit_code is None:
                    message = "no exit code was recorded"
                    exit_code = 1
                else:
                    message = f"recorded exit code {exit_code}"
                self.logger.error(f"Build task {task.architecture}: {message}")
                result = dataclasses.replace(
                    result,
                    status=TaskStatus.FAILED,
                    exit_code=exit_code,
                    error_message=message,
                )
            checked.append(result)
        return checked

    def run(self) -> typing.List[BuildTaskResult]:
        """Run every build task concurrently and wait for all of them.

        Returns:
            list: Terminal results in mapping order, whatever order the
            tasks finished in.

        Raises:
            DispatchError: Re-raised from a task after the join.
        """
        tasks = self.create_tasks()
        self.rich_console.print(f"\n[dim]{'=' * 60}[/dim]")
        self.rich_console.print(
            f"[bold blue]🚀 Starting {len(tasks)} architecture builds of "
            f"{self.config.image.reference}[/bold blue]"
        )

        start_time = time.time()
        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="build") as pool:
            futures = [pool.submit(task.run) for task in tasks]

            self.rich_console.print(
                "[bold cyan]⏳ Waiting for completion of all architecture builds[/bold cyan]"
            )
            # join barrier, no timeout: a hung build hangs the run here
            wait(futures, return_when=ALL_COMPLETED)

        results = []
        for task, future in zip(tasks, futures):
            error = future.exception()
            if error is not None:
                self.logger.error(f"Build task {task.architecture} raised: {error}")
                raise error
            results.append(future.result())

        if self.status_store is not None:
            results = self._check_recorded_statuses(tasks, results)

        self.logger.info(
            f"All {len(results)} builds finished in {time.time() - start_time:.2f}s, "
            f"{sum(1 for r in results if r.status == TaskStatus.FAILED)} failed"
        )
        return results
