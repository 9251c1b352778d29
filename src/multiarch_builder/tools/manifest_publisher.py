#!/usr/bin/env python3
"""
Manifest Publisher for the multi-arch builder

Creates the combined manifest of every per-architecture tag on the single
manifest host and pushes it, replacing any earlier manifest of that name.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import typing

from rich.console import Console as RichConsole

from multiarch_builder.core.config import BuildConfig
from multiarch_builder.core.errors import PublishError, create_error_context
from multiarch_builder.runners.base import BaseCommandRunner
from multiarch_builder.tools import commands


class ManifestPublisher:
    """Publishes the combined manifest of a successful run."""

    def __init__(self, config: BuildConfig, runner: BaseCommandRunner):
        self.config = config
        self.runner = runner
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rich_console = RichConsole()

    def arch_references(self) -> typing.List[str]:
        return [
            f"{self.config.image.name}:{tag}" for tag in self.config.arch_tags
        ]

    def steps(self) -> typing.List[typing.Tuple[str, str, bool]]:
        """Get the (step name, command, secret) sequence run on the manifest host."""
        reference = self.config.image.reference
        return [
            ("registry login", commands.docker_login(self.config.credentials), True),
            (
                "create manifest",
                commands.manifest_create(reference, self.arch_references()),
                False,
            ),
            ("push manifest", commands.manifest_push(reference), False),
        ]

    def publish(self) -> str:
        """Create and push the combined manifest.

        Must only be called once every build task succeeded, the manifest
        amends every per-architecture tag of the run.

        Returns:
            str: The published image reference.

        Raises:
            PublishError: If a step fails on the manifest host.
        """
        reference = self.config.image.reference
        target = self.config.manifest_host
        self.rich_console.print(f"\n[dim]{'=' * 60}[/dim]")
        self.rich_console.print(
            f"[bold blue]🧩 Creating combined manifest: {reference}[/bold blue] "
            f"on [cyan]{target.label}[/cyan]"
        )

        for step, command, secret in self.steps():
            self.logger.info(f"[manifest] {step}")
            result = self.runner.run_on(target, command, secret=secret, prefix="[manifest] ")
            if not result.success:
                context = create_error_context(
                    operation=step.replace(" ", "_"),
                    phase="publish",
                    component="ManifestPublisher",
                    host=target.label,
                    tag=self.config.image.base_tag,
                )
                raise PublishError(
                    f"Step '{step}' for {reference} failed on {target.label} "
                    f"with exit code {result.exit_code}",
                    context=context,
                    suggestions=[
                        "The per-architecture images are valid and left in the registry",
                        "Re-run the manifest commands on the manifest host to publish them",
                    ],
                )

        self.rich_console.print(f"[bold green]✅ Published {reference}[/bold green]")
        return reference
