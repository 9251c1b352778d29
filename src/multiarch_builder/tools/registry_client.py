#!/usr/bin/env python3
"""
Registry API client and Tag Pruner for the multi-arch builder

The registry API is called with curl from the orchestrating machine. curl
exits with 0 on most HTTP errors, so every call writes the HTTP status code
and the status is checked explicitly. Secrets travel through the environment
of the curl process, never through its command line.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
import logging
import os
import typing

from rich.console import Console as RichConsole

from multiarch_builder.core.config import BuildConfig, RegistryCredentials
from multiarch_builder.core.console import Console
from multiarch_builder.core.errors import PruneError, create_error_context

LOGIN_PAYLOAD_ENV = "MULTIARCH_HUB_LOGIN"
TOKEN_ENV = "MULTIARCH_HUB_TOKEN"


def _split_status(output: str) -> typing.Tuple[str, int]:
    """Split curl output ending with the `-w '%{http_code}'` line."""
    body, _, status = output.rpartition("\n")
    try:
        return body, int(status.strip())
    except ValueError:
        return output, 0


def is_success_status(status: int) -> bool:
    return 200 <= status < 300


class RegistryClient:
    """Thin client of the registry's tag management API."""

    def __init__(self, api_url: str, console: typing.Optional[Console] = None):
        """Initialize the registry client.

        Args:
            api_url: Base URL of the API, e.g. https://hub.docker.com/v2
            console: Console used to run curl
        """
        self.api_url = api_url.rstrip("/")
        self.console = console or Console(shellVerbose=False)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _curl(self, command: str, env_extra: typing.Dict[str, str]) -> typing.Tuple[int, str, int]:
        env = dict(os.environ)
        env.update(env_extra)
        exit_code, output = self.console.run(command, timeout=120, env=env)
        body, status = _split_status(output)
        return exit_code, body, status

    def login(self, credentials: RegistryCredentials) -> str:
        """Get a short-lived API session token.

        Raises:
            PruneError: If the login call fails or returns no token.
        """
        url = f"{self.api_url}/users/login/"
        payload = json.dumps({"username": credentials.login, "password": credentials.password})
        command = (
            f"curl -s -H 'Content-Type: application/json' -X POST "
            f"-d \"${LOGIN_PAYLOAD_ENV}\" -w '\\n%{{http_code}}' '{url}'"
        )
        exit_code, body, status = self._curl(command, {LOGIN_PAYLOAD_ENV: payload})

        token = None
        if exit_code == 0 and is_success_status(status):
            try:
                token = json.loads(body).get("token")
            except (ValueError, AttributeError):
                token = None

        if not token:
            context = create_error_context(
                operation="registry_login", phase="prune", component="RegistryClient"
            )
            raise PruneError(
                f"Registry API login failed (curl exit code {exit_code}, HTTP status {status})",
                context=context,
                suggestions=["Check DOCKER_LOGIN and DOCKER_PASS"],
            )
        self.logger.debug("Obtained registry API token")
        return token

    def delete_tag(self, token: str, image_name: str, tag: str) -> int:
        """Delete one tag of a repository.

        Returns:
            int: The HTTP status code, 0 when no response was received.
        """
        url = f"{self.api_url}/repositories/{image_name}/tags/{tag}/"
        command = (
            f"curl -s -L -o /dev/null -w '%{{http_code}}' -X DELETE "
            f"-H \"Authorization: JWT ${TOKEN_ENV}\" '{url}'"
        )
        exit_code, body, status = self._curl(command, {TOKEN_ENV: token})
        if exit_code != 0:
            self.logger.error(f"curl exited with code {exit_code} deleting {image_name}:{tag}")
            return 0
        return status


class TagPruner:
    """Deletes the per-architecture tags once the combined manifest is pushed."""

    def __init__(self, config: BuildConfig, client: typing.Optional[RegistryClient] = None):
        self.config = config
        self.client = client or RegistryClient(config.hub_api_url)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rich_console = RichConsole()

    def run(self) -> typing.List[str]:
        """Delete every per-architecture tag, stopping at the first failure.

        Returns:
            list: The deleted tags.

        Raises:
            PruneError: On login failure or on the first failed delete. The
                combined manifest stays published in both cases.
        """
        image_name = self.config.image.name
        self.rich_console.print(f"\n[dim]{'=' * 60}[/dim]")
        self.rich_console.print(
            "[bold cyan]🏷️  Removing separate arch tags, keeping the combined manifest[/bold cyan]"
        )

        token = self.client.login(self.config.credentials)

        deleted = []
        for tag in self.config.arch_tags:
            status = self.client.delete_tag(token, image_name, tag)
            if not is_success_status(status):
                context = create_error_context(
                    operation="delete_tag",
                    phase="prune",
                    component="TagPruner",
                    tag=f"{image_name}:{tag}",
                )
                raise PruneError(
                    f"Unable to delete remote arch tag {image_name}:{tag} (HTTP status {status})",
                    context=context,
                    suggestions=[
                        f"The manifest {self.config.image.reference} is published and valid",
                        "Remaining per-architecture tags can be deleted by hand",
                    ],
                )
            self.rich_console.print(f"[green]🗑️  Deleted {image_name}:{tag}[/green]")
            deleted.append(tag)
        return deleted
