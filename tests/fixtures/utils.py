"""Utility functions for tests.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# built-in modules
import threading
import typing

# third-party modules
import pytest

# project modules
from multiarch_builder.core.config import (
    ArchMapping,
    BuildConfig,
    ExecutionTarget,
    ImageIdentity,
    RegistryCredentials,
)
from multiarch_builder.runners.base import BaseCommandRunner, CommandResult


HOST_A = "ssh -A builder@hostA"
HOST_B = "ssh -A builder@hostB"
WORKING_DIR = "/tmp/docker_image/build_test"


def make_config(
    mapping: typing.Optional[typing.Sequence[typing.Tuple[str, str]]] = None,
    **overrides,
) -> BuildConfig:
    """Build a valid configuration of the two-host example run."""
    if mapping is None:
        mapping = [("linux/amd64", HOST_A), ("linux/arm64/v8", HOST_B)]
    kwargs = {
        "image": ImageIdentity("name", "v1"),
        "repo_url": "https://example.com/org/dockerfiles.git",
        "manifest_host": ExecutionTarget.from_string(HOST_A),
        "arch_mappings": tuple(
            ArchMapping(arch, ExecutionTarget.from_string(target))
            for arch, target in mapping
        ),
        "credentials": RegistryCredentials(login="user", password="s3cret"),
        "working_dir": WORKING_DIR,
    }
    kwargs.update(overrides)
    return BuildConfig(**kwargs)


class RecordingRunner(BaseCommandRunner):
    """Runner recording every dispatched command instead of running it.

    Args:
        arch_mappings: Mapping of the run
        fail_when: Predicate (target label, command) -> exit code; commands
            succeed when it is not given or returns 0
    """

    def __init__(self, arch_mappings, fail_when=None):
        super().__init__(arch_mappings)
        self.fail_when = fail_when
        self.calls: typing.List[typing.Tuple[str, str, bool]] = []
        self.closed = False
        self._lock = threading.Lock()

    def _execute(self, target, command, secret=False, prefix=""):
        with self._lock:
            self.calls.append((target.label, command, secret))
        exit_code = self.fail_when(target.label, command) if self.fail_when else 0
        return CommandResult(target=target.label, command=command, exit_code=exit_code)

    def close(self):
        self.closed = True

    def commands_on(self, label: str) -> typing.List[str]:
        return [command for target, command, _ in self.calls if target == label]

    def commands_containing(self, text: str) -> typing.List[typing.Tuple[str, str]]:
        return [(target, command) for target, command, _ in self.calls if text in command]


class FakeRegistryClient:
    """Registry client answering with fixed HTTP statuses."""

    def __init__(self, statuses: typing.Optional[typing.Dict[str, int]] = None):
        self.statuses = statuses or {}
        self.logins = 0
        self.deleted: typing.List[str] = []

    def login(self, credentials):
        self.logins += 1
        return "jwt-token"

    def delete_tag(self, token, image_name, tag):
        self.deleted.append(f"{image_name}:{tag}")
        return self.statuses.get(tag, 204)


@pytest.fixture
def config() -> BuildConfig:
    return make_config()


@pytest.fixture
def runner(config) -> RecordingRunner:
    return RecordingRunner(config.arch_mappings)
