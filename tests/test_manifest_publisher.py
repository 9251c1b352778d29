#!/usr/bin/env python3
"""
Tests for the manifest publisher.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# third-party modules
import pytest

# project modules
from multiarch_builder.core.config import ExecutionTarget
from multiarch_builder.core.errors import PublishError
from multiarch_builder.tools.manifest_publisher import ManifestPublisher
from .fixtures.utils import RecordingRunner, make_config


class TestManifestPublisher:
    """Test ManifestPublisher."""

    def test_arch_references(self, config, runner):
        publisher = ManifestPublisher(config, runner)
        assert publisher.arch_references() == ["name:v1-amd64", "name:v1-arm64v8"]

    def test_publish_on_manifest_host_only(self):
        config = make_config(manifest_host=ExecutionTarget.from_string("ssh -A builder@hostM"))
        runner = RecordingRunner(config.arch_mappings)

        reference = ManifestPublisher(config, runner).publish()

        assert reference == "name:v1"
        assert {target for target, _, _ in runner.calls} == {"builder@hostM"}
        login, create, push = runner.calls
        assert login[2] is True
        assert "docker login" in login[1]
        assert create[1] == (
            "docker manifest create name:v1 --amend name:v1-amd64 --amend name:v1-arm64v8"
        )
        assert push[1] == "docker manifest push --purge name:v1"

    def test_failed_create_raises(self, config):
        runner = RecordingRunner(
            config.arch_mappings,
            fail_when=lambda target, command: 1 if "manifest create" in command else 0,
        )

        with pytest.raises(PublishError, match="create manifest") as exc_info:
            ManifestPublisher(config, runner).publish()

        assert exc_info.value.context.host == "builder@hostA"
        assert not exc_info.value.recoverable
        assert runner.commands_containing("manifest push") == []
