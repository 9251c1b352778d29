"""Test the cli module.

This module tests the Typer-based command-line interface. The orchestrator
is mocked, no host is contacted.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# built-in modules
import json
import os
import tempfile
from unittest.mock import MagicMock, patch

# third-party modules
import pytest
from typer.testing import CliRunner

# project modules
from multiarch_builder import __version__
from multiarch_builder.cli import (
    app,
    setup_logging,
    display_results_table,
    ExitCode,
)
from multiarch_builder.core.errors import DispatchError
from multiarch_builder.tools.build_task import BuildTaskResult, TaskStatus
from multiarch_builder.tools.coordinator import RunResult


ENV = {
    "IMAGE_NAME": "name",
    "IMAGE_TAG": "v1",
    "REPO_URL": "https://example.com/org/dockerfiles.git",
    "DOCKER_LOGIN": "user",
    "DOCKER_PASS": "s3cret",
    "BASE_MANIFEST_CONNECTION": "ssh -A builder@hostA",
    "ARCH_CONNECTIONS_MAPPING": "linux/amd64::ssh -A builder@hostA; linux/arm64/v8::ssh -A builder@hostB",
    "WORKING_DIR": "/tmp/docker_image/build_test",
}


def _run_result(exit_code=0, phase="complete", statuses=(TaskStatus.SUCCEEDED, TaskStatus.SUCCEEDED)):
    task_results = [
        BuildTaskResult(
            architecture=architecture,
            target=target,
            arch_tag=tag,
            status=status,
            exit_code=0 if status == TaskStatus.SUCCEEDED else 1,
            duration=12.5,
        )
        for (architecture, target, tag), status in zip(
            [
                ("linux/amd64", "builder@hostA", "v1-amd64"),
                ("linux/arm64/v8", "builder@hostB", "v1-arm64v8"),
            ],
            statuses,
        )
    ]
    return RunResult(
        image="name:v1",
        task_results=task_results,
        phase=phase,
        exit_code=exit_code,
        error_message=None if exit_code == 0 else "failed",
    )


class TestSetupLogging:
    """Test the setup_logging function."""

    @patch("multiarch_builder.cli.logging.basicConfig")
    def test_setup_logging_verbose(self, mock_basic_config):
        setup_logging(verbose=True)
        assert mock_basic_config.call_args[1]["level"] == 10

    @patch("multiarch_builder.cli.logging.basicConfig")
    def test_setup_logging_normal(self, mock_basic_config):
        setup_logging(verbose=False)
        assert mock_basic_config.call_args[1]["level"] == 20


class TestDisplayResultsTable:
    """Test the results table."""

    @patch("multiarch_builder.cli.console")
    def test_display_results_table(self, mock_console):
        display_results_table(_run_result().to_dict(), "Build Results")
        table = mock_console.print.call_args[0][0]
        assert table.row_count == 2

    @patch("multiarch_builder.cli.console")
    def test_display_results_table_empty(self, mock_console):
        display_results_table({"task_results": []}, "Build Results")
        table = mock_console.print.call_args[0][0]
        assert table.row_count == 1


class TestBuildCommand:
    """Test the build command."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_build_command_success(self, mock_orchestrator_class):
        mock_orchestrator = MagicMock()
        mock_orchestrator.run.return_value = _run_result()
        mock_orchestrator_class.return_value = mock_orchestrator

        result = self.runner.invoke(app, ["build"], env=ENV)

        assert result.exit_code == ExitCode.SUCCESS
        config = mock_orchestrator_class.call_args[0][0]
        assert config.image.reference == "name:v1"
        assert config.architectures == ["linux/amd64", "linux/arm64/v8"]
        assert config.use_cache
        assert mock_orchestrator_class.call_args[1]["live_output"] is True

    @pytest.mark.parametrize(
        "exit_code,phase",
        [
            (ExitCode.BUILD_FAILURE, "rollback"),
            (ExitCode.PUBLISH_FAILURE, "publish"),
            (ExitCode.PRUNE_FAILURE, "prune"),
        ],
    )
    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_build_command_failure_exit_codes(self, mock_orchestrator_class, exit_code, phase):
        mock_orchestrator_class.return_value.run.return_value = _run_result(
            exit_code=exit_code, phase=phase
        )

        result = self.runner.invoke(app, ["build"], env=ENV)

        assert result.exit_code == exit_code

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_options_override_environment(self, mock_orchestrator_class):
        mock_orchestrator_class.return_value.run.return_value = _run_result()

        result = self.runner.invoke(
            app,
            ["build", "--image-tag", "v2", "--no-cache", "--quiet-output"],
            env=ENV,
        )

        assert result.exit_code == ExitCode.SUCCESS
        config = mock_orchestrator_class.call_args[0][0]
        assert config.image.base_tag == "v2"
        assert not config.use_cache
        assert mock_orchestrator_class.call_args[1]["live_output"] is False

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_invalid_configuration(self, mock_orchestrator_class):
        result = self.runner.invoke(app, ["build"], env=dict(ENV, ARCH_CONNECTIONS_MAPPING=""))

        assert result.exit_code == ExitCode.INVALID_ARGS
        mock_orchestrator_class.assert_not_called()

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_missing_manifest_host(self, mock_orchestrator_class):
        result = self.runner.invoke(app, ["build"], env=dict(ENV, BASE_MANIFEST_CONNECTION=""))

        assert result.exit_code == ExitCode.INVALID_ARGS
        mock_orchestrator_class.assert_not_called()

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_dispatch_error(self, mock_orchestrator_class):
        mock_orchestrator_class.return_value.run.side_effect = DispatchError(
            "Remote command cannot be empty"
        )

        result = self.runner.invoke(app, ["build"], env=ENV)

        assert result.exit_code == ExitCode.FAILURE

    @patch("multiarch_builder.cli.MultiArchOrchestrator")
    def test_report_output(self, mock_orchestrator_class):
        mock_orchestrator = mock_orchestrator_class.return_value
        mock_orchestrator.run.return_value = _run_result()

        with tempfile.TemporaryDirectory() as tmp_dir:
            report = os.path.join(tmp_dir, "report.json")
            result = self.runner.invoke(app, ["build", "--report-output", report], env=ENV)

        assert result.exit_code == ExitCode.SUCCESS
        mock_orchestrator.generate_report.assert_called_once_with(
            mock_orchestrator.run.return_value, report
        )


class TestPlanCommand:
    """Test the plan command."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_plan(self):
        result = self.runner.invoke(app, ["plan"], env=ENV)

        assert result.exit_code == ExitCode.SUCCESS
        assert "name:v1-arm64v8" in result.output
        assert "Configuration is valid" in result.output

    def test_plan_output(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            output = os.path.join(tmp_dir, "plan.json")
            result = self.runner.invoke(app, ["plan", "--output", output], env=ENV)
            with open(output) as f:
                plan = json.load(f)

        assert result.exit_code == ExitCode.SUCCESS
        assert plan["image"] == "name:v1"
        assert plan["manifest_host"] == "builder@hostA"
        assert [b["arch_tag"] for b in plan["builds"]] == ["v1-amd64", "v1-arm64v8"]

    def test_plan_duplicate_architecture(self):
        env = dict(
            ENV,
            ARCH_CONNECTIONS_MAPPING="linux/amd64::builder@hostA;linux/amd64::builder@hostB",
        )
        result = self.runner.invoke(app, ["plan"], env=env)

        assert result.exit_code == ExitCode.INVALID_ARGS


class TestMainCallback:
    """Test the root callback."""

    def test_version(self):
        result = CliRunner().invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
