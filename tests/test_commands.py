#!/usr/bin/env python3
"""
Tests for the remote command builders.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# built-in modules
import json
import shlex

# project modules
from multiarch_builder.core.config import RegistryCredentials
from multiarch_builder.tools import commands
from .fixtures.utils import make_config


class TestWorkspaceCommands:
    """Test workspace commands."""

    def test_reset_workspace(self):
        assert commands.reset_workspace("/tmp/build/amd64") == (
            "if [ -d /tmp/build/amd64 ]; then rm -rf /tmp/build/amd64; fi "
            "&& mkdir -p /tmp/build/amd64"
        )

    def test_paths_are_quoted(self):
        assert commands.remove_dir("/tmp/my build") == "rm -rf '/tmp/my build'"
        assert commands.make_dir("/tmp/a b") == "mkdir -p '/tmp/a b'"

    def test_clone_repo(self):
        assert commands.clone_repo("https://example.com/r.git", "main", "/tmp/w/name") == (
            "git clone --branch main --recursive --quiet --dissociate "
            "https://example.com/r.git /tmp/w/name"
        )


class TestDockerLogin:
    """Test the registry login command."""

    def test_password_piped_to_docker_login(self):
        command = commands.docker_login(RegistryCredentials(login="user", password="p a$s"))
        assert command == "echo 'p a$s' | docker login --username user --password-stdin"

    def test_token_written_to_docker_config(self):
        command = commands.docker_login(
            RegistryCredentials(token="dG9rZW4=", login="user", password="pass")
        )
        assert command.startswith("mkdir -p ~/.docker && echo ")
        assert command.endswith(" > ~/.docker/config.json")
        written = shlex.split(command.split("&& ", 1)[1])[1]
        assert json.loads(written) == {
            "auths": {"https://index.docker.io/v1/": {"auth": "dG9rZW4="}}
        }


class TestBuilderCommands:
    """Test buildx builder management."""

    def test_ensure_builder(self):
        assert commands.ensure_builder() == (
            'if [ -z "$(docker buildx ls | grep docker-multiarch)" ]; then '
            "docker buildx create --name docker-multiarch --driver docker-container --use; fi"
        )

    def test_remove_builder(self):
        assert commands.remove_builder() == (
            'if [ -n "$(docker buildx ls | grep docker-multiarch)" ]; then '
            "docker buildx rm docker-multiarch; fi"
        )

    def test_bootstrap_builder(self):
        assert commands.bootstrap_builder() == "docker buildx inspect --bootstrap docker-multiarch"


class TestBuildxBuild:
    """Test the per-architecture build command."""

    def test_cached_build(self):
        config = make_config(build_args="--build-arg A=1 --file Dockerfile.ci")
        command = commands.buildx_build(config, "linux/arm64/v8")

        assert command.startswith(
            "docker buildx build --builder docker-multiarch --pull --progress=plain "
            "--build-arg A=1 --file Dockerfile.ci --platform=linux/arm64/v8 "
        )
        cache_from = [
            "--cache-from=type=registry,ref=docker.io/name:cache",
            "--cache-from=type=registry,ref=docker.io/name:latest",
            "--cache-from=type=registry,ref=docker.io/name:v1",
            "--cache-from=type=registry,ref=docker.io/name:v1-arm64v8",
        ]
        positions = [command.index(option) for option in cache_from]
        assert positions == sorted(positions)
        assert "--cache-to=type=registry,ref=docker.io/name:cache,mode=max" in command
        assert "--no-cache" not in command
        assert command.endswith(
            "--tag name:v1-arm64v8 --push /tmp/docker_image/build_test/arm64v8/name"
        )

    def test_uncached_build(self):
        config = make_config(use_cache=False)
        command = commands.buildx_build(config, "linux/amd64")

        assert command == (
            "docker buildx build --pull --progress=plain --platform=linux/amd64 "
            "--no-cache --tag name:v1-amd64 --push /tmp/docker_image/build_test/amd64/name"
        )

    def test_registry_host(self):
        config = make_config(registry="registry.example.com:5000")
        assert commands.cache_sources(config, "linux/amd64")[0] == (
            "registry.example.com:5000/name:cache"
        )


class TestImageAndManifestCommands:
    """Test image removal and manifest commands."""

    def test_remove_images_wildcard_is_quoted(self):
        assert commands.remove_images("name:v1*") == (
            "if [ -n \"$(docker image ls 'name:v1*' --quiet)\" ]; then "
            "docker rmi --force $(docker image ls 'name:v1*' --quiet); fi"
        )

    def test_manifest_create(self):
        assert commands.manifest_create("name:v1", ["name:v1-amd64", "name:v1-arm64v8"]) == (
            "docker manifest create name:v1 --amend name:v1-amd64 --amend name:v1-arm64v8"
        )

    def test_manifest_push(self):
        assert commands.manifest_push("name:v1") == "docker manifest push --purge name:v1"

    def test_builder_prune(self):
        assert commands.builder_prune() == "docker builder prune --force"
