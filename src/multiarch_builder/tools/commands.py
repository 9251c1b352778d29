#!/usr/bin/env python3
"""Module of remote command builders.

Every function here returns a fully resolved shell command string: all values
known locally are substituted (and quoted) now, and the string is then handed
unchanged to a runner. Only ``$(...)`` substitutions meant for the remote
shell are left in place.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import json
import shlex
import typing

# project modules
from multiarch_builder.core import constants
from multiarch_builder.core.config import BuildConfig, RegistryCredentials


def reset_workspace(working_dir: str) -> str:
    """Remove the working directory if present and recreate it."""
    path = shlex.quote(working_dir)
    return f"if [ -d {path} ]; then rm -rf {path}; fi && mkdir -p {path}"


def make_dir(path: str) -> str:
    return f"mkdir -p {shlex.quote(path)}"


def remove_dir(path: str) -> str:
    return f"rm -rf {shlex.quote(path)}"


def clone_repo(repo_url: str, branch: str, destination: str) -> str:
    """Fetch the build inputs at the given branch."""
    return (
        f"git clone --branch {shlex.quote(branch)} --recursive --quiet --dissociate "
        f"{shlex.quote(repo_url)} {shlex.quote(destination)}"
    )


def docker_login(credentials: RegistryCredentials) -> str:
    """Get the registry login command.

    With a token the docker config is written directly, `docker login` fails
    on hosts using a credentials helper (e.g. macOS) while a written auth entry
    works everywhere. Otherwise the password is piped to `docker login`.

    Args:
        credentials: The registry credentials.

    Returns:
        str: The login command, which contains secrets.
    """
    if credentials.has_token:
        docker_config = json.dumps(
            {"auths": {constants.DOCKER_AUTH_URL: {"auth": credentials.token}}}
        )
        return (
            "mkdir -p ~/.docker && "
            f"echo {shlex.quote(docker_config)} > ~/.docker/config.json"
        )
    return (
        f"echo {shlex.quote(credentials.password)} | docker login "
        f"--username {shlex.quote(credentials.login)} --password-stdin"
    )


def _builder_listed() -> str:
    return f'"$(docker buildx ls | grep {shlex.quote(constants.BUILDER_NAME)})"'


def ensure_builder() -> str:
    """Create the buildx builder used for registry cache export if absent."""
    return (
        f"if [ -z {_builder_listed()} ]; then "
        f"docker buildx create --name {constants.BUILDER_NAME} "
        f"--driver {constants.BUILDER_DRIVER} --use; fi"
    )


def bootstrap_builder() -> str:
    return f"docker buildx inspect --bootstrap {constants.BUILDER_NAME}"


def remove_builder() -> str:
    """Remove a builder left behind by an earlier cached build."""
    return (
        f"if [ -n {_builder_listed()} ]; then "
        f"docker buildx rm {constants.BUILDER_NAME}; fi"
    )


def registry_ref(config: BuildConfig, tag: str) -> str:
    return f"{config.registry}/{config.image.name}:{tag}"


def cache_sources(config: BuildConfig, architecture: str) -> typing.List[str]:
    """Cache refs read by a cached build, most shared first."""
    tags = [
        constants.CACHE_TAG,
        constants.LATEST_TAG,
        config.image.base_tag,
        config.image.arch_tag(architecture),
    ]
    return [registry_ref(config, tag) for tag in tags]


def buildx_build(config: BuildConfig, architecture: str) -> str:
    """Get the build command of one architecture.

    The image is pushed to the registry under the architecture's tag as part
    of the build.

    Args:
        config: The run configuration.
        architecture: The architecture to build.

    Returns:
        str: The build command.
    """
    parts = ["docker buildx build"]
    if config.use_cache:
        parts.append(f"--builder {constants.BUILDER_NAME}")
    parts += ["--pull", "--progress=plain"]
    if config.build_args:
        # passed through untouched, it is a fragment of build tool options
        parts.append(config.build_args)
    parts.append(f"--platform={shlex.quote(architecture)}")

    if config.use_cache:
        for ref in cache_sources(config, architecture):
            parts.append(f"--cache-from=type=registry,ref={shlex.quote(ref)}")
        cache_ref = registry_ref(config, constants.CACHE_TAG)
        parts.append(f"--cache-to=type=registry,ref={shlex.quote(cache_ref)},mode=max")
    else:
        parts.append("--no-cache")

    parts += [
        f"--tag {shlex.quote(config.image.arch_reference(architecture))}",
        "--push",
        shlex.quote(config.image_workspace(architecture)),
    ]
    return " ".join(parts)


def remove_images(wildcard: str) -> str:
    """Force-remove every local image matching a reference pattern.

    Nothing is removed, and the command succeeds, when no image matches.
    """
    listing = f"docker image ls {shlex.quote(wildcard)} --quiet"
    return f'if [ -n "$({listing})" ]; then docker rmi --force $({listing}); fi'


def manifest_create(reference: str, arch_references: typing.Sequence[str]) -> str:
    parts = [f"docker manifest create {shlex.quote(reference)}"]
    for arch_reference in arch_references:
        parts.append(f"--amend {shlex.quote(arch_reference)}")
    return " ".join(parts)


def manifest_push(reference: str) -> str:
    return f"docker manifest push --purge {shlex.quote(reference)}"


def builder_prune() -> str:
    return "docker builder prune --force"
