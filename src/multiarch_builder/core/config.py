#!/usr/bin/env python3
"""Module of the run configuration.

This module turns the configuration surface (CLI options, environment
variables and an optional hosts file) into one immutable ``BuildConfig``
validated once at startup.

Classes:
    ExecutionTarget: How to reach one host.
    ArchMapping: Architecture to execution target pair.
    ImageIdentity: Image name and base tag of the run.
    RegistryCredentials: Token or login/password pair.
    BuildConfig: The validated configuration of one run.

Functions:
    sanitize_architecture: Registry-legal tag suffix of an architecture.
    arch_tag: Per-architecture tag of the run.
    parse_arch_mapping: Parse the "arch::target; arch::target" mapping.
    load_hosts_file: Load the manifest host and mapping from JSON or YAML.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import json
import os
import re
import shlex
import typing
from dataclasses import dataclass, field
from datetime import datetime

# project modules
from multiarch_builder.core import constants
from multiarch_builder.core.errors import ConfigurationError, create_error_context


def _config_error(message: str, **kwargs) -> ConfigurationError:
    context = create_error_context(
        operation="validate_config", phase="startup", component="BuildConfig"
    )
    return ConfigurationError(message, context=context, **kwargs)


def sanitize_architecture(architecture: str) -> str:
    """Get the tag suffix of an architecture.

    The platform prefix token is stripped once and separators are removed,
    e.g. "linux/arm64/v8" -> "arm64v8".

    Args:
        architecture: The architecture identifier.

    Returns:
        str: The tag suffix.
    """
    suffix = architecture.replace(constants.PLATFORM_PREFIX, "", 1)
    return re.sub(r"[\s/]", "", suffix)


def arch_tag(base_tag: str, architecture: str) -> str:
    """Get the per-architecture tag, base tag + "-" + sanitized architecture."""
    return f"{base_tag}-{sanitize_architecture(architecture)}"


def default_image_tag(now: typing.Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(constants.TAG_TIMESTAMP_FORMAT)


def default_working_dir(now: typing.Optional[datetime] = None) -> str:
    return constants.DEFAULT_WORKING_DIR_PREFIX + (now or datetime.now()).strftime(
        constants.WORKING_DIR_TIMESTAMP_FORMAT
    )


@dataclass(frozen=True)
class ExecutionTarget:
    """Connection parameters of one host.

    A target is either ``local`` or an ssh destination, optionally written
    as a full ssh invocation: ``ssh -A -p 2222 -i ~/.ssh/id_rsa user@host``.
    """

    raw: str = field(compare=False)
    hostname: str = ""
    username: typing.Optional[str] = None
    port: int = 22
    key_filename: typing.Optional[str] = None
    forward_agent: bool = False

    @property
    def is_local(self) -> bool:
        return self.hostname == constants.LOCAL_TARGET

    @property
    def label(self) -> str:
        """Short name of the host used in logs and reports."""
        if self.is_local:
            return constants.LOCAL_TARGET
        user = f"{self.username}@" if self.username else ""
        port = f":{self.port}" if self.port != 22 else ""
        return f"{user}{self.hostname}{port}"

    @classmethod
    def from_string(cls, value: str) -> "ExecutionTarget":
        """Parse an execution target.

        Args:
            value: "local", "user@host[:port]" or an ssh command line.

        Returns:
            ExecutionTarget: The parsed target.

        Raises:
            ConfigurationError: If the target cannot be parsed.
        """
        raw = value.strip()
        if not raw:
            raise _config_error("Execution target cannot be empty")
        if raw == constants.LOCAL_TARGET:
            return cls(raw=raw, hostname=constants.LOCAL_TARGET)

        try:
            tokens = shlex.split(raw)
        except ValueError as e:
            raise _config_error(f"Invalid execution target '{raw}': {e}")

        options = {"forward_agent": False}
        destinations = []
        if tokens and tokens[0] == "ssh":
            tokens = tokens[1:]
            i = 0
            while i < len(tokens):
                token = tokens[i]
                if token == "-A":
                    options["forward_agent"] = True
                elif token in ("-p", "-i", "-l"):
                    if i + 1 >= len(tokens):
                        raise _config_error(f"Option {token} needs a value in target '{raw}'")
                    i += 1
                    key = {"-p": "port", "-i": "key_filename", "-l": "username"}[token]
                    options[key] = tokens[i]
                elif token.startswith("-"):
                    raise _config_error(
                        f"Unsupported ssh option {token} in target '{raw}'",
                        suggestions=["Supported ssh options are -A, -p, -i and -l"],
                    )
                else:
                    destinations.append(token)
                i += 1
        else:
            destinations = tokens

        if len(destinations) != 1:
            raise _config_error(
                f"Execution target '{raw}' must name exactly one host"
            )

        destination = destinations[0]
        if "@" in destination:
            username, destination = destination.rsplit("@", 1)
            options.setdefault("username", username)
        if ":" in destination:
            destination, port = destination.rsplit(":", 1)
            options.setdefault("port", port)
        if not destination:
            raise _config_error(f"Execution target '{raw}' has no hostname")

        try:
            port = int(options.pop("port", 22))
        except ValueError:
            raise _config_error(f"Invalid port in execution target '{raw}'")

        return cls(raw=raw, hostname=destination, port=port, **options)


@dataclass(frozen=True)
class ArchMapping:
    """One architecture and the host that builds it."""

    architecture: str
    target: ExecutionTarget

    @property
    def tag_suffix(self) -> str:
        return sanitize_architecture(self.architecture)


@dataclass(frozen=True)
class ImageIdentity:
    """Image name and base tag shared by every task of the run."""

    name: str
    base_tag: str

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.base_tag}"

    @property
    def wildcard(self) -> str:
        """Reference pattern matching the base tag and every arch tag."""
        return f"{self.name}:{self.base_tag}*"

    @property
    def workspace_name(self) -> str:
        # squeeze runs of '/' and ' ' into one '_' like `tr -s '/ ' '_'`
        return re.sub(r"[/ ]+", "_", self.name)

    def arch_tag(self, architecture: str) -> str:
        return arch_tag(self.base_tag, architecture)

    def arch_reference(self, architecture: str) -> str:
        return f"{self.name}:{self.arch_tag(architecture)}"


@dataclass(frozen=True)
class RegistryCredentials:
    """Registry credentials, a pre-generated token and/or a login pair."""

    token: str = ""
    login: str = ""
    password: str = ""

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    @property
    def has_login(self) -> bool:
        return bool(self.login and self.password)

    def __repr__(self) -> str:
        return (
            f"RegistryCredentials(token={'***' if self.token else ''!r}, "
            f"login={self.login!r}, password={'***' if self.password else ''!r})"
        )


def parse_arch_mapping(value: str) -> typing.List[ArchMapping]:
    """Parse the architecture to host mapping.

    Args:
        value: "linux/amd64::ssh -A user@host1; linux/arm64/v8::ssh -A user@host2"

    Returns:
        list: The mapping entries in the given order.

    Raises:
        ConfigurationError: If an entry is malformed.
    """
    mappings = []
    for entry in value.split(constants.MAPPING_ENTRY_SEPARATOR):
        entry = entry.strip()
        if not entry:
            continue
        if constants.MAPPING_PAIR_SEPARATOR not in entry:
            raise _config_error(
                f"Invalid mapping entry '{entry}'",
                suggestions=["Use the format 'linux/amd64::ssh -A user@host'"],
            )
        architecture, target = entry.split(constants.MAPPING_PAIR_SEPARATOR, 1)
        architecture = architecture.strip()
        if not architecture:
            raise _config_error(f"Mapping entry '{entry}' has no architecture")
        mappings.append(ArchMapping(architecture, ExecutionTarget.from_string(target)))
    return mappings


def load_hosts_file(path: str) -> typing.Tuple[str, typing.List[ArchMapping]]:
    """Load the manifest host and the architecture mapping from a file.

    Expected content (JSON or YAML)::

        manifest_host: ssh -A user@host1
        arch_hosts:
          - architecture: linux/amd64
            target: ssh -A user@host1

    Args:
        path: Path to the hosts file.

    Returns:
        tuple: The manifest host string and the mapping entries.
    """
    if not os.path.exists(path):
        raise _config_error(f"Hosts file not found: {path}")

    with open(path, "r") as f:
        if path.endswith(".json"):
            data = json.load(f)
        elif path.endswith((".yml", ".yaml")):
            import yaml

            data = yaml.safe_load(f)
        else:
            raise _config_error(f"Unsupported hosts file format: {path}")

    if not isinstance(data, dict):
        raise _config_error(f"Hosts file {path} must contain a mapping")

    mappings = []
    for entry in data.get("arch_hosts") or []:
        if not isinstance(entry, dict) or "architecture" not in entry or "target" not in entry:
            raise _config_error(
                f"Invalid arch_hosts entry in {path}: {entry}",
                suggestions=["Each entry needs 'architecture' and 'target' keys"],
            )
        mappings.append(
            ArchMapping(
                str(entry["architecture"]).strip(),
                ExecutionTarget.from_string(str(entry["target"])),
            )
        )

    return str(data.get("manifest_host") or ""), mappings


@dataclass(frozen=True)
class BuildConfig:
    """Validated configuration of one run."""

    image: ImageIdentity
    repo_url: str
    manifest_host: ExecutionTarget
    arch_mappings: typing.Tuple[ArchMapping, ...]
    credentials: RegistryCredentials
    working_dir: str
    repo_branch: str = constants.DEFAULT_REPO_BRANCH
    build_args: str = ""
    use_cache: bool = True
    registry: str = constants.DEFAULT_REGISTRY
    hub_api_url: str = constants.DEFAULT_HUB_API_URL

    def __post_init__(self):
        """Validate the configuration, failing on the first problem found."""
        if not self.image.name:
            raise _config_error("Image name cannot be empty")
        if not self.image.base_tag:
            raise _config_error("Image tag cannot be empty")
        if not self.arch_mappings:
            raise _config_error(
                "Architecture mapping cannot be empty",
                suggestions=["Set ARCH_CONNECTIONS_MAPPING or pass --hosts-file"],
            )
        if not self.repo_url or not self.repo_branch:
            raise _config_error(
                "Dockerfile repository and branch cannot be empty",
                suggestions=["Set both REPO_URL and REPO_BRANCH"],
            )
        if not self.credentials.has_login:
            raise _config_error(
                "Docker credentials are not specified",
                suggestions=[
                    "Set both DOCKER_LOGIN and DOCKER_PASS, they are needed "
                    "to remove the per-architecture tags"
                ],
            )
        if not self.working_dir or self.working_dir.strip() in ("/", "~"):
            raise _config_error(f"Unsafe working directory: '{self.working_dir}'")

        seen_archs = set()
        seen_tags = {}
        for mapping in self.arch_mappings:
            if mapping.architecture in seen_archs:
                raise _config_error(
                    f"Duplicate architecture in mapping: {mapping.architecture}"
                )
            seen_archs.add(mapping.architecture)
            if not mapping.tag_suffix:
                raise _config_error(
                    f"Architecture '{mapping.architecture}' leaves an empty tag suffix"
                )
            tag = self.image.arch_tag(mapping.architecture)
            if tag in seen_tags:
                raise _config_error(
                    f"Architectures '{seen_tags[tag]}' and '{mapping.architecture}' "
                    f"both map to tag '{tag}'"
                )
            seen_tags[tag] = mapping.architecture

    def task_workspace(self, architecture: str) -> str:
        """Workspace owned by one architecture's task.

        Tasks sharing a host get separate directories below the working dir.
        """
        return f"{self.working_dir.rstrip('/')}/{sanitize_architecture(architecture)}"

    def image_workspace(self, architecture: str) -> str:
        """Directory the build inputs of an architecture are cloned into."""
        return f"{self.task_workspace(architecture)}/{self.image.workspace_name}"

    @property
    def architectures(self) -> typing.List[str]:
        return [mapping.architecture for mapping in self.arch_mappings]

    @property
    def arch_tags(self) -> typing.List[str]:
        return [self.image.arch_tag(mapping.architecture) for mapping in self.arch_mappings]

    @property
    def build_targets(self) -> typing.List[ExecutionTarget]:
        """Distinct build hosts in mapping order."""
        targets = []
        for mapping in self.arch_mappings:
            if mapping.target not in targets:
                targets.append(mapping.target)
        return targets

    @classmethod
    def from_sources(
        cls,
        image_name: str = "",
        image_tag: str = "",
        repo_url: str = "",
        repo_branch: str = constants.DEFAULT_REPO_BRANCH,
        build_args: str = "",
        docker_token: str = "",
        docker_login: str = "",
        docker_pass: str = "",
        manifest_connection: str = "",
        arch_connections_mapping: str = "",
        hosts_file: typing.Optional[str] = None,
        working_dir: str = "",
        use_cache: bool = True,
        registry: str = constants.DEFAULT_REGISTRY,
        hub_api_url: str = constants.DEFAULT_HUB_API_URL,
    ) -> "BuildConfig":
        """Assemble the configuration from raw option values.

        The mapping string and manifest host take precedence over the
        hosts file; the file only fills in what is missing.
        """
        mappings = parse_arch_mapping(arch_connections_mapping or "")
        if hosts_file:
            file_manifest_host, file_mappings = load_hosts_file(hosts_file)
            manifest_connection = manifest_connection or file_manifest_host
            mappings = mappings or file_mappings

        if not manifest_connection or not manifest_connection.strip():
            raise _config_error(
                "Manifest host connection cannot be empty",
                suggestions=["Set BASE_MANIFEST_CONNECTION or pass --hosts-file"],
            )

        return cls(
            image=ImageIdentity(image_name or "", image_tag or default_image_tag()),
            repo_url=repo_url or "",
            repo_branch=repo_branch or "",
            manifest_host=ExecutionTarget.from_string(manifest_connection),
            arch_mappings=tuple(mappings),
            credentials=RegistryCredentials(
                token=docker_token or "",
                login=docker_login or "",
                password=docker_pass or "",
            ),
            working_dir=working_dir or default_working_dir(),
            build_args=build_args or "",
            use_cache=use_cache,
            registry=registry,
            hub_api_url=hub_api_url.rstrip("/"),
        )
