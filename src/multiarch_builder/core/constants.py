#!/usr/bin/env python3
"""Module to define constants.

This module provides the defaults used by the multi-arch builder. Most of them
can be overridden from the command line or through the environment variables
listed below.

Environment Variables:
    - IMAGE_NAME, IMAGE_TAG: Image reference to build
    - BUILD_ARGS_LINE: Extra arguments handed to the build tool as-is
    - REPO_URL, REPO_BRANCH: Repository holding the Dockerfile and configs
    - DOCKER_TOKEN, DOCKER_LOGIN, DOCKER_PASS: Registry credentials
    - BASE_MANIFEST_CONNECTION: Host creating the combined manifest
    - ARCH_CONNECTIONS_MAPPING: "arch::target; arch::target" host mapping
    - WORKING_DIR: Directory used for the build workspace on every host
    - USE_CACHE: "1" to use registry build cache, "0" to disable it

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# Registry the images are pushed to and the cache refs are read from.
DEFAULT_REGISTRY = "docker.io"

# Docker Hub API used to remove the per-architecture tags.
DEFAULT_HUB_API_URL = "https://hub.docker.com/v2"

# Auth key used when a pre-generated token is written to ~/.docker/config.json
DOCKER_AUTH_URL = "https://index.docker.io/v1/"

DEFAULT_REPO_BRANCH = "master"
DEFAULT_WORKING_DIR_PREFIX = "/tmp/docker_image/build_"

# Tag formats, the working dir suffix mirrors `date +'%F_%T'`
TAG_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
WORKING_DIR_TIMESTAMP_FORMAT = "%Y-%m-%d_%H:%M:%S"

# buildx builder instance used for registry cache export
BUILDER_NAME = "docker-multiarch"
BUILDER_DRIVER = "docker-container"

CACHE_TAG = "cache"
LATEST_TAG = "latest"

# Token stripped from an architecture identifier when deriving its tag suffix
PLATFORM_PREFIX = "linux"

MAPPING_ENTRY_SEPARATOR = ";"
MAPPING_PAIR_SEPARATOR = "::"

LOCAL_TARGET = "local"
SSH_CONNECT_TIMEOUT = 30
# ssh reports connection problems with this exit code
SSH_FAILURE_EXIT_CODE = 255

STATUS_DIR_PREFIX = "docker_build-"


# Exit codes
class ExitCode:
    SUCCESS = 0
    FAILURE = 1
    BUILD_FAILURE = 2
    PUBLISH_FAILURE = 3
    INVALID_ARGS = 4
    PRUNE_FAILURE = 5
