"""
multiarch-builder - build one multi-architecture container image on native hosts.

Each architecture is built on a physical host of that architecture, the per-arch
images are pushed to the registry, and a combined manifest is published in their
place:
- one background build per architecture, joined before anything is published
- rollback of every produced tag when any build fails
- combined manifest creation and per-arch tag removal on success
- unconditional cleanup of workspaces, images and build cache on every host

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("multiarch-builder")
except PackageNotFoundError:
    # Package is not installed, use a default version
    __version__ = "dev"

__all__ = ["__version__"]
