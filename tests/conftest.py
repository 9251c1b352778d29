"""Shared pytest fixtures.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .fixtures.utils import config, runner  # noqa: F401
