#!/usr/bin/env python3
"""
Command Runners Package

This package provides the runners that dispatch resolved command strings
to the build hosts of a multi-arch run.
"""

from .base import BaseCommandRunner, CommandResult
from .ssh_runner import SSHCommandRunner, SSHConnection, LocalConnection

__all__ = [
    "BaseCommandRunner",
    "CommandResult",
    "SSHCommandRunner",
    "SSHConnection",
    "LocalConnection",
]
