#!/usr/bin/env python3
"""
Unified Error Handling System for the multi-arch builder

This module provides a centralized error handling system with structured
error types and consistent Rich console-based error reporting. Every error
carries the phase of the run it happened in, so the CLI can map it to a
process exit code.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Any, Dict, List
from enum import Enum

try:
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text
except ImportError:
    raise ImportError("Rich is required for error handling. Install with: pip install rich")


class ErrorCategory(Enum):
    """Error category enumeration for classification."""

    CONFIGURATION = "configuration"
    DISPATCH = "dispatch"
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    BUILD = "build"
    PUBLISH = "publish"
    PRUNE = "prune"
    CLEANUP = "cleanup"


@dataclass
class ErrorContext:
    """Context information for errors."""

    operation: str
    phase: Optional[str] = None
    component: Optional[str] = None
    architecture: Optional[str] = None
    host: Optional[str] = None
    tag: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class MultiArchError(Exception):
    """Base exception for all multi-arch builder errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(operation="unknown")
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or []


class ConfigurationError(MultiArchError):
    """Missing or inconsistent configuration."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            context,
            recoverable=True,
            **kwargs
        )


class DispatchError(MultiArchError):
    """A remote command could not be dispatched, e.g. it was empty."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.DISPATCH,
            context,
            recoverable=False,
            **kwargs
        )


class ConnectionError(MultiArchError):
    """Connection and network errors."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.CONNECTION,
            context,
            recoverable=True,
            **kwargs
        )


class AuthenticationError(MultiArchError):
    """Registry or SSH authentication errors."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.AUTHENTICATION,
            context,
            recoverable=True,
            **kwargs
        )


class BuildError(MultiArchError):
    """One or more architecture builds failed."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.BUILD,
            context,
            recoverable=True,
            **kwargs
        )


class PublishError(MultiArchError):
    """Combined manifest creation or push failed."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.PUBLISH,
            context,
            recoverable=False,
            **kwargs
        )


class PruneError(MultiArchError):
    """A per-architecture tag could not be deleted from the registry.

    The combined manifest is already published when this is raised, only the
    per-architecture tags are left behind.
    """

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.PRUNE,
            context,
            recoverable=True,
            **kwargs
        )


class CleanupError(MultiArchError):
    """Cleanup of temporary build state failed."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.CLEANUP,
            context,
            recoverable=True,
            **kwargs
        )


class ErrorHandler:
    """Unified error handler with Rich console integration."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        show_traceback: Optional[bool] = None
    ) -> None:
        """Handle and display errors with rich formatting."""

        show_tb = show_traceback if show_traceback is not None else self.verbose

        if isinstance(error, MultiArchError):
            self._handle_multiarch_error(error, show_tb)
        else:
            self._handle_generic_error(error, context, show_tb)

    def _handle_multiarch_error(self, error: MultiArchError, show_traceback: bool) -> None:
        """Handle structured errors."""

        category_info = {
            ErrorCategory.CONFIGURATION: ("⚙️", "yellow"),
            ErrorCategory.DISPATCH: ("📤", "red"),
            ErrorCategory.CONNECTION: ("🔌", "blue"),
            ErrorCategory.AUTHENTICATION: ("🔒", "red"),
            ErrorCategory.BUILD: ("🔨", "red"),
            ErrorCategory.PUBLISH: ("📦", "red"),
            ErrorCategory.PRUNE: ("🏷️", "yellow"),
            ErrorCategory.CLEANUP: ("🧹", "yellow"),
        }

        emoji, color = category_info.get(error.category, ("❌", "red"))

        title = f"{emoji} {error.category.value.title()} Error"

        content = Text()
        content.append(f"{error.message}\n", style=f"bold {color}")

        if error.context:
            content.append("\n📋 Context:\n", style="bold cyan")
            if error.context.operation:
                content.append(f"  Operation: {error.context.operation}\n")
            if error.context.phase:
                content.append(f"  Phase: {error.context.phase}\n")
            if error.context.component:
                content.append(f"  Component: {error.context.component}\n")
            if error.context.architecture:
                content.append(f"  Architecture: {error.context.architecture}\n")
            if error.context.host:
                content.append(f"  Host: {error.context.host}\n")
            if error.context.tag:
                content.append(f"  Tag: {error.context.tag}\n")

        if error.cause:
            content.append(f"\n🔗 Caused by: {str(error.cause)}\n", style="dim")

        if error.suggestions:
            content.append("\n💡 Suggestions:\n", style="bold green")
            for suggestion in error.suggestions:
                content.append(f"  • {suggestion}\n", style="green")

        if error.recoverable:
            content.append("\n♻️  This error may be recoverable", style="bold blue")

        panel = Panel(
            content,
            title=title,
            border_style=color,
            expand=False
        )

        self.console.print(panel)

        if show_traceback and error.cause:
            self.console.print("\n📚 [bold]Full Traceback:[/bold]")
            self.console.print_exception()

        self.logger.error(
            f"{error.category.value}: {error.message}",
            extra={
                "context": error.context.__dict__ if error.context else {},
                "recoverable": error.recoverable,
                "suggestions": error.suggestions
            }
        )

    def _handle_generic_error(
        self,
        error: Exception,
        context: Optional[ErrorContext],
        show_traceback: bool
    ) -> None:
        """Handle generic Python exceptions."""

        title = f"❌ {type(error).__name__}"

        content = Text()
        content.append(f"{str(error)}\n", style="bold red")

        if context:
            content.append("\n📋 Context:\n", style="bold cyan")
            content.append(f"  Operation: {context.operation}\n")
            if context.phase:
                content.append(f"  Phase: {context.phase}\n")
            if context.component:
                content.append(f"  Component: {context.component}\n")

        panel = Panel(
            content,
            title=title,
            border_style="red",
            expand=False
        )

        self.console.print(panel)

        if show_traceback:
            self.console.print("\n📚 [bold]Full Traceback:[/bold]")
            self.console.print_exception()

        self.logger.error(f"{type(error).__name__}: {str(error)}")


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def set_error_handler(handler: ErrorHandler) -> None:
    """Set the global error handler."""
    global _global_error_handler
    _global_error_handler = handler


def handle_error(
    error: Exception,
    context: Optional[ErrorContext] = None,
    show_traceback: Optional[bool] = None
) -> None:
    """Handle error using the global error handler."""
    if _global_error_handler:
        _global_error_handler.handle_error(error, context, show_traceback)
    else:
        # Fallback to basic logging
        logging.error(f"Error: {error}")
        if show_traceback:
            logging.exception("Exception details:")


def create_error_context(
    operation: str,
    phase: Optional[str] = None,
    component: Optional[str] = None,
    **kwargs
) -> ErrorContext:
    """Convenience function to create error context."""
    return ErrorContext(
        operation=operation,
        phase=phase,
        component=component,
        **kwargs
    )
