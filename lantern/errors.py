"""Error types for Lantern.

Configuration errors are fatal. Per-file errors are wrapped in BuildError with
the offending path so the CLI can point at it.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import TemplateSyntaxError


class LanternError(Exception):
    """Base class for Lantern errors."""


class ConfigError(LanternError):
    """Missing or invalid configuration."""


class PathCollisionError(ConfigError):
    """Two generated files share an output path."""


class FrontMatterError(LanternError, ValueError):
    """A front matter block cannot be parsed."""


class BuildError(LanternError):
    """Error while loading, rendering or writing one file.

    Attributes:
        source_path: Path to the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


def format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    if isinstance(exc, TemplateSyntaxError):
        return f"Template syntax error on line {exc.lineno}: {exc.message}"

    error_type = type(exc).__name__
    error_msg = str(exc)

    # Handle common Jinja2/template errors
    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if isinstance(exc, FrontMatterError):
        return f"Front matter error: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"
