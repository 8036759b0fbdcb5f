"""CLI error handling for plugin-testkit.

Wraps library exceptions into user-facing messages with exit codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import click
from pydantic import ValidationError as PydanticValidationError

from plugin_testkit.cli.output import error
from plugin_testkit.errors import TestkitError

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


# Exit codes
EXIT_USER_ERROR = 1  # Declaration or production failure
EXIT_SYSTEM_ERROR = 2  # Settings or filesystem failure


class CLIError(click.ClickException):
    """CLI-specific exception with exit code support.

    Attributes:
        message: User-facing error message.
        exit_code: Exit code for the CLI (default: 1).
    """

    def __init__(self, message: str, exit_code: int = EXIT_USER_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code

    def show(self, file: object = None) -> None:
        """Display the error message using Rich formatting.

        Args:
            file: Output file (unused, for Click compatibility).
        """
        error(self.format_message())


def format_pydantic_error(err: PydanticValidationError) -> str:
    """Format a Pydantic validation error into a user-friendly message.

    Example:
        >>> format_pydantic_error(err)
        "Validation failed:\\n  - default_platform_version: Input should be ..."
    """
    errors: list[ErrorDetails] = err.errors()
    lines = ["Validation failed:"]
    for e in errors:
        loc = ".".join(str(x) for x in e["loc"])
        lines.append(f"  - {loc}: {e['msg']}")
    return "\n".join(lines)


def handle_testkit_error(err: TestkitError) -> NoReturn:
    """Re-raise a library failure as a CLIError.

    Raises:
        CLIError: Always, with exit code 1.
    """
    raise CLIError(str(err)) from err


def handle_settings_error(err: PydanticValidationError) -> NoReturn:
    """Re-raise invalid settings as a CLIError.

    Raises:
        CLIError: Always, with exit code 2.
    """
    raise CLIError(
        f"Invalid plugin-testkit settings:\n{format_pydantic_error(err)}",
        exit_code=EXIT_SYSTEM_ERROR,
    ) from err
