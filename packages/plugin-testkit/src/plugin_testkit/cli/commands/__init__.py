"""CLI command modules.

Each subcommand lives in its own module and is loaded lazily by the main
group.
"""

from __future__ import annotations

import yaml
from pydantic import ValidationError as PydanticValidationError

from plugin_testkit.cli.errors import EXIT_SYSTEM_ERROR, CLIError, handle_settings_error
from plugin_testkit.config import TestkitSettings

__all__ = ["load_settings"]


def load_settings() -> TestkitSettings:
    """Load settings from the environment, exiting with code 2 if unusable."""
    try:
        return TestkitSettings.from_env()
    except PydanticValidationError as e:
        handle_settings_error(e)
    except FileNotFoundError as e:
        raise CLIError(f"Settings file not found: {e.filename}", exit_code=EXIT_SYSTEM_ERROR) from e
    except yaml.YAMLError as e:
        raise CLIError(f"Invalid YAML in settings file: {e}", exit_code=EXIT_SYSTEM_ERROR) from e
