"""CLI entry point for plugin-testkit.

The main group loads commands lazily so ``plugin-testkit --help`` stays
fast.
"""

from __future__ import annotations

import importlib
from typing import Any

import click
import rich_click as rclick

from plugin_testkit import __version__
from plugin_testkit.cli.output import set_no_color
from plugin_testkit.observability import configure_logging

rclick.rich_click.TEXT_MARKUP = "markdown"
rclick.rich_click.SHOW_ARGUMENTS = True
rclick.rich_click.GROUP_ARGUMENTS_OPTIONS = True


class LazyGroup(rclick.RichGroup):
    """Group whose subcommands are ``module.attribute`` paths.

    A command module is imported the first time click asks for the command.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.lazy_subcommands: dict[str, str] = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        return sorted({*super().list_commands(ctx), *self.lazy_subcommands})

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        target = self.lazy_subcommands.get(cmd_name)
        if target is None:
            return super().get_command(ctx, cmd_name)  # type: ignore[arg-type]
        module_name, _, attr_name = target.rpartition(".")
        command = getattr(importlib.import_module(module_name), attr_name)
        assert isinstance(command, click.Command)
        return command


LAZY_COMMANDS = {
    "package": "plugin_testkit.cli.commands.package.package",
    "locate": "plugin_testkit.cli.commands.locate.locate",
    "manifest": "plugin_testkit.cli.commands.manifest.manifest",
}


@click.command(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.version_option(version=__version__, prog_name="plugin-testkit")
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output.",
    is_eager=True,
    expose_value=False,
    callback=lambda ctx, param, value: set_no_color(value) if value else None,
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Emit structured logs at this level.",
)
def cli(log_level: str | None) -> None:
    """plugin-testkit - Plugin archives for integration tests.

    Build, find and inspect the plugin archives your tests deploy.

    **Commands:**

    - `plugin-testkit package com.example.flows` - Synthesize an archive
    - `plugin-testkit locate com.example.flows` - Show where a package lives
    - `plugin-testkit manifest flows.jar` - Print an archive's manifest

    Settings come from PLUGIN_TESTKIT_CONFIG, PLUGIN_TESTKIT_OUTPUT_DIR and
    PLUGIN_TESTKIT_PLATFORM_VERSION.
    """
    if log_level is not None:
        configure_logging(log_level=log_level, json_format=False)


if __name__ == "__main__":
    cli()
