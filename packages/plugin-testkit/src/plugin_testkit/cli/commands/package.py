"""plugin-testkit package command - Synthesize a plugin archive."""

from __future__ import annotations

from pathlib import Path

import click

from plugin_testkit.cli.output import info, success


@click.command()
@click.argument("packages", nargs=-1)
@click.option(
    "--class",
    "classes",
    multiple=True,
    help="Top-level class as module.ClassName to include (repeatable).",
)
@click.option("--name", default="custom-plugin", show_default=True, help="Plugin name.")
@click.option(
    "--version-id",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Plugin version.",
)
@click.option(
    "--target-platform-version",
    type=click.IntRange(min=1),
    default=None,
    help="Target platform version [default: from settings]",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with plugin configuration to install alongside the archive.",
)
@click.option("--sign", is_flag=True, default=False, help="Sign the archive.")
@click.option(
    "--key-store",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Key store file or directory used with --sign [default: generated]",
)
@click.option(
    "-o",
    "--output",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to copy the archive into [default: .]",
)
def package(
    packages: tuple[str, ...],
    classes: tuple[str, ...],
    name: str,
    version_id: int,
    target_platform_version: int | None,
    config_file: Path | None,
    sign: bool,
    key_store: Path | None,
    output_dir: Path,
) -> None:
    """Synthesize a plugin archive from packages and classes.

    Sub-packages of a listed package are folded into it.

    Examples:

        plugin-testkit package com.example.flows

        plugin-testkit package com.example.flows --class com.example.util.Helper --sign
    """
    import yaml
    from pydantic import ValidationError as PydanticValidationError

    from plugin_testkit.cache import ArtifactCache
    from plugin_testkit.cli.commands import load_settings
    from plugin_testkit.cli.errors import CLIError, format_pydantic_error, handle_testkit_error
    from plugin_testkit.descriptors import custom_plugin
    from plugin_testkit.errors import TestkitError

    settings = load_settings()
    try:
        descriptor = custom_plugin(
            packages,
            classes=classes,
            name=name,
            version_id=version_id,
            target_platform_version=target_platform_version,
        )
        if config_file is not None:
            descriptor = descriptor.with_config(yaml.safe_load(config_file.read_text()) or {})
        if sign:
            descriptor = descriptor.signed(key_store)
        elif key_store is not None:
            raise CLIError("--key-store requires --sign")

        cache = ArtifactCache.from_settings(settings)
        installed = cache.install([descriptor], output_dir)
    except TestkitError as e:
        handle_testkit_error(e)
    except PydanticValidationError as e:
        raise CLIError(format_pydantic_error(e)) from e
    except yaml.YAMLError as e:
        raise CLIError(f"Invalid YAML in {config_file}: {e}") from e
    except ValueError as e:
        raise CLIError(str(e)) from e

    success(f"Archive written to {installed[0]}", soft_wrap=True)
    if descriptor.config:
        info(f"Plugin configuration written to {output_dir / 'config'}")
