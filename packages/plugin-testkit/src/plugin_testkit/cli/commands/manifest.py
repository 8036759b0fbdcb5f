"""plugin-testkit manifest command - Print an archive's manifest."""

from __future__ import annotations

import zipfile
from pathlib import Path

import click

from plugin_testkit.cli.errors import CLIError
from plugin_testkit.cli.output import print_json


@click.command()
@click.argument(
    "archive",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def manifest(archive: Path) -> None:
    """Print the main manifest attributes of an archive as JSON.

    Examples:

        plugin-testkit manifest build/generated-test-artifacts/flows_1_4_ab12.jar
    """
    from plugin_testkit.synthesizer import read_manifest

    try:
        attributes = read_manifest(archive)
    except zipfile.BadZipFile as e:
        raise CLIError(f"Not a zip archive: {archive}") from e
    except KeyError as e:
        raise CLIError(f"Archive has no manifest: {archive}") from e
    except ValueError as e:
        raise CLIError(f"Malformed manifest in {archive}: {e}") from e

    print_json(attributes)
