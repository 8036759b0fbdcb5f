"""Command line interface for plugin-testkit."""

from __future__ import annotations

__all__ = ["cli"]


def __getattr__(name: str) -> object:
    """Lazy import of the CLI group."""
    if name == "cli":
        from plugin_testkit.cli.main import cli

        return cli
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
