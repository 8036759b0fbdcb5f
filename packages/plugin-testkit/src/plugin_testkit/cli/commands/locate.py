"""plugin-testkit locate command - Show the classpath roots of a package."""

from __future__ import annotations

import click

from plugin_testkit.cli.output import info, success, warning


@click.command()
@click.argument("package_name", metavar="PACKAGE")
def locate(package_name: str) -> None:
    """Show the archives and local projects that contain a package.

    Examples:

        plugin-testkit locate com.example.flows
    """
    from plugin_testkit.classpath import ClasspathLocator, SearchPath
    from plugin_testkit.cli.commands import load_settings
    from plugin_testkit.cli.errors import handle_testkit_error
    from plugin_testkit.errors import TestkitError

    settings = load_settings()
    search_path = SearchPath(settings.effective_search_path(), build_config=settings.build)
    try:
        roots = ClasspathLocator(search_path).locate_roots(package_name)
    except TestkitError as e:
        handle_testkit_error(e)

    success(f"Package {package_name} found in {len(roots)} root(s)")
    for root in sorted(roots, key=lambda r: (r.kind.value, str(r.path))):
        info(f"  {root.kind.value:<8} {root.path}", soft_wrap=True)
    if len(roots) > 1:
        warning(
            f"find_plugin cannot choose one root for {package_name}; "
            "declare it with from_packages instead",
            soft_wrap=True,
        )
