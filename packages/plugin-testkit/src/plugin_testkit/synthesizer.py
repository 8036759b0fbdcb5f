"""Reproducible archive synthesis from classpath packages and classes.

Archives are byte-for-byte reproducible: entry order is fixed (manifest
first, then resources by name), and every entry carries the same pinned
timestamp, permissions and creator system regardless of the host or the
wall clock.
"""

from __future__ import annotations

import os
import stat
import uuid
import zipfile
from collections.abc import Iterable
from pathlib import Path

from plugin_testkit.classpath import ResourceRef, SearchPath, package_prefix
from plugin_testkit.descriptors import ClassRef
from plugin_testkit.errors import ClassNotFound, EmptyDeclaration, PackageNotFound
from plugin_testkit.manifest import MANIFEST_NAME, ManifestAttributes, parse_manifest
from plugin_testkit.observability import artifact_operation, get_logger

# Earliest timestamp the zip format can store (DOS date epoch)
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ENTRY_MODE = stat.S_IFREG | 0o644
UNIX_CREATE_SYSTEM = 3


def pinned_entry(name: str) -> zipfile.ZipInfo:
    """Create a zip entry header independent of time and platform."""
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.create_system = UNIX_CREATE_SYSTEM
    info.external_attr = ENTRY_MODE << 16
    return info


class ArchiveSynthesizer:
    """Assemble plugin archives from resources on a search path.

    Example:
        >>> synthesizer = ArchiveSynthesizer(SearchPath([Path("src")]))
        >>> synthesizer.synthesize(
        ...     packages={"com.example.flows"},
        ...     classes=set(),
        ...     attributes=ManifestAttributes(
        ...         name="flows", version_id=1, target_platform_version=4
        ...     ),
        ...     destination=Path("build/flows.jar"),
        ... )  # doctest: +SKIP
        PosixPath('build/flows.jar')
    """

    def __init__(self, search_path: SearchPath) -> None:
        self.search_path = search_path
        self._logger = get_logger()

    def collect(
        self,
        packages: Iterable[str],
        classes: Iterable[ClassRef],
    ) -> dict[str, ResourceRef]:
        """Resolve every resource to include, keyed by entry name.

        The same entry name can be visible from several classpath entries
        (a source directory and a packaged copy, say); the first one in
        search order wins.

        Raises:
            PackageNotFound: If a package has no resources at all.
            ClassNotFound: If a class has no module source.
        """
        resolved: dict[str, ResourceRef] = {}
        for package in sorted(packages):
            found = False
            for resource in self.search_path.scan(package_prefix(package)):
                resolved.setdefault(resource.name, resource)
                found = True
            if not found:
                raise PackageNotFound(package)

        for ref in sorted(classes, key=lambda r: r.full_name):
            resource = self._find_class(ref)
            if resource is None:
                raise ClassNotFound(ref.full_name)
            resolved.setdefault(resource.name, resource)
        return resolved

    def _find_class(self, ref: ClassRef) -> ResourceRef | None:
        for candidate in ref.resource_candidates:
            resource = self.search_path.find(candidate)
            if resource is not None:
                return resource
        return None

    def synthesize(
        self,
        packages: Iterable[str],
        classes: Iterable[ClassRef],
        attributes: ManifestAttributes,
        destination: Path,
    ) -> Path:
        """Write a new archive holding the declared packages and classes.

        Args:
            packages: Packages to include with all their sub-packages.
            classes: Individual classes to include (their module sources).
            attributes: Manifest attributes.
            destination: Archive path to create.

        Returns:
            The destination path.

        Raises:
            EmptyDeclaration: If both packages and classes are empty.
            PackageNotFound: If a package has no resources.
            ClassNotFound: If a class cannot be found.
        """
        package_set = frozenset(packages)
        class_set = frozenset(classes)
        if not package_set and not class_set:
            raise EmptyDeclaration()

        with artifact_operation(
            "synthesize",
            archive=str(destination),
            artifact_name=attributes.name,
        ):
            resources = self.collect(package_set, class_set)
            destination.parent.mkdir(parents=True, exist_ok=True)
            partial = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.partial")
            try:
                with zipfile.ZipFile(partial, "w") as archive:
                    archive.writestr(pinned_entry(MANIFEST_NAME), attributes.render())
                    for name in sorted(resources):
                        archive.writestr(pinned_entry(name), resources[name].read_bytes())
                os.replace(partial, destination)
            except BaseException:
                partial.unlink(missing_ok=True)
                raise

            self._logger.info(
                "archive_synthesized",
                archive=str(destination),
                name=attributes.name,
                entries=len(resources),
            )
            return destination


def read_entries(archive: Path) -> list[str]:
    """Return the entry names of an archive in stored order."""
    with zipfile.ZipFile(archive) as zf:
        return zf.namelist()


def read_manifest(archive: Path) -> dict[str, str]:
    """Return the main-section manifest attributes of an archive.

    Raises:
        KeyError: If the archive has no manifest.
    """
    with zipfile.ZipFile(archive) as zf:
        return parse_manifest(zf.read(MANIFEST_NAME))
