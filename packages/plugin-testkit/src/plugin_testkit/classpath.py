"""Classpath scanning and root discovery.

The classpath is the ordered import search path (sys.path by default).
Each entry is either a zip-format archive or a directory; resources are
enumerated per entry through the ResourceScanner protocol so the
grouping and first-match algorithms stay independent of storage.

Architecture:
- ResourceScanner protocol: list/find resources under one entry
- DirectoryResourceScanner, ArchiveResourceScanner: the two implementations
- SearchPath: ordered entries plus the scanner for each
- ClasspathLocator: package -> classpath roots, memoized per package
"""

from __future__ import annotations

import enum
import os
import zipfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from plugin_testkit.config import BuildToolConfig
from plugin_testkit.errors import PackageNotFound, ProjectRootNotFound
from plugin_testkit.memo import OnceCache
from plugin_testkit.observability import artifact_operation, get_logger

# Interpreter caches embed timestamps and are never part of an archive
EXCLUDED_DIR_NAMES = frozenset({"__pycache__"})
EXCLUDED_SUFFIXES = (".pyc", ".pyo")

# Installed distributions live here; walking above them never finds a project
INSTALL_DIR_NAMES = frozenset({"site-packages", "dist-packages"})


def package_prefix(package: str) -> str:
    """Return the entry-name prefix of a dotted package.

    Example:
        >>> package_prefix("com.example.flows")
        'com/example/flows/'
    """
    return package.replace(".", "/") + "/"


def _is_excluded(name: str) -> bool:
    if name.endswith(EXCLUDED_SUFFIXES):
        return True
    return any(part in EXCLUDED_DIR_NAMES for part in name.split("/")[:-1])


@dataclass(frozen=True)
class ResourceRef:
    """A single resource found on the classpath.

    Attributes:
        entry: Search path entry (archive file or directory) holding the resource.
        name: Entry name, '/'-separated and relative to the entry.
        in_archive: True when entry is a zip archive.
    """

    entry: Path
    name: str
    in_archive: bool = False

    def read_bytes(self) -> bytes:
        """Read the resource content."""
        if self.in_archive:
            with zipfile.ZipFile(self.entry) as archive:
                return archive.read(self.name)
        return self.entry.joinpath(*self.name.split("/")).read_bytes()


@runtime_checkable
class ResourceScanner(Protocol):
    """Protocol for enumerating resources inside one classpath entry.

    Methods:
        list_resources: All resources whose name starts with a prefix,
            sorted by name
        find: A single resource by exact name
    """

    def list_resources(self, entry: Path, prefix: str) -> Iterator[ResourceRef]:
        """Yield resources under prefix in sorted name order."""
        ...

    def find(self, entry: Path, name: str) -> ResourceRef | None:
        """Return the resource with exactly this name, or None."""
        ...


class DirectoryResourceScanner:
    """Scan an unpacked directory entry."""

    def list_resources(self, entry: Path, prefix: str) -> Iterator[ResourceRef]:
        base = entry.joinpath(*prefix.strip("/").split("/"))
        if not base.is_dir():
            return
        names: list[str] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIR_NAMES]
            for filename in filenames:
                rel = Path(dirpath, filename).relative_to(entry).as_posix()
                if not _is_excluded(rel):
                    names.append(rel)
        for name in sorted(names):
            yield ResourceRef(entry=entry, name=name)

    def find(self, entry: Path, name: str) -> ResourceRef | None:
        if _is_excluded(name):
            return None
        if entry.joinpath(*name.split("/")).is_file():
            return ResourceRef(entry=entry, name=name)
        return None


class ArchiveResourceScanner:
    """Scan a zip-format archive entry."""

    def _names(self, entry: Path) -> list[str]:
        try:
            with zipfile.ZipFile(entry) as archive:
                return [info.filename for info in archive.infolist() if not info.is_dir()]
        except zipfile.BadZipFile:
            get_logger().warning("classpath_entry_not_a_zip", entry=str(entry))
            return []

    def list_resources(self, entry: Path, prefix: str) -> Iterator[ResourceRef]:
        for name in sorted(self._names(entry)):
            if name.startswith(prefix) and not _is_excluded(name):
                yield ResourceRef(entry=entry, name=name, in_archive=True)

    def find(self, entry: Path, name: str) -> ResourceRef | None:
        if _is_excluded(name) or name not in self._names(entry):
            return None
        return ResourceRef(entry=entry, name=name, in_archive=True)


class SearchPath:
    """Ordered classpath entries with a scanner for each.

    Missing entries are ignored, as the import system ignores them.
    Duplicate entries keep their first position.

    Example:
        >>> search_path = SearchPath([Path("src"), Path("libs/contracts.jar")])
        >>> [r.name for r in search_path.scan("com/example/")]  # doctest: +SKIP
        ['com/example/__init__.py', 'com/example/flows.py']
    """

    def __init__(
        self,
        entries: Iterable[Path],
        *,
        build_config: BuildToolConfig | None = None,
        directory_scanner: ResourceScanner | None = None,
        archive_scanner: ResourceScanner | None = None,
    ) -> None:
        self.build_config = build_config or BuildToolConfig()
        self._directory_scanner = directory_scanner or DirectoryResourceScanner()
        self._archive_scanner = archive_scanner or ArchiveResourceScanner()
        seen: set[Path] = set()
        ordered: list[Path] = []
        for entry in entries:
            resolved = Path(entry).absolute()
            if resolved not in seen:
                seen.add(resolved)
                ordered.append(resolved)
        self.entries: tuple[Path, ...] = tuple(ordered)

    def is_archive(self, entry: Path) -> bool:
        return entry.is_file() and self.build_config.is_archive(entry)

    def scanner_for(self, entry: Path) -> ResourceScanner | None:
        """Return the scanner for an entry, or None if it cannot hold resources."""
        if self.is_archive(entry):
            return self._archive_scanner
        if entry.is_dir():
            return self._directory_scanner
        return None

    def scan(self, prefix: str) -> Iterator[ResourceRef]:
        """Yield every resource under prefix, entry by entry in search order."""
        for entry in self.entries:
            scanner = self.scanner_for(entry)
            if scanner is not None:
                yield from scanner.list_resources(entry, prefix)

    def entries_containing(self, prefix: str) -> list[Path]:
        """Return the entries holding at least one resource under prefix."""
        found: list[Path] = []
        for entry in self.entries:
            scanner = self.scanner_for(entry)
            if scanner is not None and next(scanner.list_resources(entry, prefix), None):
                found.append(entry)
        return found

    def find(self, name: str) -> ResourceRef | None:
        """Return the first resource with exactly this name."""
        for entry in self.entries:
            scanner = self.scanner_for(entry)
            if scanner is None:
                continue
            resource = scanner.find(entry, name)
            if resource is not None:
                return resource
        return None


class RootKind(enum.Enum):
    """Kind of classpath root."""

    ARCHIVE = "archive"
    PROJECT = "project"


@dataclass(frozen=True)
class ClasspathRoot:
    """A location contributing resources to a package.

    Attributes:
        path: Archive file, or root directory of an unbuilt local project.
        kind: Which of the two it is.
    """

    path: Path
    kind: RootKind

    @property
    def is_archive(self) -> bool:
        return self.kind is RootKind.ARCHIVE


def find_project_root(path: Path, markers: Iterable[str]) -> Path:
    """Walk up from path to the nearest directory holding a project marker.

    Args:
        path: Directory to start from (inclusive).
        markers: Marker file names, e.g. ("pyproject.toml",).

    Returns:
        The project root directory.

    Raises:
        ProjectRootNotFound: If no marker exists at or above path.
    """
    marker_names = tuple(markers)
    current = path.absolute()
    while True:
        if any((current / marker).exists() for marker in marker_names):
            return current
        if current.name in INSTALL_DIR_NAMES or current.parent == current:
            raise ProjectRootNotFound(path, marker_names)
        current = current.parent


class ClasspathLocator:
    """Find the classpath roots that contain a package.

    Results are memoized per package for the lifetime of the locator, so a
    package is scanned at most once even under concurrent callers. Nested
    packages are not simplified here; callers do that.

    Example:
        >>> locator = ClasspathLocator(SearchPath(sys_path_entries))  # doctest: +SKIP
        >>> locator.locate_roots("com.example.flows")  # doctest: +SKIP
        frozenset({ClasspathRoot(path=.../flows-1.0.jar, kind=<RootKind.ARCHIVE: 'archive'>)})
    """

    def __init__(
        self,
        search_path: SearchPath,
        *,
        cache: OnceCache[str, frozenset[ClasspathRoot]] | None = None,
    ) -> None:
        self.search_path = search_path
        self._cache = cache or OnceCache("classpath_roots")
        self._logger = get_logger()

    def locate_roots(self, package: str) -> frozenset[ClasspathRoot]:
        """Return the roots holding resources under package.

        Raises:
            PackageNotFound: If no resource exists under the package.
            ProjectRootNotFound: If a directory entry has no project above it.
        """
        return self._cache.get_or_compute(package, self._scan)

    def _scan(self, package: str) -> frozenset[ClasspathRoot]:
        with artifact_operation("locate_roots", package=package):
            entries = self.search_path.entries_containing(package_prefix(package))
            if not entries:
                raise PackageNotFound(package)
            markers = self.search_path.build_config.project_markers
            roots = set()
            for entry in entries:
                if self.search_path.is_archive(entry):
                    roots.add(ClasspathRoot(entry, RootKind.ARCHIVE))
                else:
                    roots.add(ClasspathRoot(find_project_root(entry, markers), RootKind.PROJECT))
            self._logger.debug(
                "classpath_roots_located",
                package=package,
                roots=sorted(str(r.path) for r in roots),
            )
            return frozenset(roots)
