"""Unit tests for plugin_testkit.classpath."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from plugin_testkit.classpath import (
    ArchiveResourceScanner,
    ClasspathLocator,
    ClasspathRoot,
    DirectoryResourceScanner,
    ResourceScanner,
    RootKind,
    SearchPath,
    find_project_root,
    package_prefix,
)
from plugin_testkit.errors import PackageNotFound, ProjectRootNotFound


class TestScanners:
    """Tests for the two ResourceScanner implementations."""

    def test_implement_protocol(self) -> None:
        assert isinstance(DirectoryResourceScanner(), ResourceScanner)
        assert isinstance(ArchiveResourceScanner(), ResourceScanner)

    def test_directory_lists_sorted_and_skips_caches(self, source_root: Path) -> None:
        names = [
            r.name
            for r in DirectoryResourceScanner().list_resources(source_root, "com/example/flows/")
        ]
        assert names == [
            "com/example/flows/__init__.py",
            "com/example/flows/ping.py",
            "com/example/flows/sub/__init__.py",
            "com/example/flows/sub/deep.py",
        ]

    def test_directory_missing_prefix(self, source_root: Path) -> None:
        assert list(DirectoryResourceScanner().list_resources(source_root, "org/none/")) == []

    def test_directory_find(self, source_root: Path) -> None:
        scanner = DirectoryResourceScanner()
        found = scanner.find(source_root, "com/example/util.py")
        assert found is not None
        assert found.read_bytes() == b"class Helper:\n    pass\n"
        assert scanner.find(source_root, "com/example/missing.py") is None

    def test_archive_lists_sorted_and_skips_caches(
        self,
        tmp_path: Path,
        archive_factory: Callable[..., Path],
    ) -> None:
        archive = archive_factory(
            tmp_path / "lib.jar",
            {
                "com/lib/b.py": "b",
                "com/lib/a.py": "a",
                "com/lib/__pycache__/a.cpython-312.pyc": "x",
                "com/other/c.py": "c",
            },
        )
        resources = list(ArchiveResourceScanner().list_resources(archive, "com/lib/"))
        assert [r.name for r in resources] == ["com/lib/a.py", "com/lib/b.py"]
        assert all(r.in_archive for r in resources)
        assert resources[0].read_bytes() == b"a"

    def test_archive_not_a_zip(self, tmp_path: Path) -> None:
        """Test a corrupt archive contributes nothing instead of failing."""
        bogus = tmp_path / "broken.jar"
        bogus.write_text("not a zip")
        assert list(ArchiveResourceScanner().list_resources(bogus, "com/")) == []


class TestSearchPath:
    """Tests for SearchPath."""

    def test_deduplicates_keeping_first(self, source_root: Path, tmp_path: Path) -> None:
        search_path = SearchPath([source_root, tmp_path, source_root])
        assert search_path.entries == (source_root.absolute(), tmp_path.absolute())

    def test_scan_in_search_path_order(
        self,
        source_root: Path,
        tmp_path: Path,
        archive_factory: Callable[..., Path],
    ) -> None:
        archive = archive_factory(tmp_path / "extra.jar", {"com/example/flows/zzz.py": ""})
        search_path = SearchPath([archive, source_root])
        entries = [r.entry for r in search_path.scan("com/example/flows/")]
        assert entries[0] == archive.absolute()
        assert set(entries[1:]) == {source_root.absolute()}

    def test_missing_entries_ignored(self, tmp_path: Path) -> None:
        search_path = SearchPath([tmp_path / "missing", tmp_path / "missing.jar"])
        assert list(search_path.scan("com/")) == []
        assert search_path.find("com/x.py") is None

    def test_find_first_match(
        self,
        source_root: Path,
        tmp_path: Path,
        archive_factory: Callable[..., Path],
    ) -> None:
        archive = archive_factory(tmp_path / "shadow.jar", {"com/example/util.py": "shadow"})
        search_path = SearchPath([archive, source_root])
        found = search_path.find("com/example/util.py")
        assert found is not None
        assert found.read_bytes() == b"shadow"

    def test_entries_containing(self, source_root: Path, tmp_path: Path) -> None:
        search_path = SearchPath([tmp_path / "empty", source_root])
        assert search_path.entries_containing("com/example/") == [source_root.absolute()]


class TestFindProjectRoot:
    """Tests for find_project_root."""

    def test_walks_up_to_marker(self, project_root: Path, source_root: Path) -> None:
        assert find_project_root(source_root, ("pyproject.toml",)) == project_root.absolute()

    def test_marker_in_start_directory(self, project_root: Path) -> None:
        assert find_project_root(project_root, ("pyproject.toml",)) == project_root.absolute()

    def test_no_marker(self, tmp_path: Path) -> None:
        start = tmp_path / "site-packages" / "lib"
        start.mkdir(parents=True)
        with pytest.raises(ProjectRootNotFound):
            find_project_root(start, ("definitely-not-a-marker.toml",))

    def test_stops_at_install_directory(self, tmp_path: Path) -> None:
        """Test an installed distribution never resolves to an enclosing project."""
        (tmp_path / "pyproject.toml").write_text("")
        installed = tmp_path / "venv" / "site-packages"
        installed.mkdir(parents=True)
        with pytest.raises(ProjectRootNotFound):
            find_project_root(installed, ("pyproject.toml",))


class TestClasspathLocator:
    """Tests for ClasspathLocator."""

    def test_project_root(self, project_root: Path, source_root: Path) -> None:
        locator = ClasspathLocator(SearchPath([source_root]))
        roots = locator.locate_roots("com.example.flows")
        assert roots == frozenset({ClasspathRoot(project_root.absolute(), RootKind.PROJECT)})

    def test_archive_root(self, tmp_path: Path, archive_factory: Callable[..., Path]) -> None:
        archive = archive_factory(tmp_path / "flows-1.0.jar", {"com/example/flows/a.py": ""})
        roots = ClasspathLocator(SearchPath([archive])).locate_roots("com.example.flows")
        (root,) = roots
        assert root.is_archive
        assert root.path == archive.absolute()

    def test_mixed_roots(
        self,
        source_root: Path,
        tmp_path: Path,
        archive_factory: Callable[..., Path],
    ) -> None:
        archive = archive_factory(tmp_path / "flows.jar", {"com/example/flows/a.py": ""})
        roots = ClasspathLocator(SearchPath([source_root, archive])).locate_roots(
            "com.example.flows"
        )
        assert {root.kind for root in roots} == {RootKind.ARCHIVE, RootKind.PROJECT}

    def test_package_not_found(self, source_root: Path) -> None:
        locator = ClasspathLocator(SearchPath([source_root]))
        with pytest.raises(PackageNotFound) as exc_info:
            locator.locate_roots("org.absent")
        assert exc_info.value.package == "org.absent"

    def test_prefix_respects_package_boundary(self, source_root: Path) -> None:
        """Test com.example.flow does not match com/example/flows/."""
        locator = ClasspathLocator(SearchPath([source_root]))
        with pytest.raises(PackageNotFound):
            locator.locate_roots("com.example.flow")

    def test_memoized_per_package(self, source_root: Path) -> None:
        search_path = SearchPath([source_root])
        locator = ClasspathLocator(search_path)
        with patch.object(
            search_path,
            "entries_containing",
            wraps=search_path.entries_containing,
        ) as spy:
            first = locator.locate_roots("com.example.flows")
            second = locator.locate_roots("com.example.flows")
        assert first is second
        spy.assert_called_once_with(package_prefix("com.example.flows"))

    def test_located_once_under_concurrency(self, source_root: Path) -> None:
        search_path = SearchPath([source_root])
        real = search_path.entries_containing
        gate = threading.Event()

        def slow_entries(prefix: str) -> Any:
            gate.wait(timeout=5)
            return real(prefix)

        locator = ClasspathLocator(search_path)
        with patch.object(search_path, "entries_containing", side_effect=slow_entries) as spy:
            with ThreadPoolExecutor(max_workers=8) as pool:
                futures = [
                    pool.submit(locator.locate_roots, "com.example.flows") for _ in range(8)
                ]
                time.sleep(0.2)
                gate.set()
                results = [f.result(timeout=10) for f in futures]
        spy.assert_called_once_with(package_prefix("com.example.flows"))
        assert all(result is results[0] for result in results)

    def test_failure_not_memoized(self, tmp_path: Path, tree_factory: Callable[..., Path]) -> None:
        src = tmp_path / "proj" / "src"
        src.mkdir(parents=True)
        locator = ClasspathLocator(SearchPath([src]))
        with pytest.raises(PackageNotFound):
            locator.locate_roots("late.pkg")
        tree_factory(tmp_path / "proj", {"pyproject.toml": "", "src/late/pkg/__init__.py": ""})
        (root,) = locator.locate_roots("late.pkg")
        assert root.path == (tmp_path / "proj").absolute()
