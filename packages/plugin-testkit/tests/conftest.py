"""Shared pytest fixtures for plugin-testkit tests.

Provides structlog capture, sample source trees and archives on disk,
and settings/caches scoped to the test's tmp_path.
"""

from __future__ import annotations

import sys
import zipfile
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from plugin_testkit.cache import ArtifactCache
from plugin_testkit.config import TestkitSettings
from plugin_testkit.output import OutputDirectory

# Source tree used by most tests; the package com.example.flows has a
# sub-package and a sibling module holding a single class
SAMPLE_SOURCES: dict[str, str] = {
    "com/__init__.py": "",
    "com/example/__init__.py": "",
    "com/example/util.py": "class Helper:\n    pass\n",
    "com/example/flows/__init__.py": "",
    "com/example/flows/ping.py": "class PingFlow:\n    pass\n",
    "com/example/flows/sub/__init__.py": "",
    "com/example/flows/sub/deep.py": "class DeepFlow:\n    pass\n",
    "com/example/flows/__pycache__/ping.cpython-312.pyc": "compiled",
    "com/example/contracts/__init__.py": "",
    "com/example/contracts/state.py": "class State:\n    pass\n",
}


def write_tree(root: Path, files: Mapping[str, str | bytes]) -> Path:
    """Write files (relative '/'-separated names) under root and return root."""
    for name, content in files.items():
        path = root.joinpath(*name.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


def make_archive(path: Path, files: Mapping[str, str | bytes]) -> Path:
    """Write a zip archive holding files and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Configure structlog to output to stdout for test capture."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,  # Important for test isolation
    )


@pytest.fixture
def tree_factory() -> Callable[[Path, Mapping[str, str | bytes]], Path]:
    return write_tree


@pytest.fixture
def archive_factory() -> Callable[[Path, Mapping[str, str | bytes]], Path]:
    return make_archive


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """An unbuilt local project with sources under src/."""
    root = tmp_path / "flows-project"
    write_tree(root, {"pyproject.toml": "[project]\nname = 'flows'\n"})
    write_tree(root / "src", SAMPLE_SOURCES)
    return root


@pytest.fixture
def source_root(project_root: Path) -> Path:
    """The project's source directory, as it would appear on sys.path."""
    return project_root / "src"


@pytest.fixture
def settings(tmp_path: Path, source_root: Path) -> TestkitSettings:
    """Settings scanning only the sample sources, writing under tmp_path."""
    return TestkitSettings(output_base=tmp_path / "out", search_path=(source_root,))


@pytest.fixture
def output_dir(settings: TestkitSettings) -> OutputDirectory:
    return OutputDirectory(settings.output_base, name="run")


@pytest.fixture
def testkit_cache(settings: TestkitSettings, output_dir: OutputDirectory) -> ArtifactCache:
    return ArtifactCache(settings, output_dir=output_dir)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()
