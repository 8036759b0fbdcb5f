"""pytest plugin exposing plugin-testkit fixtures.

Registered through the ``pytest11`` entry point, so suites that install
plugin-testkit get the fixtures without a conftest import:

    def test_flow_starts(artifact_cache):
        archive = artifact_cache.resolve(from_packages("com.example.flows"))
"""

from __future__ import annotations

import pytest

from plugin_testkit.cache import ArtifactCache
from plugin_testkit.config import TestkitSettings


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: test runs real build or signing subprocesses",
    )


@pytest.fixture(scope="session")
def testkit_settings() -> TestkitSettings:
    """Settings read once per session from PLUGIN_TESTKIT_* variables."""
    return TestkitSettings.from_env()


@pytest.fixture(scope="session")
def artifact_cache(testkit_settings: TestkitSettings) -> ArtifactCache:
    """Session-wide cache, so each distinct archive is produced once per run."""
    return ArtifactCache.from_settings(testkit_settings)
