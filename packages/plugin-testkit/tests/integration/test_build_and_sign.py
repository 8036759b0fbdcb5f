"""Integration tests running real build wrappers and signing tools.

Build wrappers are small Python scripts with a shebang, so these run on
POSIX only. Signing tests additionally need keytool and jarsigner on PATH.
"""

from __future__ import annotations

import os
import shutil
import stat
import sys
import zipfile
from pathlib import Path

import pytest

from plugin_testkit.builder import EXIT_CANNOT_EXECUTE, ProjectBuilder
from plugin_testkit.cache import ArtifactCache
from plugin_testkit.config import TestkitSettings
from plugin_testkit.descriptors import find_plugin, from_packages
from plugin_testkit.errors import BuildFailed
from plugin_testkit.output import OutputDirectory
from plugin_testkit.synthesizer import read_entries

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(os.name == "nt", reason="wrapper scripts need a POSIX shebang"),
]

WRAPPER_TEMPLATE = """#!{python}
import pathlib
import sys
import zipfile

if sys.argv[1:] != ["archive"]:
    sys.exit(64)
dist = pathlib.Path("dist")
dist.mkdir(exist_ok=True)
with zipfile.ZipFile(dist / "flows-1.0.jar", "w") as zf:
    zf.writestr("com/example/flows/__init__.py", "")
(pathlib.Path("build-count")).open("a").write("x")
sys.exit({exit_code})
"""


def install_wrapper(project: Path, *, exit_code: int = 0, executable: bool = True) -> Path:
    wrapper = project / "buildw"
    wrapper.write_text(WRAPPER_TEMPLATE.format(python=sys.executable, exit_code=exit_code))
    if executable:
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


class TestRealBuild:
    """Tests for ProjectBuilder with a real wrapper process."""

    def test_build_produces_archive(self, project_root: Path) -> None:
        install_wrapper(project_root)
        artifact = ProjectBuilder().build_artifact(project_root)
        assert artifact.path == project_root.absolute() / "dist" / "flows-1.0.jar"
        assert zipfile.is_zipfile(artifact.path)

    def test_build_runs_once(self, project_root: Path) -> None:
        install_wrapper(project_root)
        builder = ProjectBuilder()
        builder.build_artifact(project_root)
        builder.build_artifact(project_root)
        assert (project_root / "build-count").read_text() == "x"

    def test_build_failure_exit_code(self, project_root: Path) -> None:
        install_wrapper(project_root, exit_code=5)
        with pytest.raises(BuildFailed) as exc_info:
            ProjectBuilder().build_artifact(project_root)
        assert exc_info.value.exit_code == 5

    def test_wrapper_not_executable(self, project_root: Path) -> None:
        install_wrapper(project_root, executable=False)
        with pytest.raises(BuildFailed) as exc_info:
            ProjectBuilder().build_artifact(project_root)
        assert exc_info.value.exit_code == EXIT_CANNOT_EXECUTE

    def test_scanned_descriptor_builds_project(
        self, settings: TestkitSettings, output_dir: OutputDirectory, project_root: Path
    ) -> None:
        install_wrapper(project_root)
        cache = ArtifactCache(settings, output_dir=output_dir)
        path = cache.resolve(find_plugin("com.example.flows"))
        assert path.parent == project_root.absolute() / "dist"
        assert read_entries(path) == ["com/example/flows/__init__.py"]


@pytest.mark.skipif(
    shutil.which("keytool") is None or shutil.which("jarsigner") is None,
    reason="keytool and jarsigner are required",
)
class TestRealSigning:
    """Tests for signing with the platform tools."""

    def test_signed_archive(self, testkit_cache: ArtifactCache) -> None:
        descriptor = from_packages("com.example.flows").with_name("flows")
        unsigned = testkit_cache.resolve(descriptor)
        signed = testkit_cache.resolve(descriptor.signed())

        entries = read_entries(signed)
        assert entries[0] == "META-INF/MANIFEST.MF"
        assert any(name.endswith(".SF") for name in entries)
        assert not any(name.endswith(".SF") for name in read_entries(unsigned))
        assert (testkit_cache.output_dir.path / "_teststore.generated").is_file()

    def test_fingerprint_reported(self, testkit_cache: ArtifactCache) -> None:
        archive = testkit_cache.resolve(from_packages("com.example.flows"))
        copy = archive.with_name("copy.jar")
        shutil.copyfile(archive, copy)
        fingerprint = testkit_cache.signer.sign(copy)
        assert fingerprint is not None
        assert len(fingerprint.split(":")) == 32
