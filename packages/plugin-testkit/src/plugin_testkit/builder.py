"""Build archives from unbuilt local projects.

A classpath directory that belongs to a local project is turned into an
archive by running the project's build wrapper, exactly like a developer
would. The build is synchronous, inherits the caller's stdio and has no
timeout.
"""

from __future__ import annotations

import math
import subprocess
import time
from pathlib import Path

from plugin_testkit.config import BuildToolConfig
from plugin_testkit.errors import (
    AmbiguousBuildOutput,
    BuildFailed,
    BuildProducedNoArtifact,
    BuildToolNotFound,
)
from plugin_testkit.memo import OnceCache
from plugin_testkit.observability import artifact_operation, get_logger
from plugin_testkit.output import BuiltArtifact

# Exit status reported when the wrapper exists but cannot be executed
EXIT_CANNOT_EXECUTE = 126

# Seconds by which a fresh archive mtime may trail the recorded build start
MTIME_TOLERANCE = 0.05


class ProjectBuilder:
    """Run a project's build at most once per process and return its archive.

    Attributes:
        config: Build tool configuration.

    Example:
        >>> builder = ProjectBuilder(BuildToolConfig(goal=("archive",)))
        >>> artifact = builder.build_artifact(Path("projects/flows"))  # doctest: +SKIP
        >>> artifact.path
        PosixPath('projects/flows/dist/flows-1.0.jar')
    """

    def __init__(
        self,
        config: BuildToolConfig | None = None,
        *,
        cache: OnceCache[Path, BuiltArtifact] | None = None,
    ) -> None:
        self.config = config or BuildToolConfig()
        self._cache = cache or OnceCache("built_projects")
        self._logger = get_logger()

    def build_artifact(self, project_root: Path) -> BuiltArtifact:
        """Build the project and return its freshly produced archive.

        Concurrent callers for the same root wait for the single build.

        Raises:
            BuildToolNotFound: If no wrapper exists at or above the root.
            BuildFailed: If the build exits non-zero.
            BuildProducedNoArtifact: If no fresh archive was produced.
            AmbiguousBuildOutput: If more than one fresh archive was produced.
        """
        return self._cache.get_or_compute(project_root.absolute(), self._build)

    def find_wrapper(self, project_root: Path) -> Path:
        """Locate the build wrapper in the project root or its nearest ancestor."""
        wrapper_name = self.config.wrapper_name()
        current = project_root.absolute()
        while True:
            candidate = current / wrapper_name
            if candidate.is_file():
                return candidate
            if current.parent == current:
                raise BuildToolNotFound(project_root, wrapper_name)
            current = current.parent

    def fresh_archives(self, output_dir: Path, since: float) -> list[Path]:
        """Return archives in output_dir modified at or after ``since``.

        File timestamps come from a coarse kernel clock that can lag
        ``time.time()`` slightly, so ``MTIME_TOLERANCE`` is allowed. An mtime
        with no fractional part may come from a filesystem that only stores
        whole seconds and is compared against ``since`` floored; on such
        filesystems an archive written earlier in the same second still counts
        as fresh.
        """
        if not output_dir.is_dir():
            return []
        return [
            path
            for path in sorted(output_dir.iterdir())
            if path.is_file() and self.config.is_archive(path) and _is_fresh(path, since)
        ]

    def _build(self, project_root: Path) -> BuiltArtifact:
        with artifact_operation("build_project", project_root=str(project_root)):
            wrapper = self.find_wrapper(project_root)
            command = [str(wrapper), *self.config.goal]
            self._logger.info(
                "project_build_started",
                project_root=str(project_root),
                command=command,
            )
            started = time.time()
            try:
                completed = subprocess.run(command, cwd=project_root, check=False)
            except OSError as exc:
                raise BuildFailed(project_root, EXIT_CANNOT_EXECUTE) from exc
            if completed.returncode != 0:
                raise BuildFailed(project_root, completed.returncode)

            output_dir = project_root / self.config.output_dir
            archives = self.fresh_archives(output_dir, started)
            if not archives:
                raise BuildProducedNoArtifact(output_dir)
            if len(archives) > 1:
                raise AmbiguousBuildOutput(output_dir, archives)

            artifact = BuiltArtifact.now(archives[0])
            self._logger.info(
                "project_build_completed",
                project_root=str(project_root),
                archive=str(artifact.path),
            )
            return artifact


def _is_fresh(path: Path, since: float) -> bool:
    mtime = path.stat().st_mtime
    if mtime.is_integer():
        return mtime >= math.floor(since)
    return mtime >= since - MTIME_TOLERANCE
