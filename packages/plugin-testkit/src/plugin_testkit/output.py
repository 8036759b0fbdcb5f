"""Per-process output directory for produced archives.

Nothing written here is ever rewritten or deleted by plugin-testkit.
File names carry a random component, so processes sharing the directory
never collide.
"""

from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

_UNSAFE_FILENAME_CHARS = re.compile(r"[\s/\\:]")


@dataclass(frozen=True)
class BuiltArtifact:
    """A produced archive.

    Attributes:
        path: Archive location.
        produced_at: UTC time at which production finished.
    """

    path: Path
    produced_at: datetime

    @classmethod
    def now(cls, path: Path) -> BuiltArtifact:
        return cls(path=path, produced_at=datetime.now(timezone.utc))


def timestamp_dir_name(moment: datetime) -> str:
    """Format a directory name for a run started at ``moment``.

    Example:
        >>> timestamp_dir_name(datetime(2024, 5, 1, 12, 30, 5, 42))
        '20240501-123005.000042'
    """
    return moment.strftime("%Y%m%d-%H%M%S.%f")


def sanitize_name(name: str) -> str:
    """Make a plugin name safe to use in a file name.

    Example:
        >>> sanitize_name("my test/plugin")
        'my-test-plugin'
    """
    return _UNSAFE_FILENAME_CHARS.sub("-", name)


class OutputDirectory:
    """The run's output directory, created on first use.

    Attributes:
        path: Absolute directory path (may not exist yet).

    Example:
        >>> out = OutputDirectory(Path("build/generated-test-artifacts"))
        >>> out.archive_path("flows", 1, 4, ".jar").name  # doctest: +ELLIPSIS
        'flows_1_4_....jar'
    """

    def __init__(self, base: Path, *, name: str | None = None) -> None:
        """Initialize OutputDirectory.

        Args:
            base: Parent directory of all runs.
            name: Run directory name; defaults to the current UTC timestamp.
        """
        dir_name = name or timestamp_dir_name(datetime.now(timezone.utc))
        self.path = (base / dir_name).absolute()
        self._lock = threading.Lock()

    def ensure(self) -> Path:
        """Create the directory if needed and return it."""
        with self._lock:
            self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def archive_path(
        self,
        name: str,
        version_id: int,
        target_platform_version: int,
        suffix: str,
    ) -> Path:
        """Return a fresh, unique archive path inside the directory."""
        filename = (
            f"{sanitize_name(name)}_{version_id}_{target_platform_version}_"
            f"{uuid.uuid4().hex}{suffix}"
        )
        return self.path / filename

    def __repr__(self) -> str:
        return f"OutputDirectory({str(self.path)!r})"
