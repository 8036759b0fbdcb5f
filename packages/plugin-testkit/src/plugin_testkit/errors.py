"""Custom exceptions for plugin-testkit.

This module defines the exception hierarchy:
- TestkitError (base)
- PackageNotFound
- ProjectRootNotFound
- AmbiguousClasspathRoot
- MultipleRootsForPackage
- BuildToolNotFound
- BuildFailed
- BuildProducedNoArtifact
- AmbiguousBuildOutput
- EmptyDeclaration
- ClassNotFound
- SigningFailed

None of these are retried. A failed resolution is never cached, so the next
identical request starts from scratch.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class TestkitError(Exception):
    """Base exception for all artifact production failures.

    Attributes:
        message: Human-readable error description.
        details: Additional context (package, project root, archive path).

    Example:
        >>> try:
        ...     cache.resolve(descriptor)
        ... except TestkitError as e:
        ...     print(f"Could not produce artifact: {e}")
    """

    __test__ = False  # not a pytest test class despite the name

    def __init__(self, message: str, *, details: dict[str, str] | None = None) -> None:
        """Initialize TestkitError.

        Args:
            message: Human-readable error description.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


def _join_paths(paths: Iterable[Path]) -> str:
    return ", ".join(sorted(str(p) for p in paths))


class PackageNotFound(TestkitError):
    """No resources under a package exist anywhere on the search path.

    Example:
        >>> try:
        ...     locator.locate_roots("com.example.missing")
        ... except PackageNotFound as e:
        ...     print(e.package)
    """

    def __init__(self, package: str, message: str | None = None) -> None:
        """Initialize PackageNotFound.

        Args:
            package: The package that could not be found.
            message: Optional custom error message.
        """
        msg = message or f"Package does not exist on the search path: {package}"
        super().__init__(msg, details={"package": package})
        self.package = package


class ProjectRootNotFound(TestkitError):
    """A directory search path entry has no project marker at or above it."""

    def __init__(self, path: Path, markers: Iterable[str]) -> None:
        marker_list = ", ".join(markers)
        super().__init__(
            f"No project marker ({marker_list}) found at or above {path}",
            details={"path": str(path)},
        )
        self.path = path


class AmbiguousClasspathRoot(TestkitError):
    """A single-package lookup matched more than one classpath root.

    Raised when several pre-built archives contain the package, or when a
    pre-built archive and an unbuilt project both contribute to it.
    """

    def __init__(self, package: str, roots: Iterable[Path]) -> None:
        self.roots = tuple(sorted(roots))
        super().__init__(
            f"More than one archive found containing package {package}",
            details={"package": package, "roots": _join_paths(self.roots)},
        )
        self.package = package


class MultipleRootsForPackage(TestkitError):
    """A scanned package resolved to more than one unbuilt project."""

    def __init__(self, package: str, roots: Iterable[Path]) -> None:
        self.roots = tuple(sorted(roots))
        super().__init__(
            f"Package {package} must resolve to exactly one project root",
            details={"package": package, "roots": _join_paths(self.roots)},
        )
        self.package = package


class BuildToolNotFound(TestkitError):
    """No build wrapper exists at or above a project root."""

    def __init__(self, project_root: Path, wrapper: str) -> None:
        super().__init__(
            f"Build wrapper '{wrapper}' not found at or above project",
            details={"project_root": str(project_root)},
        )
        self.project_root = project_root
        self.wrapper = wrapper


class BuildFailed(TestkitError):
    """The external build command exited with a non-zero status.

    Attributes:
        exit_code: Exit status of the build command.
        project_root: Project that failed to build.
    """

    def __init__(self, project_root: Path, exit_code: int) -> None:
        super().__init__(
            f"Unable to build archive from local project ({exit_code})",
            details={"project_root": str(project_root), "exit_code": str(exit_code)},
        )
        self.project_root = project_root
        self.exit_code = exit_code


class BuildProducedNoArtifact(TestkitError):
    """A successful build left no fresh archive in the output directory."""

    def __init__(self, output_dir: Path) -> None:
        super().__init__(
            "Build succeeded but produced no archive",
            details={"output_dir": str(output_dir)},
        )
        self.output_dir = output_dir


class AmbiguousBuildOutput(TestkitError):
    """A build left more than one fresh archive in the output directory."""

    def __init__(self, output_dir: Path, candidates: Iterable[Path]) -> None:
        self.candidates = tuple(sorted(candidates))
        super().__init__(
            "More than one archive file found in build output",
            details={"output_dir": str(output_dir), "candidates": _join_paths(self.candidates)},
        )
        self.output_dir = output_dir


class EmptyDeclaration(TestkitError):
    """Synthesis was requested with neither packages nor classes."""

    def __init__(self, message: str = "At least one package or class must be specified") -> None:
        super().__init__(message)


class ClassNotFound(TestkitError):
    """A declared class has no module source on the search path."""

    def __init__(self, class_name: str) -> None:
        super().__init__(
            f"Class not found on the search path: {class_name}",
            details={"class": class_name},
        )
        self.class_name = class_name


class SigningFailed(TestkitError):
    """Key generation or archive signing failed.

    Attributes:
        archive: Archive being signed (None for key generation failures).
        exit_code: Exit status of the external tool, if it ran.
    """

    def __init__(
        self,
        message: str,
        *,
        archive: Path | None = None,
        exit_code: int | None = None,
    ) -> None:
        details: dict[str, str] = {}
        if archive is not None:
            details["archive"] = str(archive)
        if exit_code is not None:
            details["exit_code"] = str(exit_code)
        super().__init__(message, details=details)
        self.archive = archive
        self.exit_code = exit_code
