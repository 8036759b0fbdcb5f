"""Pydantic configuration models for plugin-testkit.

This module provides:
- BuildToolConfig: How unbuilt local projects are recognised and built
- SigningConfig: External key generation and signing commands
- TestkitSettings: Top-level settings, loadable from environment and YAML
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

# Environment variables consulted by TestkitSettings.from_env()
OUTPUT_DIR_ENV_VAR = "PLUGIN_TESTKIT_OUTPUT_DIR"
PLATFORM_VERSION_ENV_VAR = "PLUGIN_TESTKIT_PLATFORM_VERSION"
CONFIG_FILE_ENV_VAR = "PLUGIN_TESTKIT_CONFIG"

DEFAULT_PLATFORM_VERSION = 4
"""Platform version stamped into manifests when a descriptor does not set one."""

DEFAULT_OUTPUT_BASE = Path("build") / "generated-test-artifacts"


class BuildToolConfig(BaseModel):
    """Recognition and invocation of local project builds.

    Attributes:
        project_markers: File names identifying a project root directory.
        wrapper: Build wrapper executable name on POSIX platforms.
        windows_wrapper: Build wrapper executable name on Windows.
        goal: Arguments passed to the wrapper to request an archive.
        output_dir: Build output directory, relative to the project root.
        archive_suffixes: File suffixes treated as built archives.

    Example:
        >>> config = BuildToolConfig(goal=("archive", "--offline"))
        >>> config.wrapper_name(windows=False)
        'buildw'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_markers: tuple[str, ...] = Field(
        default=("pyproject.toml",),
        min_length=1,
        description="Files whose presence marks a project root",
    )
    wrapper: str = Field(
        default="buildw",
        min_length=1,
        description="Build wrapper executable (POSIX)",
    )
    windows_wrapper: str = Field(
        default="buildw.bat",
        min_length=1,
        description="Build wrapper executable (Windows)",
    )
    goal: tuple[str, ...] = Field(
        default=("archive",),
        description="Wrapper arguments that produce the project archive",
    )
    output_dir: str = Field(
        default="dist",
        min_length=1,
        description="Archive output directory relative to the project root",
    )
    archive_suffixes: tuple[str, ...] = Field(
        default=(".jar", ".zip", ".whl", ".egg", ".pyz"),
        min_length=1,
        description="Suffixes identifying zip-format archives",
    )

    @field_validator("archive_suffixes")
    @classmethod
    def normalize_suffixes(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lower-case suffixes and ensure a leading dot."""
        return tuple(s.lower() if s.startswith(".") else f".{s.lower()}" for s in v)

    def wrapper_name(self, *, windows: bool | None = None) -> str:
        """Return the platform-appropriate wrapper name."""
        if windows is None:
            windows = os.name == "nt"
        return self.windows_wrapper if windows else self.wrapper

    def is_archive(self, path: Path) -> bool:
        """Check whether a path names a zip-format archive."""
        return path.suffix.lower() in self.archive_suffixes


class SigningConfig(BaseModel):
    """External signing tool configuration.

    The alias and password are fixed test values; the generated key store
    is never meant to protect anything.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    keytool: str = Field(default="keytool", description="Key generation executable")
    jarsigner: str = Field(default="jarsigner", description="Archive signing executable")
    alias: str = Field(default="Test", min_length=1, description="Key alias")
    password: SecretStr = Field(
        default=SecretStr("secret!"),
        description="Key store and key password",
    )
    distinguished_name: str = Field(
        default="O=Test Company Ltd,OU=Test,L=London,C=GB",
        description="Subject of the generated self-signed certificate",
    )
    key_store_name: str = Field(
        default="_teststore",
        min_length=1,
        description="File name of the key store inside a key store directory",
    )


class TestkitSettings(BaseModel):
    """Top-level plugin-testkit settings.

    Attributes:
        output_base: Directory under which each process creates its run directory.
        search_path: Ordered classpath entries to scan (None means sys.path).
        default_platform_version: Target platform version for new descriptors.
        archive_suffix: Suffix of synthesized archive files.
        build: Local project build configuration.
        signing: Signing tool configuration.

    Example:
        >>> settings = TestkitSettings(search_path=[Path("src")])
        >>> settings.effective_search_path()
        (PosixPath('src'),)
    """

    __test__ = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    output_base: Path = Field(
        default=DEFAULT_OUTPUT_BASE,
        description="Base directory for per-process output directories",
    )
    search_path: tuple[Path, ...] | None = Field(
        default=None,
        description="Classpath entries to scan; defaults to sys.path",
    )
    default_platform_version: int = Field(
        default=DEFAULT_PLATFORM_VERSION,
        ge=1,
        description="Target platform version when a descriptor does not set one",
    )
    archive_suffix: str = Field(
        default=".jar",
        pattern=r"^\.[A-Za-z0-9]+$",
        description="Suffix of synthesized archive files",
    )
    build: BuildToolConfig = Field(default_factory=BuildToolConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)

    def effective_search_path(self) -> tuple[Path, ...]:
        """Return the configured search path, falling back to sys.path.

        Empty sys.path entries stand for the current directory.
        """
        if self.search_path is not None:
            return self.search_path
        return tuple(Path(entry) if entry else Path.cwd() for entry in sys.path)

    @classmethod
    def from_yaml(cls, path: Path | str) -> TestkitSettings:
        """Load settings from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            pydantic.ValidationError: If the content is invalid.
        """
        raw: Any = yaml.safe_load(Path(path).read_text()) or {}
        return cls.model_validate(raw)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TestkitSettings:
        """Build settings from environment variables.

        PLUGIN_TESTKIT_CONFIG names an optional YAML file loaded first;
        PLUGIN_TESTKIT_OUTPUT_DIR and PLUGIN_TESTKIT_PLATFORM_VERSION
        override individual values.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        config_file = env.get(CONFIG_FILE_ENV_VAR)
        if config_file:
            data = yaml.safe_load(Path(config_file).read_text()) or {}
        if env.get(OUTPUT_DIR_ENV_VAR):
            data["output_base"] = env[OUTPUT_DIR_ENV_VAR]
        if env.get(PLATFORM_VERSION_ENV_VAR):
            data["default_platform_version"] = env[PLATFORM_VERSION_ENV_VAR]
        return cls.model_validate(data)
