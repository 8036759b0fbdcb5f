"""plugin-testkit: on-demand plugin archives for integration tests.

This package provides:
- Immutable descriptors declaring which packages/classes form a plugin
- Reproducible archive synthesis with a canonical manifest
- Discovery (and local builds) of archives already on the search path
- Optional signing with a generated test key store
- Process-wide memoization so identical declarations are built once

Example:
    >>> from plugin_testkit import ArtifactCache, from_packages
    >>> cache = ArtifactCache.from_settings()
    >>> archive = cache.resolve(from_packages("com.example.flows").with_name("flows"))
"""

from __future__ import annotations

__version__ = "0.1.0"

from plugin_testkit.cache import ArtifactCache
from plugin_testkit.config import (
    BuildToolConfig,
    SigningConfig,
    TestkitSettings,
)
from plugin_testkit.descriptors import (
    CacheKey,
    ClassRef,
    CustomDescriptor,
    Descriptor,
    PackagesDescriptor,
    ScannedPackageDescriptor,
    caller_package,
    custom_plugin,
    find_plugin,
    for_classes,
    from_packages,
    packages_for,
    simplify_packages,
)
from plugin_testkit.errors import (
    AmbiguousBuildOutput,
    AmbiguousClasspathRoot,
    BuildFailed,
    BuildProducedNoArtifact,
    BuildToolNotFound,
    ClassNotFound,
    EmptyDeclaration,
    MultipleRootsForPackage,
    PackageNotFound,
    ProjectRootNotFound,
    SigningFailed,
    TestkitError,
)
from plugin_testkit.manifest import ManifestAttributes
from plugin_testkit.output import BuiltArtifact

__all__ = [
    "__version__",
    # Cache
    "ArtifactCache",
    "BuiltArtifact",
    # Configuration
    "BuildToolConfig",
    "SigningConfig",
    "TestkitSettings",
    # Descriptors
    "CacheKey",
    "ClassRef",
    "CustomDescriptor",
    "Descriptor",
    "PackagesDescriptor",
    "ScannedPackageDescriptor",
    "caller_package",
    "custom_plugin",
    "find_plugin",
    "for_classes",
    "from_packages",
    "packages_for",
    "simplify_packages",
    # Manifest
    "ManifestAttributes",
    # Errors
    "TestkitError",
    "PackageNotFound",
    "ProjectRootNotFound",
    "AmbiguousClasspathRoot",
    "MultipleRootsForPackage",
    "BuildToolNotFound",
    "BuildFailed",
    "BuildProducedNoArtifact",
    "AmbiguousBuildOutput",
    "EmptyDeclaration",
    "ClassNotFound",
    "SigningFailed",
]
