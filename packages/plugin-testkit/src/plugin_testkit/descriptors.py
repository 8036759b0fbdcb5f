"""Test artifact descriptors.

A descriptor is an immutable declaration of a plugin archive a test wants:
its identity (name, version, target platform version), its content sources
and its post-processing (config, signing). Three variants form a tagged
union on ``kind``:

- PackagesDescriptor ("packages"): archive synthesized from packages/classes
- ScannedPackageDescriptor ("scanned"): the one archive already containing a package
- CustomDescriptor ("custom"): custom-assembled archive, synthesized

Only the content-relevant subset, the CacheKey, decides whether two
descriptors share a built archive.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, field_validator
from typing_extensions import Self

DOTTED_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"
"""Regex pattern for dotted Python package and module names."""

DEFAULT_TEST_NAME = "test-name"
DEFAULT_CUSTOM_NAME = "custom-plugin"


def _validate_package(name: str) -> str:
    if not isinstance(name, str) or not name:
        msg = f"Package name must be a non-empty string, got: {name!r}"
        raise ValueError(msg)
    parts = name.split(".")
    if not all(part.isidentifier() for part in parts):
        msg = f"Invalid package name: {name!r}"
        raise ValueError(msg)
    return name


def simplify_packages(packages: Iterable[str]) -> frozenset[str]:
    """Squash sub-packages whose parent package is also present.

    Scanning a package already covers its sub-packages, so ``{"com.foo",
    "com.foo.bar"}`` reduces to ``{"com.foo"}``. Only dot-boundary
    descendants are dropped: ``"com.foobar"`` is not inside ``"com.foo"``.

    Example:
        >>> sorted(simplify_packages(["com.foo.bar", "com.foo", "com.bar"]))
        ['com.bar', 'com.foo']
    """
    kept: list[str] = []
    for package in sorted(set(packages)):
        if kept and package.startswith(f"{kept[-1]}."):
            continue
        kept.append(package)
    return frozenset(kept)


class ClassRef(BaseModel):
    """Reference to a class by defining module and qualified name.

    The archive entry for a class is its module's source file.

    Example:
        >>> ref = ClassRef.parse("com.example.flows.PingFlow")
        >>> ref.module, ref.qualname
        ('com.example.flows', 'PingFlow')
        >>> ref.resource_candidates
        ('com/example/flows.py', 'com/example/flows/__init__.py')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str = Field(..., pattern=DOTTED_NAME_PATTERN, description="Defining module")
    # Classes defined in a function carry "<locals>" segments in their qualname
    qualname: str = Field(..., min_length=1, description="Qualified class name")

    @classmethod
    def of(cls, klass: type) -> ClassRef:
        """Build a reference from a live class."""
        return cls(module=klass.__module__, qualname=klass.__qualname__)

    @classmethod
    def parse(cls, name: str) -> ClassRef:
        """Parse ``module.ClassName``; the last dot separates module from class.

        A nested class name such as ``pkg.mod.Outer.Inner`` is read as class
        ``Inner`` in module ``pkg.mod.Outer``. Declare nested classes with
        the class object or ``ClassRef(module=..., qualname=...)`` instead.
        """
        module, sep, qualname = name.rpartition(".")
        if not sep:
            msg = f"Class name must be fully qualified: {name!r}"
            raise ValueError(msg)
        return cls(module=module, qualname=qualname)

    @property
    def full_name(self) -> str:
        return f"{self.module}.{self.qualname}"

    @property
    def resource_candidates(self) -> tuple[str, str]:
        """Entry names that may hold the class, in lookup order."""
        base = self.module.replace(".", "/")
        return (f"{base}.py", f"{base}/__init__.py")


ClassLike = ClassRef | type | str


def _coerce_class(value: ClassLike) -> ClassRef:
    if isinstance(value, ClassRef):
        return value
    if isinstance(value, str):
        return ClassRef.parse(value)
    if isinstance(value, type):
        return ClassRef.of(value)
    msg = f"Expected a class, ClassRef or dotted name, got: {value!r}"
    raise TypeError(msg)


class CacheKey(BaseModel):
    """Content identity of a descriptor.

    Config, signing and key store never participate: they change how an
    archive is post-processed or run, not what it contains.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: Literal["scan", "synthesize"]
    name: str
    version_id: int
    target_platform_version: int | None
    packages: frozenset[str]
    classes: frozenset[ClassRef]


class _DescriptorBase(BaseModel):
    """Fields and withers shared by every descriptor variant."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default=DEFAULT_TEST_NAME, min_length=1, description="Plugin name")
    version_id: int = Field(default=1, ge=1, description="Plugin version")
    target_platform_version: int | None = Field(
        default=None,
        ge=1,
        description="Target platform version (None uses the configured default)",
    )
    config: dict[str, Any] = Field(
        default_factory=dict,
        description="Plugin runtime configuration",
    )
    sign_requested: bool = Field(default=False, description="Sign the archive")
    key_store_path: Path | None = Field(
        default=None,
        description="Key store file or directory (None generates one)",
    )

    def _replace(self, update: dict[str, Any]) -> Self:
        # model_copy skips validation; withers must keep field constraints
        return self.model_validate({**dict(self), **update})

    def with_name(self, name: str) -> Self:
        return self._replace({"name": name})

    def with_version_id(self, version_id: int) -> Self:
        return self._replace({"version_id": version_id})

    def with_target_platform_version(self, target_platform_version: int) -> Self:
        return self._replace({"target_platform_version": target_platform_version})

    def with_config(self, config: dict[str, Any]) -> Self:
        return self._replace({"config": dict(config)})

    def signed(self, key_store_path: Path | str | None = None) -> Self:
        """Return a copy that is signed, optionally with an existing key store."""
        path = Path(key_store_path) if key_store_path is not None else None
        return self._replace({"sign_requested": True, "key_store_path": path})


class _SynthesizedDescriptor(_DescriptorBase):
    """Descriptor whose archive is assembled from packages and classes."""

    packages: frozenset[str] = Field(default_factory=frozenset)
    classes: frozenset[ClassRef] = Field(default_factory=frozenset)

    @field_validator("packages")
    @classmethod
    def validate_packages(cls, v: frozenset[str]) -> frozenset[str]:
        for package in v:
            _validate_package(package)
        return v

    def with_classes(self, *classes: ClassLike) -> Self:
        """Return a copy declaring exactly these extra classes.

        Classes already inside a declared package are dropped since scanning
        the package picks them up.
        """
        refs = {_coerce_class(c) for c in classes}
        kept = frozenset(
            ref
            for ref in refs
            if not any(ref.full_name.startswith(f"{package}.") for package in self.packages)
        )
        return self._replace({"classes": kept})

    def cache_key(self) -> CacheKey:
        return CacheKey(
            source="synthesize",
            name=self.name,
            version_id=self.version_id,
            target_platform_version=self.target_platform_version,
            packages=simplify_packages(self.packages),
            classes=self.classes,
        )


class PackagesDescriptor(_SynthesizedDescriptor):
    """Archive synthesized by scanning the declared packages.

    Example:
        >>> d = from_packages("com.example.flows").with_name("flows")
        >>> d.kind, sorted(d.packages)
        ('packages', ['com.example.flows'])
    """

    kind: Literal["packages"] = "packages"


class CustomDescriptor(_SynthesizedDescriptor):
    """Custom-assembled archive from packages plus individual classes."""

    kind: Literal["custom"] = "custom"
    name: str = Field(default=DEFAULT_CUSTOM_NAME, min_length=1, description="Plugin name")


class ScannedPackageDescriptor(_DescriptorBase):
    """The single existing (or locally buildable) archive containing a package."""

    kind: Literal["scanned"] = "scanned"
    scan_package: str = Field(..., pattern=DOTTED_NAME_PATTERN, description="Package to find")

    def cache_key(self) -> CacheKey:
        return CacheKey(
            source="scan",
            name=self.name,
            version_id=self.version_id,
            target_platform_version=self.target_platform_version,
            packages=frozenset({self.scan_package}),
            classes=frozenset(),
        )


Descriptor = Annotated[
    PackagesDescriptor | ScannedPackageDescriptor | CustomDescriptor,
    Discriminator("kind"),
]
"""Any test artifact declaration, discriminated on ``kind``."""


def from_packages(*package_names: str) -> PackagesDescriptor:
    """Create a single descriptor scanning all the given packages."""
    return PackagesDescriptor(packages=simplify_packages(package_names))


def packages_for(*package_names: str) -> list[PackagesDescriptor]:
    """Create one descriptor per package, after squashing sub-packages."""
    return [from_packages(name) for name in sorted(simplify_packages(package_names))]


def find_plugin(package: str) -> ScannedPackageDescriptor:
    """Declare the one archive on the search path that contains ``package``."""
    return ScannedPackageDescriptor(scan_package=package)


def for_classes(*classes: ClassLike) -> PackagesDescriptor:
    """Create a descriptor holding only the given classes.

    Each class contributes its whole module source file. Dotted names follow
    ``ClassRef.parse``, so nested classes must be passed as class objects.
    """
    return PackagesDescriptor().with_classes(*classes)


def custom_plugin(
    packages: Iterable[str] = (),
    *,
    classes: Iterable[ClassLike] = (),
    name: str = DEFAULT_CUSTOM_NAME,
    version_id: int = 1,
    target_platform_version: int | None = None,
) -> CustomDescriptor:
    """Create a custom-assembled descriptor."""
    descriptor = CustomDescriptor(
        packages=frozenset(packages),
        name=name,
        version_id=version_id,
        target_platform_version=target_platform_version,
    )
    return descriptor.with_classes(*classes)


def caller_package(depth: int = 1) -> str | None:
    """Return the package of the module ``depth`` frames up the stack (1 = direct caller).

    ``caller_package()`` called from ``tests/flows/test_ping.py`` (module
    ``tests.flows.test_ping``) returns ``"tests.flows"``. Top-level modules
    have no package and give None.
    """
    frame = inspect.currentframe()
    try:
        for _ in range(depth):
            if frame is None:
                return None
            frame = frame.f_back
        if frame is None:
            return None
        package = frame.f_globals.get("__package__")
        if package is None:
            module = frame.f_globals.get("__name__", "")
            package = module.rpartition(".")[0]
        return package or None
    finally:
        del frame
