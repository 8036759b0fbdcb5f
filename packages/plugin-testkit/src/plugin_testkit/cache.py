"""Descriptor to archive resolution, memoized on content identity.

ArtifactCache is the front door of plugin-testkit: tests hand it
descriptors and get archive paths back. Everything expensive behind it
(classpath scans, project builds, synthesis, key generation, signing) runs
at most once per process for a given input.

Architecture:
- ClasspathLocator: finds the roots holding a scanned package
- ProjectBuilder: builds unbuilt local projects into archives
- ArchiveSynthesizer: assembles archives for declared packages/classes
- Signer: signs copies of produced archives on request
"""

from __future__ import annotations

import shutil
import uuid
from collections.abc import Iterable
from pathlib import Path

import yaml

from plugin_testkit.builder import ProjectBuilder
from plugin_testkit.classpath import ClasspathLocator, SearchPath
from plugin_testkit.config import TestkitSettings
from plugin_testkit.descriptors import (
    CacheKey,
    Descriptor,
    ScannedPackageDescriptor,
    simplify_packages,
)
from plugin_testkit.errors import (
    AmbiguousClasspathRoot,
    MultipleRootsForPackage,
    PackageNotFound,
)
from plugin_testkit.manifest import ManifestAttributes
from plugin_testkit.memo import OnceCache
from plugin_testkit.observability import artifact_operation, get_logger
from plugin_testkit.output import BuiltArtifact, OutputDirectory
from plugin_testkit.signing import Signer
from plugin_testkit.synthesizer import ArchiveSynthesizer

CONFIG_DIR_NAME = "config"


class ArtifactCache:
    """Resolve descriptors to archive paths, producing each archive once.

    Two descriptors with equal cache keys share one archive. Config,
    signing and key store do not take part in the key: a signed request
    signs a separate copy of the shared archive, so the unsigned bytes
    stay identical for every descriptor with the same content.

    Attributes:
        settings: Settings the cache was created with.
        output_dir: Where synthesized archives and signed copies are written.

    Example:
        >>> cache = ArtifactCache.from_settings()
        >>> path = cache.resolve(from_packages("com.example.flows").with_name("flows"))
        >>> path.name  # doctest: +ELLIPSIS
        'flows_1_4_....jar'
    """

    __test__ = False

    def __init__(
        self,
        settings: TestkitSettings | None = None,
        *,
        output_dir: OutputDirectory | None = None,
        locator: ClasspathLocator | None = None,
        builder: ProjectBuilder | None = None,
        synthesizer: ArchiveSynthesizer | None = None,
        signer: Signer | None = None,
    ) -> None:
        """Initialize ArtifactCache.

        Args:
            settings: Settings; defaults to TestkitSettings().
            output_dir: Output directory; defaults to a fresh run directory
                under settings.output_base.
            locator: Classpath locator; defaults to one over the settings'
                search path.
            builder: Project builder; defaults to one using settings.build.
            synthesizer: Archive synthesizer over the same search path.
            signer: Signer writing its key store into output_dir.
        """
        self.settings = settings or TestkitSettings()
        self.output_dir = output_dir or OutputDirectory(self.settings.output_base)
        search_path = SearchPath(
            self.settings.effective_search_path(),
            build_config=self.settings.build,
        )
        self.locator = locator or ClasspathLocator(search_path)
        self.builder = builder or ProjectBuilder(self.settings.build)
        self.synthesizer = synthesizer or ArchiveSynthesizer(search_path)
        self.signer = signer or Signer(self.settings.signing, self.output_dir)
        self._artifacts: OnceCache[CacheKey, BuiltArtifact] = OnceCache("artifacts")
        self._signed: OnceCache[tuple[CacheKey, Path | None], BuiltArtifact] = OnceCache(
            "signed_artifacts"
        )
        self._logger = get_logger()

    @classmethod
    def from_settings(cls, settings: TestkitSettings | None = None) -> ArtifactCache:
        """Create a cache from explicit settings or from the environment."""
        return cls(settings or TestkitSettings.from_env())

    def normalize(self, descriptor: Descriptor) -> Descriptor:
        """Fill in the configured default target platform version."""
        if descriptor.target_platform_version is None:
            return descriptor.with_target_platform_version(self.settings.default_platform_version)
        return descriptor

    def resolve(self, descriptor: Descriptor) -> Path:
        """Return the archive for a descriptor, producing it on first request.

        Raises:
            TestkitError: Any production failure. Nothing is cached on
                failure; an identical later request tries again.
        """
        descriptor = self.normalize(descriptor)
        key = descriptor.cache_key()
        artifact = self._artifacts.get_or_compute(key, lambda _: self._produce(descriptor))
        if not descriptor.sign_requested:
            return artifact.path

        store = descriptor.key_store_path.absolute() if descriptor.key_store_path else None
        signed = self._signed.get_or_compute(
            (key, store),
            lambda _: self._sign_copy(descriptor, artifact),
        )
        return signed.path

    def resolve_all(self, descriptors: Iterable[Descriptor]) -> list[Path]:
        """Resolve several descriptors in order."""
        return [self.resolve(descriptor) for descriptor in descriptors]

    def artifacts(self) -> list[BuiltArtifact]:
        """Return a snapshot of every archive produced so far."""
        return [*self._artifacts.values(), *self._signed.values()]

    def install(self, descriptors: Iterable[Descriptor], directory: Path) -> list[Path]:
        """Copy resolved archives into a plugin directory.

        A descriptor with non-empty config also gets
        ``config/<archive-stem>.yaml`` next to the archives.

        Returns:
            Paths of the installed archives.
        """
        directory.mkdir(parents=True, exist_ok=True)
        installed: list[Path] = []
        for descriptor in descriptors:
            source = self.resolve(descriptor)
            target = directory / source.name
            shutil.copyfile(source, target)
            if descriptor.config:
                config_dir = directory / CONFIG_DIR_NAME
                config_dir.mkdir(exist_ok=True)
                config_file = config_dir / f"{target.stem}.yaml"
                config_file.write_text(yaml.safe_dump(descriptor.config, sort_keys=True))
            self._logger.info(
                "artifact_installed",
                archive=str(target),
                name=descriptor.name,
                with_config=bool(descriptor.config),
            )
            installed.append(target)
        return installed

    def _produce(self, descriptor: Descriptor) -> BuiltArtifact:
        with artifact_operation("resolve", artifact_name=descriptor.name):
            if isinstance(descriptor, ScannedPackageDescriptor):
                return self._from_classpath(descriptor.scan_package)
            return self._synthesize(descriptor)

    def _from_classpath(self, package: str) -> BuiltArtifact:
        roots = self.locator.locate_roots(package)
        if not roots:
            raise PackageNotFound(package)
        archives = sorted(root.path for root in roots if root.is_archive)
        projects = sorted(root.path for root in roots if not root.is_archive)

        if archives and projects:
            raise AmbiguousClasspathRoot(package, [*archives, *projects])
        if archives:
            if len(archives) > 1:
                raise AmbiguousClasspathRoot(package, archives)
            self._logger.info("existing_archive_found", package=package, archive=str(archives[0]))
            return BuiltArtifact.now(archives[0])
        if len(projects) > 1:
            raise MultipleRootsForPackage(package, projects)
        return self.builder.build_artifact(projects[0])

    def _synthesize(self, descriptor: Descriptor) -> BuiltArtifact:
        # normalize() has run, so the version is always set here
        target_platform_version = descriptor.target_platform_version
        assert target_platform_version is not None
        attributes = ManifestAttributes(
            name=descriptor.name,
            version_id=descriptor.version_id,
            target_platform_version=target_platform_version,
        )
        destination = self.output_dir.archive_path(
            descriptor.name,
            descriptor.version_id,
            target_platform_version,
            self.settings.archive_suffix,
        )
        path = self.synthesizer.synthesize(
            simplify_packages(descriptor.packages),
            descriptor.classes,
            attributes,
            destination,
        )
        return BuiltArtifact.now(path)

    def _sign_copy(self, descriptor: Descriptor, artifact: BuiltArtifact) -> BuiltArtifact:
        source = artifact.path
        directory = self.output_dir.ensure()
        copy = directory / f"{source.stem}-signed-{uuid.uuid4().hex}{source.suffix}"
        shutil.copyfile(source, copy)
        try:
            self.signer.sign_for(descriptor, copy)
        except BaseException:
            copy.unlink(missing_ok=True)
            raise
        return BuiltArtifact.now(copy)
