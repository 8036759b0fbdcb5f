"""Archive signing with a test key store.

Signing shells out to the platform tools: ``keytool`` generates the
self-signed test key (once per output directory) and ``jarsigner`` signs
archives in place. Alias and password are fixed test values.
"""

from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from plugin_testkit.config import SigningConfig
from plugin_testkit.errors import SigningFailed
from plugin_testkit.memo import OnceCache
from plugin_testkit.observability import artifact_operation, get_logger

if TYPE_CHECKING:
    from plugin_testkit.descriptors import Descriptor
    from plugin_testkit.output import OutputDirectory

GENERATED_MARKER_SUFFIX = ".generated"
KEY_STORE_COPY_SUFFIX = ".keystore"

_FINGERPRINT_PATTERN = re.compile(r"SHA-?256:\s*([0-9A-Fa-f:]+)")


class Signer:
    """Sign archives, generating the shared test key store on demand.

    Attributes:
        config: Signing tool configuration.
        output_dir: Directory holding the generated key store.

    Example:
        >>> signer = Signer(SigningConfig(), OutputDirectory(Path("build/out")))
        >>> signer.sign(Path("build/out/flows.jar"))  # doctest: +SKIP
        '3A:9F:...'
    """

    def __init__(
        self,
        config: SigningConfig | None,
        output_dir: OutputDirectory,
        *,
        key_cache: OnceCache[Path, Path] | None = None,
    ) -> None:
        self.config = config or SigningConfig()
        self.output_dir = output_dir
        self._key_cache = key_cache or OnceCache("generated_key_store")
        self._logger = get_logger()

    @property
    def _password(self) -> str:
        return self.config.password.get_secret_value()

    def generated_key_store(self) -> Path:
        """Return the output directory's key store, generating it exactly once."""
        return self._key_cache.get_or_compute(self.output_dir.path, self._generate_key_store)

    def _generate_key_store(self, directory: Path) -> Path:
        self.output_dir.ensure()
        store = directory / self.config.key_store_name
        marker = store.with_name(store.name + GENERATED_MARKER_SUFFIX)
        if store.is_file() and marker.is_file():
            return store

        with artifact_operation("generate_key_store", archive=str(store)):
            self._run(
                [
                    self.config.keytool,
                    "-genkeypair",
                    "-keystore",
                    str(store),
                    "-storepass",
                    self._password,
                    "-keypass",
                    self._password,
                    "-alias",
                    self.config.alias,
                    "-dname",
                    self.config.distinguished_name,
                    "-keyalg",
                    "RSA",
                    "-keysize",
                    "2048",
                    "-validity",
                    "3650",
                ],
                "Key store generation failed",
            )
            marker.touch()
            self._logger.info("key_store_generated", key_store=str(store))
        return store

    def resolve_key_store(self, key_store_path: Path | None) -> Path:
        """Return the key store file to use.

        Args:
            key_store_path: A key store file, a directory holding one under
                the configured name, or None for the generated store.

        Raises:
            SigningFailed: If the given key store does not exist.
        """
        if key_store_path is None:
            return self.generated_key_store()
        store = key_store_path
        if store.is_dir():
            store = store / self.config.key_store_name
        if not store.is_file():
            raise SigningFailed(f"Key store not found: {store}")
        return store

    def sign(self, archive: Path, key_store_path: Path | None = None) -> str | None:
        """Sign an archive in place.

        The chosen key store is copied next to the archive first. Signing an
        already signed archive again is safe but does redo the work.

        Returns:
            The SHA-256 fingerprint of the signing certificate, if reported.

        Raises:
            SigningFailed: If the signing tool fails or cannot be run.
        """
        store = self.resolve_key_store(key_store_path)
        with artifact_operation("sign", archive=str(archive)):
            local_store = archive.with_name(archive.name + KEY_STORE_COPY_SUFFIX)
            shutil.copyfile(store, local_store)
            self._run(
                [
                    self.config.jarsigner,
                    "-keystore",
                    str(local_store),
                    "-storepass",
                    self._password,
                    "-keypass",
                    self._password,
                    str(archive),
                    self.config.alias,
                ],
                "Archive signing failed",
                archive=archive,
            )
            identity = self.key_identity(local_store)
            self._logger.info("archive_signed", archive=str(archive), public_key=identity)
            return identity

    def sign_for(self, descriptor: Descriptor, archive: Path) -> str | None:
        """Sign archive if the descriptor asks for it; otherwise do nothing."""
        if not descriptor.sign_requested:
            self._logger.debug("archive_left_unsigned", archive=str(archive))
            return None
        return self.sign(archive, descriptor.key_store_path)

    def key_identity(self, key_store: Path) -> str | None:
        """Return the SHA-256 certificate fingerprint stored under the alias."""
        completed = self._run(
            [
                self.config.keytool,
                "-list",
                "-v",
                "-keystore",
                str(key_store),
                "-storepass",
                self._password,
                "-alias",
                self.config.alias,
            ],
            "Reading the signing key failed",
        )
        match = _FINGERPRINT_PATTERN.search(completed.stdout or "")
        return match.group(1) if match else None

    def _run(
        self,
        command: list[str],
        message: str,
        *,
        archive: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise SigningFailed(f"{message}: {exc}", archive=archive) from exc
        if completed.returncode != 0:
            self._logger.error(
                "signing_tool_failed",
                tool=command[0],
                exit_code=completed.returncode,
                stderr=completed.stderr,
            )
            raise SigningFailed(message, archive=archive, exit_code=completed.returncode)
        return completed
