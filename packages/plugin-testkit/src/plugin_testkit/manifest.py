"""Plugin manifest attributes and jar-manifest encoding.

The host loader reads ``META-INF/MANIFEST.MF`` and requires it to be the
first archive entry; without ``Manifest-Version`` every other attribute is
silently ignored.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

MANIFEST_NAME = "META-INF/MANIFEST.MF"

MANIFEST_VERSION = "Manifest-Version"
CONTRACT_NAME = "Plugin-Contract-Name"
CONTRACT_VERSION = "Plugin-Contract-Version"
WORKFLOW_NAME = "Plugin-Workflow-Name"
WORKFLOW_VERSION = "Plugin-Workflow-Version"
TARGET_PLATFORM_VERSION = "Target-Platform-Version"

# Manifest lines are limited to 72 bytes, excluding the line break
MAX_LINE_BYTES = 72

# Manifest line breaks; str.splitlines would also split on Unicode separators
_LINE_BREAK = re.compile(r"\r\n|\n|\r")


class ManifestAttributes(BaseModel):
    """The attributes every synthesized archive's manifest carries.

    Example:
        >>> attrs = ManifestAttributes(name="flows", version_id=7, target_platform_version=42)
        >>> attrs.to_mapping()[CONTRACT_VERSION]
        '7'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Contract and workflow name")
    version_id: int = Field(..., ge=1, description="Contract and workflow version")
    target_platform_version: int = Field(..., ge=1, description="Target platform version")

    def to_mapping(self) -> dict[str, str]:
        """Return the manifest main-section attributes in write order."""
        return {
            MANIFEST_VERSION: "1.0",
            CONTRACT_NAME: self.name,
            CONTRACT_VERSION: str(self.version_id),
            WORKFLOW_NAME: self.name,
            WORKFLOW_VERSION: str(self.version_id),
            TARGET_PLATFORM_VERSION: str(self.target_platform_version),
        }

    def render(self) -> bytes:
        return render_manifest(self.to_mapping())


def _wrap(line: str) -> list[bytes]:
    chunks: list[bytes] = []
    current = b""
    limit = MAX_LINE_BYTES
    for char in line:
        encoded = char.encode("utf-8")
        if len(current) + len(encoded) > limit:
            chunks.append(current)
            current = b""
            limit = MAX_LINE_BYTES - 1  # continuation lines start with a space
        current += encoded
    chunks.append(current)
    return [chunks[0], *(b" " + chunk for chunk in chunks[1:])]


def render_manifest(attributes: Mapping[str, str]) -> bytes:
    """Encode a main-section manifest.

    Lines end in CRLF, long lines continue on lines starting with a single
    space, and the section ends with an empty line.

    Raises:
        ValueError: If Manifest-Version is missing or comes later than first.
    """
    keys = list(attributes)
    if not keys or keys[0] != MANIFEST_VERSION:
        msg = f"{MANIFEST_VERSION} must be the first manifest attribute"
        raise ValueError(msg)
    lines: list[bytes] = []
    for key, value in attributes.items():
        if "\n" in value or "\r" in value:
            msg = f"Manifest attribute {key} must be a single line"
            raise ValueError(msg)
        lines.extend(_wrap(f"{key}: {value}"))
    return b"".join(line + b"\r\n" for line in lines) + b"\r\n"


def parse_manifest(data: bytes) -> dict[str, str]:
    """Decode the main section of a manifest.

    Example:
        >>> parse_manifest(b"Manifest-Version: 1.0\\r\\nName: a\\r\\n b\\r\\n\\r\\n")
        {'Manifest-Version': '1.0', 'Name': 'ab'}
    """
    attributes: dict[str, str] = {}
    last_key: str | None = None
    for raw in _LINE_BREAK.split(data.decode("utf-8")):
        if not raw:
            break
        if raw.startswith(" ") and last_key is not None:
            attributes[last_key] += raw[1:]
            continue
        key, sep, value = raw.partition(": ")
        if not sep:
            msg = f"Malformed manifest line: {raw!r}"
            raise ValueError(msg)
        attributes[key] = value
        last_key = key
    return attributes
