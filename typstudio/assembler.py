"""Normalize editor state into the compilation unit handed to the engine."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .config import BIBLIOGRAPHY_BLOB_NAME
from .errors import EmptySourceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderInputs:
    """Snapshot of everything a render attempt reads."""

    source: str
    bibliography: str | None = None
    images: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def snapshot(cls, source: str, bibliography: str | None, images: Mapping[str, str]) -> RenderInputs:
        # Copy the table so edits made while an attempt is in flight stay
        # out of that attempt.
        return cls(source, bibliography, MappingProxyType(dict(images)))


@dataclass(frozen=True)
class StaticBlob:
    name: str
    data: bytes


@dataclass(frozen=True)
class CompilationUnit:
    source: str
    blobs: tuple[StaticBlob, ...] = ()

    @property
    def blob_names(self) -> tuple[str, ...]:
        return tuple(blob.name for blob in self.blobs)

    def blob(self, name: str) -> StaticBlob | None:
        for blob in self.blobs:
            if blob.name == name:
                return blob
        return None


@dataclass(frozen=True)
class SkippedImage:
    image_id: str
    reason: str


@dataclass(frozen=True)
class AssemblyResult:
    unit: CompilationUnit
    skipped: tuple[SkippedImage, ...] = ()


def image_payload_body(payload: str) -> str:
    """Strip a data-URL header (everything through the first comma)."""
    comma = payload.find(",")
    if comma >= 0:
        return payload[comma + 1:]
    return payload


def assemble(
    source: str,
    bibliography: str | None = None,
    images: Mapping[str, str] | None = None,
) -> AssemblyResult:
    """Build a compilation unit; bad images are skipped, never fatal.

    Raises EmptySourceError when the source is blank.
    """
    if not source.strip():
        raise EmptySourceError()

    logger.info("Assembling Typst source: %d chars", len(source))
    blobs: list[StaticBlob] = []
    skipped: list[SkippedImage] = []

    if bibliography is not None and bibliography.strip():
        logger.info("Adding bibliography file: %d chars", len(bibliography))
        blobs.append(StaticBlob(BIBLIOGRAPHY_BLOB_NAME, bibliography.encode("utf-8")))

    for image_id, payload in sorted((images or {}).items()):
        if image_id == BIBLIOGRAPHY_BLOB_NAME:
            logger.warning("Skipping image %s: name is reserved for the bibliography", image_id)
            skipped.append(SkippedImage(image_id, "reserved name"))
            continue
        try:
            data = base64.b64decode(image_payload_body(payload), validate=True)
        except (binascii.Error, ValueError) as exc:
            logger.warning("Failed to decode base64 for %s: %s", image_id, exc)
            skipped.append(SkippedImage(image_id, f"invalid base64: {exc}"))
            continue
        logger.info("Decoded image %s: %d bytes", image_id, len(data))
        blobs.append(StaticBlob(image_id, data))

    blobs.sort(key=lambda blob: blob.name)
    return AssemblyResult(CompilationUnit(source, tuple(blobs)), tuple(skipped))
