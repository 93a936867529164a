"""Hashing helpers for release archive verification."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from services.update.constants import HASH_CHUNK_SIZE
from services.update.models import ChecksumManifest, ChecksumMismatch, MissingManifestEntry


_LOGGER = logging.getLogger(__name__)


def calculate_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def expected_digest(manifest_text: str, expected_filename: str) -> str:
    entry = ChecksumManifest.parse(manifest_text).lookup(expected_filename)
    if entry is None:
        raise MissingManifestEntry(expected_filename)
    return entry.digest


def verify_archive(archive_path: Path, manifest_text: str, expected_filename: str) -> str:
    """Check ``archive_path`` against its ``checksums.txt`` record.

    Returns the verified digest. Raises :class:`MissingManifestEntry` or
    :class:`ChecksumMismatch`; callers must not touch the archive afterwards.
    """

    expected = expected_digest(manifest_text, expected_filename)
    actual = calculate_sha256(archive_path)
    if expected.lower() != actual.lower():
        _LOGGER.error(
            "Checksum mismatch for %s: expected %s, computed %s",
            expected_filename,
            expected,
            actual,
        )
        raise ChecksumMismatch(expected, actual)
    _LOGGER.info("Verified SHA-256 of %s", expected_filename)
    return actual


__all__ = ["calculate_sha256", "expected_digest", "verify_archive"]
