"""Utilities for downloading release archives and their checksum manifest."""

from __future__ import annotations

import logging
from pathlib import Path

from services.update.constants import (
    ARCHIVE_SUFFIX,
    BINARY_NAME,
    CHECKSUMS_ASSET_NAME,
    DOWNLOAD_BASE,
    GITHUB_OWNER,
    GITHUB_REPO,
)
from services.update.models import DownloadedArtifact, NetworkError, TargetIdentifier
from services.update.transport import HttpClient, UrllibHttpClient


_LOGGER = logging.getLogger(__name__)

__all__ = ["ArtifactFetcher", "archive_name"]


def archive_name(tag: str, target: TargetIdentifier, binary: str = BINARY_NAME) -> str:
    """Return the release asset name, e.g. ``polymarket-v1.0.0-x86_64-unknown-linux-gnu.tar.gz``."""

    return f"{binary}-{tag}-{target.triple}{ARCHIVE_SUFFIX}"


class ArtifactFetcher:
    """Download the platform archive and ``checksums.txt`` for a release tag."""

    def __init__(
        self,
        client: HttpClient | None = None,
        *,
        download_base: str = DOWNLOAD_BASE,
        owner: str = GITHUB_OWNER,
        repo: str = GITHUB_REPO,
        binary: str = BINARY_NAME,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client or UrllibHttpClient()
        self._download_base = download_base.rstrip("/")
        self._owner = owner
        self._repo = repo
        self._binary = binary
        self._headers = dict(headers or {})

    @property
    def binary(self) -> str:
        return self._binary

    def release_url(self, tag: str, asset: str) -> str:
        return f"{self._download_base}/{self._owner}/{self._repo}/releases/download/{tag}/{asset}"

    def archive_name(self, tag: str, target: TargetIdentifier) -> str:
        return archive_name(tag, target, self._binary)

    def fetch(self, tag: str, target: TargetIdentifier, scratch_dir: Path) -> DownloadedArtifact:
        """Download both assets into ``scratch_dir``.

        The caller owns ``scratch_dir`` and removes it whatever happens here.
        """

        name = self.archive_name(tag, target)
        archive_url = self.release_url(tag, name)
        checksums_url = self.release_url(tag, CHECKSUMS_ASSET_NAME)

        archive_path = scratch_dir / f"{self._binary}{ARCHIVE_SUFFIX}"
        _LOGGER.info("Downloading %s from %s", name, archive_url)
        self._client.download(archive_url, archive_path, headers=self._headers)

        checksums_path = scratch_dir / CHECKSUMS_ASSET_NAME
        _LOGGER.info("Downloading checksum manifest from %s", checksums_url)
        try:
            self._client.download(checksums_url, checksums_path, headers=self._headers)
        except NetworkError as exc:
            raise NetworkError(
                f"Failed to download {CHECKSUMS_ASSET_NAME}, cannot verify integrity: {exc}"
            ) from exc

        _LOGGER.debug("Release assets for %s stored in %s", tag, scratch_dir)
        return DownloadedArtifact(
            archive_path=archive_path,
            checksums_path=checksums_path,
            scratch_dir=scratch_dir,
            archive_name=name,
        )
