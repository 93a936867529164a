"""Service responsible for discovering and installing updates."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable

from services.update.archive import extract_archive
from services.update.constants import SCRATCH_PREFIX
from services.update.hashing import verify_archive
from services.update.installers import Installer
from services.update.models import (
    ReleaseInfo,
    TargetIdentifier,
    UpdateCheck,
    UpdateOutcome,
    UpdateStatus,
)
from services.update.platforms import PlatformResolver
from services.update.providers import ReleaseProvider
from services.update.release_assets import ArtifactFetcher
from services.update.versioning import is_current


_LOGGER = logging.getLogger(__name__)


class UpdateService:
    """Coordinate release discovery, download, verification and install.

    Steps run once, in order, and any :class:`UpdateError` aborts the run.
    The scratch directory is removed on every exit path.
    """

    def __init__(
        self,
        provider: ReleaseProvider,
        fetcher: ArtifactFetcher,
        installer: Installer,
        *,
        current_version: str,
        live_path: Path,
        platform_resolver: PlatformResolver | None = None,
        scratch_root: Path | None = None,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self._provider = provider
        self._fetcher = fetcher
        self._installer = installer
        self._current_version = current_version
        self._live_path = Path(live_path)
        self._platform_resolver = platform_resolver or PlatformResolver()
        self._scratch_root = scratch_root
        self._progress = progress

    @property
    def current_version(self) -> str:
        return self._current_version

    @property
    def live_path(self) -> Path:
        return self._live_path

    def resolve_target(self) -> TargetIdentifier:
        return self._platform_resolver.resolve()

    def check(self) -> UpdateCheck:
        """Compare the running version with the latest published release."""

        release = self._provider.fetch_latest()
        available = not is_current(self._current_version, release.version)
        if available:
            _LOGGER.info("Update available: %s -> %s", self._current_version, release.version)
        else:
            _LOGGER.info("Current version %s is up to date", self._current_version)
        return UpdateCheck(
            current_version=self._current_version,
            latest=release,
            update_available=available,
        )

    def run(self) -> UpdateOutcome:
        """Run the whole pipeline, returning once the new binary is in place."""

        target = self.resolve_target()
        check = self.check()
        if not check.update_available:
            return UpdateOutcome(
                status=UpdateStatus.UP_TO_DATE,
                current_version=self._current_version,
                release=check.latest,
                target=target,
            )
        return self.install_release(check.latest, target)

    def install_release(self, release: ReleaseInfo, target: TargetIdentifier) -> UpdateOutcome:
        """Download, verify, unpack and install ``release`` for ``target``."""

        _LOGGER.info("Preparing update to %s for %s", release.tag, target.triple)
        scratch_dir = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=self._scratch_root))
        _LOGGER.debug("Using scratch directory %s", scratch_dir)
        try:
            self._report(f"Downloading {release.tag} ({target.triple})...")
            artifact = self._fetcher.fetch(release.tag, target, scratch_dir)
            manifest_text = artifact.checksums_path.read_text(encoding="utf-8", errors="replace")
            verify_archive(artifact.archive_path, manifest_text, artifact.archive_name)
            self._report("Checksum verified.")
            new_binary = extract_archive(
                artifact.archive_path, scratch_dir / "unpacked", self._fetcher.binary
            )
            self._report(f"Installing to {self._live_path}...")
            transaction = self._installer.install(new_binary, self._live_path)
        finally:
            _remove_scratch(scratch_dir)

        leftover = transaction.backup_path if transaction.backup_path.exists() else None
        _LOGGER.info("Update to %s complete", release.tag)
        return UpdateOutcome(
            status=UpdateStatus.UPDATED,
            current_version=self._current_version,
            release=release,
            target=target,
            installed_path=transaction.live_path,
            leftover_backup=leftover,
        )

    def _report(self, message: str) -> None:
        if self._progress is not None:
            self._progress(message)


def _remove_scratch(scratch_dir: Path) -> None:
    shutil.rmtree(scratch_dir, ignore_errors=True)
    if scratch_dir.exists():
        _LOGGER.warning("Unable to remove scratch directory %s", scratch_dir)
    else:
        _LOGGER.debug("Removed scratch directory %s", scratch_dir)


__all__ = ["UpdateService"]
