"""Helpers for constructing the update service."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Callable

from app.config import UpdateConfig, get_update_config
from app.version import get_app_version
from services.update.constants import INSTALL_PATH_ENV
from services.update.installers import (
    BinaryInstaller,
    DisabledPrivilegedMover,
    PrivilegedMover,
    SudoMover,
)
from services.update.models import UpdateError
from services.update.platforms import PlatformResolver, PlatformSource, host_platform
from services.update.providers import GitHubReleaseProvider
from services.update.release_assets import ArtifactFetcher
from services.update.service import UpdateService
from services.update.transport import HttpClient, UrllibHttpClient


_LOGGER = logging.getLogger(__name__)


def find_live_executable(explicit: Path | None = None) -> Path:
    """Return the path of the executable that should be replaced.

    Explicit and environment overrides must name an existing file; this is
    checked before anything is downloaded.
    """

    if explicit is not None:
        return _require_file(Path(explicit).expanduser(), "--install-path")

    override = os.environ.get(INSTALL_PATH_ENV)
    if override:
        return _require_file(Path(override).expanduser(), INSTALL_PATH_ENV)

    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve()

    raise UpdateError(
        "Self-update requires a packaged executable; "
        f"pass --install-path or set {INSTALL_PATH_ENV}"
    )


def _require_file(path: Path, source: str) -> Path:
    if not path.is_file():
        raise UpdateError(
            f"Install path {path} (from {source}) does not exist or is not a file; "
            "nothing was downloaded or changed."
        )
    return path


def build_privileged_mover(config: UpdateConfig) -> PrivilegedMover:
    if not config.allow_privileged_retry:
        _LOGGER.debug("Privileged retry disabled by configuration")
        return DisabledPrivilegedMover()
    if os.name == "nt" or shutil.which("sudo") is None:
        _LOGGER.debug("sudo unavailable; privileged retry disabled")
        return DisabledPrivilegedMover()
    return SudoMover()


def build_update_service(
    config: UpdateConfig | None = None,
    *,
    live_path: Path | None = None,
    client: HttpClient | None = None,
    platform_source: PlatformSource = host_platform,
    privileged_mover: PrivilegedMover | None = None,
    current_version: str | None = None,
    scratch_root: Path | None = None,
    progress: Callable[[str], None] | None = None,
) -> UpdateService:
    """Construct an :class:`UpdateService` for the current environment."""

    config = config or get_update_config()
    version = current_version or get_app_version()
    client = client or UrllibHttpClient(timeout=config.request_timeout)
    user_agent = f"{config.binary}-cli/{version}"

    provider = GitHubReleaseProvider(
        client,
        config.latest_release_url,
        user_agent=user_agent,
    )
    fetcher = ArtifactFetcher(
        client,
        download_base=config.download_base,
        owner=config.owner,
        repo=config.repo,
        binary=config.binary,
        headers={"User-Agent": user_agent},
    )
    installer = BinaryInstaller(privileged_mover or build_privileged_mover(config))
    resolved_live_path = find_live_executable(live_path)
    _LOGGER.debug(
        "Update service for %s (version %s) using %s",
        resolved_live_path,
        version,
        config.latest_release_url,
    )
    return UpdateService(
        provider,
        fetcher,
        installer,
        current_version=version,
        live_path=resolved_live_path,
        platform_resolver=PlatformResolver(platform_source),
        scratch_root=scratch_root,
        progress=progress,
    )


__all__ = [
    "build_privileged_mover",
    "build_update_service",
    "find_live_executable",
]
