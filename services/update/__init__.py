"""Public API for the update service package."""

from __future__ import annotations

from services.update.builder import build_update_service, find_live_executable
from services.update.constants import (
    API_URL,
    BINARY_NAME,
    CHECKSUMS_ASSET_NAME,
    GITHUB_OWNER,
    GITHUB_REPO,
    INSTALL_PATH_ENV,
    MAX_ARCHIVE_ENTRIES,
    MAX_ARCHIVE_FILE_SIZE,
    MAX_ARCHIVE_TOTAL_BYTES,
)
from services.update.installers import (
    BinaryInstaller,
    DisabledPrivilegedMover,
    Installer,
    PrivilegedMover,
    SudoMover,
)
from services.update.models import (
    Architecture,
    ChecksumManifest,
    ChecksumMismatch,
    DownloadedArtifact,
    ExtractionError,
    InstallError,
    InstallFailed,
    InstallTransaction,
    IntegrityError,
    MissingManifestEntry,
    NetworkError,
    OperatingSystem,
    ParseError,
    PermissionDenied,
    ReleaseInfo,
    RollbackFailed,
    TargetIdentifier,
    UnsupportedPlatform,
    UpdateCheck,
    UpdateError,
    UpdateInProgress,
    UpdateOutcome,
    UpdateStatus,
)
from services.update.platforms import PlatformResolver, resolve_target
from services.update.providers import GitHubReleaseProvider, ReleaseProvider
from services.update.release_assets import ArtifactFetcher
from services.update.service import UpdateService
from services.update.transport import HttpClient, UrllibHttpClient

__all__ = [
    "API_URL",
    "BINARY_NAME",
    "CHECKSUMS_ASSET_NAME",
    "GITHUB_OWNER",
    "GITHUB_REPO",
    "INSTALL_PATH_ENV",
    "MAX_ARCHIVE_ENTRIES",
    "MAX_ARCHIVE_FILE_SIZE",
    "MAX_ARCHIVE_TOTAL_BYTES",
    "Architecture",
    "ArtifactFetcher",
    "BinaryInstaller",
    "ChecksumManifest",
    "ChecksumMismatch",
    "DisabledPrivilegedMover",
    "DownloadedArtifact",
    "ExtractionError",
    "GitHubReleaseProvider",
    "HttpClient",
    "InstallError",
    "InstallFailed",
    "InstallTransaction",
    "Installer",
    "IntegrityError",
    "MissingManifestEntry",
    "NetworkError",
    "OperatingSystem",
    "ParseError",
    "PermissionDenied",
    "PlatformResolver",
    "PrivilegedMover",
    "ReleaseInfo",
    "ReleaseProvider",
    "RollbackFailed",
    "SudoMover",
    "TargetIdentifier",
    "UnsupportedPlatform",
    "UpdateCheck",
    "UpdateError",
    "UpdateInProgress",
    "UpdateOutcome",
    "UpdateService",
    "UpdateStatus",
    "UrllibHttpClient",
    "build_update_service",
    "find_live_executable",
    "resolve_target",
]
