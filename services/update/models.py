"""Data models and errors used by the update service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from services.update.constants import BACKUP_SUFFIX


class OperatingSystem(str, Enum):
    """Operating systems that have published release artifacts."""

    MACOS = "macos"
    LINUX = "linux"


class Architecture(str, Enum):
    """CPU architectures that have published release artifacts."""

    X86_64 = "x86_64"
    AARCH64 = "aarch64"


@dataclass(frozen=True)
class TargetIdentifier:
    """A supported platform and the target triple naming its artifact."""

    os: OperatingSystem
    arch: Architecture
    triple: str


@dataclass(frozen=True)
class ReleaseInfo:
    """The newest published release as reported by the registry."""

    tag: str
    version: str


@dataclass(frozen=True)
class ChecksumEntry:
    digest: str
    filename: str

    def matches(self, filename: str) -> bool:
        if self.filename == filename:
            return True
        return self.filename.startswith("./") and self.filename[2:] == filename


@dataclass(frozen=True)
class ChecksumManifest:
    """Ordered ``(digest, filename)`` records parsed from ``checksums.txt``."""

    entries: tuple[ChecksumEntry, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "ChecksumManifest":
        entries: list[ChecksumEntry] = []
        for line in text.splitlines():
            parts = line.split()
            if len(parts) < 2:
                continue
            entries.append(ChecksumEntry(digest=parts[0], filename=parts[1]))
        return cls(tuple(entries))

    def lookup(self, filename: str) -> ChecksumEntry | None:
        """Return the first record for ``filename``, tolerating a ``./`` prefix."""

        for entry in self.entries:
            if entry.matches(filename):
                return entry
        return None


@dataclass(frozen=True)
class DownloadedArtifact:
    """Files fetched for one update run inside its scratch directory."""

    archive_path: Path
    checksums_path: Path
    scratch_dir: Path
    archive_name: str


@dataclass(frozen=True)
class InstallTransaction:
    """Paths involved in swapping a new executable into place."""

    live_path: Path
    backup_path: Path
    new_binary_path: Path

    @classmethod
    def for_live_path(cls, live_path: Path, new_binary: Path) -> "InstallTransaction":
        live_path = Path(live_path)
        backup_path = live_path.with_name(live_path.name + BACKUP_SUFFIX)
        return cls(live_path=live_path, backup_path=backup_path, new_binary_path=Path(new_binary))


class UpdateStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"


@dataclass(frozen=True)
class UpdateCheck:
    """Result of comparing the running version with the latest release."""

    current_version: str
    latest: ReleaseInfo
    update_available: bool


@dataclass(frozen=True)
class UpdateOutcome:
    """Summary of a completed :meth:`UpdateService.run` call."""

    status: UpdateStatus
    current_version: str
    release: ReleaseInfo
    target: TargetIdentifier
    installed_path: Path | None = None
    leftover_backup: Path | None = None


class UpdateError(RuntimeError):
    """Base class for every failure raised by the update pipeline."""


class NetworkError(UpdateError):
    """A request did not complete or returned a non-success status."""


class ParseError(UpdateError):
    """The release registry returned an unusable response."""


class UnsupportedPlatform(UpdateError):
    def __init__(self, os_name: str, arch: str) -> None:
        super().__init__(f"Unsupported platform: {os_name}/{arch}")
        self.os = os_name
        self.arch = arch


class IntegrityError(UpdateError):
    """The downloaded archive could not be verified against the manifest."""

    security_warning = True


class MissingManifestEntry(IntegrityError):
    def __init__(self, filename: str) -> None:
        super().__init__(
            f"No checksum found for {filename} in checksums.txt. "
            "The release may have been tampered with. Aborting."
        )
        self.filename = filename


class ChecksumMismatch(IntegrityError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "Checksum mismatch!\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n\n"
            "The downloaded binary may have been tampered with. Aborting."
        )
        self.expected = expected
        self.actual = actual


class ExtractionError(UpdateError):
    """The verified archive could not be unpacked into an executable."""


class InstallError(UpdateError):
    """Base class for failures while swapping the executable into place."""

    fatal = False


class PermissionDenied(InstallError):
    def __init__(self, path: Path) -> None:
        super().__init__(
            f"Permission denied while replacing {path} (try running with sudo)"
        )
        self.path = path


class InstallFailed(InstallError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Failed to install new binary at {path}: {reason}. "
            "The previous version is still installed."
        )
        self.path = path


class RollbackFailed(InstallError):
    fatal = True

    def __init__(self, live_path: Path, backup_path: Path, reason: str) -> None:
        super().__init__(
            f"Failed to install new binary and could not restore the previous version: {reason}\n"
            f"Restore it manually with: mv {backup_path} {live_path}"
        )
        self.live_path = live_path
        self.backup_path = backup_path


class UpdateInProgress(InstallError):
    def __init__(self, lock_path: Path) -> None:
        super().__init__(
            f"Another update is already running (lock file {lock_path}). "
            "Remove the lock file if no update is in progress."
        )
        self.lock_path = lock_path
