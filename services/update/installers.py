"""Swap a verified executable into place with backup and rollback."""

from __future__ import annotations

import contextlib
import errno
import hashlib
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Iterator, Protocol, Sequence

from services.update.constants import EXECUTABLE_MODE, LOCK_SUFFIX, SCRATCH_PREFIX
from services.update.models import (
    InstallFailed,
    InstallTransaction,
    PermissionDenied,
    RollbackFailed,
    UpdateInProgress,
)

_LOGGER = logging.getLogger(__name__)


class PrivilegedMover(Protocol):
    """Escalated fallback used when a direct filesystem change is denied.

    Implementations raise :class:`PermissionError` when they cannot help.
    """

    def move(self, source: Path, destination: Path) -> None:
        """Move ``source`` to ``destination`` with elevated privileges."""

    def remove(self, path: Path) -> None:
        """Delete ``path`` with elevated privileges."""


class DisabledPrivilegedMover:
    """Refuse every escalation request."""

    def move(self, source: Path, destination: Path) -> None:
        raise PermissionError(errno.EACCES, "Privilege escalation is disabled", str(destination))

    def remove(self, path: Path) -> None:
        raise PermissionError(errno.EACCES, "Privilege escalation is disabled", str(path))


class SudoMover:
    """Run ``mv``/``rm`` through ``sudo``, prompting on the controlling terminal."""

    def __init__(self, command: Sequence[str] = ("sudo",)) -> None:
        self._command = tuple(command)

    def move(self, source: Path, destination: Path) -> None:
        self._run(["mv", str(source), str(destination)])

    def remove(self, path: Path) -> None:
        self._run(["rm", "-f", str(path)])

    def _run(self, arguments: list[str]) -> None:
        command = [*self._command, *arguments]
        _LOGGER.info("Running privileged command: %s", " ".join(command))
        try:
            completed = subprocess.run(command, check=False)
        except OSError as exc:
            raise PermissionError(
                errno.EACCES, f"Unable to run {self._command[0]}: {exc}"
            ) from exc
        if completed.returncode != 0:
            raise PermissionError(
                errno.EACCES,
                f"{' '.join(self._command)} {arguments[0]} failed with exit code {completed.returncode}",
            )


class Installer(Protocol):
    """Protocol describing how a new executable replaces the live one."""

    def install(self, new_binary: Path, live_path: Path) -> InstallTransaction:
        """Replace ``live_path`` with ``new_binary``."""


def move_path(source: Path, destination: Path) -> None:
    """Atomically move ``source`` over ``destination``.

    Across filesystems the file is first copied next to ``destination`` and
    then renamed over it, so ``destination`` is never half written.
    """

    try:
        os.replace(source, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise

    staging = destination.with_name(f".{destination.name}.{os.getpid()}.tmp")
    try:
        shutil.copy2(source, staging)
        os.replace(staging, destination)
    except OSError:
        with contextlib.suppress(OSError):
            staging.unlink()
        raise
    with contextlib.suppress(FileNotFoundError):
        os.unlink(source)


def lock_path_for(live_path: Path) -> Path:
    key = hashlib.sha256(str(Path(live_path).absolute()).encode("utf-8")).hexdigest()[:16]
    return Path(tempfile.gettempdir()) / f"{SCRATCH_PREFIX}{key}{LOCK_SUFFIX}"


@contextlib.contextmanager
def install_lock(live_path: Path) -> Iterator[Path]:
    """Hold an exclusive lock for updates of ``live_path``.

    The lock lives in the temporary directory so it can be taken even when
    the executable's directory is only writable through ``sudo``.
    """

    lock_path = lock_path_for(live_path)
    try:
        descriptor = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as exc:
        raise UpdateInProgress(lock_path) from exc
    try:
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()} {live_path}\n")
        _LOGGER.debug("Acquired update lock %s", lock_path)
        yield lock_path
    finally:
        with contextlib.suppress(FileNotFoundError):
            lock_path.unlink()
        _LOGGER.debug("Released update lock %s", lock_path)


class BinaryInstaller:
    """Two-phase replacement of the running executable."""

    def __init__(
        self,
        privileged_mover: PrivilegedMover | None = None,
        *,
        set_executable: bool = os.name != "nt",
    ) -> None:
        self._privileged = privileged_mover or DisabledPrivilegedMover()
        self._set_executable = set_executable

    def install(self, new_binary: Path, live_path: Path) -> InstallTransaction:
        transaction = InstallTransaction.for_live_path(live_path, new_binary)
        with install_lock(transaction.live_path):
            self._back_up(transaction)
            self._swap_in(transaction)
            self._finalise(transaction)
        _LOGGER.info("Installed new executable at %s", transaction.live_path)
        return transaction

    def _back_up(self, transaction: InstallTransaction) -> None:
        live, backup = transaction.live_path, transaction.backup_path
        if backup.exists():
            _LOGGER.warning("Replacing stale backup left by an earlier update: %s", backup)
        _LOGGER.info("Moving %s to backup %s", live, backup)
        try:
            self._move(live, backup)
        except PermissionError as exc:
            _LOGGER.error("Unable to back up %s: %s", live, exc)
            raise PermissionDenied(live) from exc
        except OSError as exc:
            _LOGGER.error("Unable to back up %s: %s", live, exc)
            raise InstallFailed(live, str(exc)) from exc

    def _swap_in(self, transaction: InstallTransaction) -> None:
        live = transaction.live_path
        _LOGGER.info("Moving %s into place at %s", transaction.new_binary_path, live)
        try:
            self._move(transaction.new_binary_path, live)
        except OSError as exc:
            _LOGGER.error("Failed to move new executable into place: %s", exc)
            self._roll_back(transaction)
            raise InstallFailed(live, str(exc)) from exc

    def _roll_back(self, transaction: InstallTransaction) -> None:
        live, backup = transaction.live_path, transaction.backup_path
        _LOGGER.warning("Restoring previous executable from %s", backup)
        try:
            self._move(backup, live)
        except OSError as exc:
            _LOGGER.critical(
                "Rollback failed; previous executable remains at %s: %s", backup, exc
            )
            raise RollbackFailed(live, backup, str(exc)) from exc
        _LOGGER.info("Previous executable restored at %s", live)

    def _finalise(self, transaction: InstallTransaction) -> None:
        live, backup = transaction.live_path, transaction.backup_path
        if self._set_executable:
            try:
                os.chmod(live, EXECUTABLE_MODE)
            except OSError as exc:
                _LOGGER.warning(
                    "Unable to mark %s executable (%s); run: chmod 755 %s", live, exc, live
                )
        try:
            backup.unlink()
        except FileNotFoundError:
            pass
        except PermissionError:
            try:
                self._privileged.remove(backup)
            except OSError as exc:
                _LOGGER.warning("Unable to remove backup %s (%s); delete it manually", backup, exc)
        except OSError as exc:
            _LOGGER.warning("Unable to remove backup %s (%s); delete it manually", backup, exc)

    def _move(self, source: Path, destination: Path) -> None:
        try:
            move_path(source, destination)
        except PermissionError as exc:
            _LOGGER.warning(
                "Moving %s to %s was denied (%s); retrying with elevated privileges",
                source,
                destination,
                exc,
            )
            self._privileged.move(source, destination)


__all__ = [
    "BinaryInstaller",
    "DisabledPrivilegedMover",
    "Installer",
    "PrivilegedMover",
    "SudoMover",
    "install_lock",
    "lock_path_for",
    "move_path",
]
