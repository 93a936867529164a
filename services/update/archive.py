"""Archive handling helpers for the update service."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zlib
from pathlib import Path

from services.update import constants
from services.update.models import ExtractionError


_LOGGER = logging.getLogger(__name__)


def extract_archive(
    archive_path: Path, dest_dir: Path, binary_name: str = constants.BINARY_NAME
) -> Path:
    """Unpack the gzip tarball at ``archive_path`` and return its executable."""

    _LOGGER.info("Extracting update archive %s", archive_path)
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive_path, "r:gz") as archive:
            extract_tar_safely(archive, dest_dir)
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise ExtractionError(f"Failed to extract archive: {exc}") from exc
    _LOGGER.debug("Archive extracted to %s", dest_dir)

    executable = find_executable_in_directory(dest_dir, binary_name)
    if executable is None:
        raise ExtractionError(
            f"Update archive did not contain a {binary_name} executable"
        )
    _LOGGER.info("Located new executable %s", executable)
    return executable


def extract_tar_safely(archive: tarfile.TarFile, target_dir: Path) -> None:
    root = target_dir.resolve()
    total_bytes = 0
    processed_entries = 0
    for member in archive:
        name = member.name
        if not name:
            continue
        processed_entries += 1
        if processed_entries > constants.MAX_ARCHIVE_ENTRIES:
            _LOGGER.error(
                "Archive entry count %s exceeded limit %s",
                processed_entries,
                constants.MAX_ARCHIVE_ENTRIES,
            )
            raise ExtractionError("Update archive contained too many entries")
        path = Path(name)
        if path.is_absolute() or name.startswith(("/", "\\")):
            raise ExtractionError("Update archive contained an absolute path entry")
        if ".." in path.parts:
            raise ExtractionError("Update archive contained an unsafe relative path")
        destination = (root / path).resolve()
        try:
            destination.relative_to(root)
        except ValueError:
            raise ExtractionError("Update archive contained an unsafe relative path")
        if member.isdir():
            destination.mkdir(parents=True, exist_ok=True)
            continue
        if not member.isfile():
            _LOGGER.error("Archive member %s is not a regular file (type %r)", name, member.type)
            raise ExtractionError("Update archive contained a link or special file")
        if member.size > constants.MAX_ARCHIVE_FILE_SIZE:
            _LOGGER.error(
                "Archive member %s exceeded file size limit (%s > %s)",
                name,
                member.size,
                constants.MAX_ARCHIVE_FILE_SIZE,
            )
            raise ExtractionError("Update archive contained an oversized file")
        total_bytes += member.size
        if total_bytes > constants.MAX_ARCHIVE_TOTAL_BYTES:
            _LOGGER.error(
                "Archive expanded to %s bytes which exceeds limit %s",
                total_bytes,
                constants.MAX_ARCHIVE_TOTAL_BYTES,
            )
            raise ExtractionError("Update archive expanded beyond safe limits")
        source = archive.extractfile(member)
        if source is None:  # pragma: no cover - regular files always have data
            raise ExtractionError(f"Unable to read archive member {name}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        with source, destination.open("wb") as target:
            shutil.copyfileobj(source, target)
        destination.chmod(member.mode & 0o777)
        _LOGGER.debug("Extracted archive member %s to %s", name, destination)

    _LOGGER.info(
        "Extracted %s entries totalling %s bytes", processed_entries, total_bytes
    )


def find_executable_in_directory(
    directory: Path, binary_name: str = constants.BINARY_NAME
) -> Path | None:
    def _sort_key(path: Path) -> tuple[int, str]:
        return (len(path.relative_to(directory).parts), str(path))

    files = sorted((path for path in directory.rglob("*") if path.is_file()), key=_sort_key)
    if not files:
        return None

    for candidate in files:
        if candidate.name == binary_name:
            _LOGGER.debug("Selected executable %s by name", candidate)
            return candidate

    for candidate in files:
        if os.access(candidate, os.X_OK):
            _LOGGER.debug("Selected executable %s by mode", candidate)
            return candidate
    return None


__all__ = ["extract_archive", "extract_tar_safely", "find_executable_in_directory"]
