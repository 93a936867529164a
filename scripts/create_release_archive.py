"""Package a built binary as a release archive and record it in checksums.txt."""

from __future__ import annotations

import argparse
import sys
import tarfile
from pathlib import Path


def ensure_project_root_on_sys_path() -> Path:
    """Ensure the project root is importable when the script runs standalone."""

    project_root = Path(__file__).resolve().parent.parent
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)
    return project_root


ensure_project_root_on_sys_path()

from services.update.constants import BINARY_NAME, CHECKSUMS_ASSET_NAME, EXECUTABLE_MODE
from services.update.hashing import calculate_sha256
from services.update.models import ChecksumManifest
from services.update.platforms import resolve_target
from services.update.release_assets import archive_name


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("binary", type=Path, help="Path to the built executable.")
    parser.add_argument("tag", help="Release tag, e.g. 'v1.4.0'.")
    parser.add_argument("--os", dest="os_name", required=True, help="Target OS (macos, linux).")
    parser.add_argument("--arch", required=True, help="Target architecture (x86_64, aarch64).")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("dist"),
        help="Directory receiving the archive and checksums.txt.",
    )
    return parser.parse_args(argv)


def build_archive(binary: Path, destination: Path) -> Path:
    """Write ``binary`` as ``polymarket`` at the root of a gzip tarball."""

    def _normalise(info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.mode = EXECUTABLE_MODE
        info.uid = info.gid = 0
        info.uname = info.gname = ""
        return info

    destination.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(destination, "w:gz") as archive:
        archive.add(binary, arcname=BINARY_NAME, filter=_normalise)
    return destination


def record_checksum(checksums_path: Path, filename: str, digest: str) -> None:
    """Add or replace the ``<digest>  <filename>`` line for ``filename``."""

    existing = checksums_path.read_text(encoding="utf-8") if checksums_path.exists() else ""
    lines = [
        f"{entry.digest}  {entry.filename}"
        for entry in ChecksumManifest.parse(existing).entries
        if not entry.matches(filename)
    ]
    lines.append(f"{digest}  {filename}")
    checksums_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not args.binary.is_file():
        raise SystemExit(f"Binary not found: {args.binary}")

    target = resolve_target(args.os_name, args.arch)
    name = archive_name(args.tag, target)
    archive_path = build_archive(args.binary, args.output_dir / name)
    digest = calculate_sha256(archive_path)
    record_checksum(args.output_dir / CHECKSUMS_ASSET_NAME, name, digest)
    print(f"{digest}  {name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
