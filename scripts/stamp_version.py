"""Embed the release version into ``app/VERSION`` from a Git tag."""

from __future__ import annotations

import argparse
import re
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_VERSION_FILE = PROJECT_ROOT / "app" / "VERSION"

_DOTTED_NUMERALS = re.compile(r"\d+(?:\.\d+)*")


def normalize_ref_name(ref_name: str) -> str:
    """Turn a tag such as ``v1.4.0`` or ``refs/tags/v1.4.0`` into ``1.4.0``."""

    stripped = ref_name.strip()
    if stripped.startswith("refs/tags/"):
        stripped = stripped[len("refs/tags/"):]
    if stripped[:1] in {"v", "V"}:
        return stripped[1:]
    return stripped


def stamp_version(ref_name: str, output: Path) -> str:
    """Write the version derived from *ref_name* to *output* and return it.

    Only bare dotted numerals are accepted because the updater compares the
    embedded version with release tags by plain string equality.
    """

    version = normalize_ref_name(ref_name)
    if not _DOTTED_NUMERALS.fullmatch(version):
        raise ValueError(f"Release tag {ref_name!r} is not a dotted version number")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(f"{version}\n", encoding="utf-8")
    return version


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "ref_name",
        help="Git tag or ref name to stamp (e.g. 'v1.4.0').",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="VERSION file to write (defaults to app/VERSION).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    output = args.output or DEFAULT_VERSION_FILE
    try:
        version = stamp_version(args.ref_name, output)
    except ValueError as exc:
        print(f"error: {exc}")
        return 2
    print(f"Stamped version {version} into {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
