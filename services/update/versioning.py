"""Helpers for normalising and comparing release versions."""

from __future__ import annotations

from packaging.version import InvalidVersion, Version


__all__ = [
    "describe_change",
    "is_current",
    "normalize_tag",
]


def normalize_tag(tag: str) -> str:
    """Strip surrounding whitespace and a single leading ``v`` from ``tag``."""

    version = tag.strip()
    if version[:1] in {"v", "V"}:
        version = version[1:]
    return version


def is_current(current_version: str, latest_version: str) -> bool:
    """Return ``True`` when no update should be offered.

    Freshness is plain string equality after tag normalisation: a registry
    that rolls back to an older tag still produces an update.
    """

    return normalize_tag(current_version) == normalize_tag(latest_version)


def describe_change(current_version: str, latest_version: str) -> str:
    """Classify the move to ``latest_version`` for display purposes only.

    Returns ``"upgrade"``, ``"downgrade"``, ``"same"`` or ``"change"`` when
    either side does not parse as a PEP 440 version.
    """

    try:
        current = Version(normalize_tag(current_version))
        latest = Version(normalize_tag(latest_version))
    except InvalidVersion:
        return "change"

    if latest > current:
        return "upgrade"
    if latest < current:
        return "downgrade"
    return "same"
