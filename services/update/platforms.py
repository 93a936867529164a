"""Map the running platform to the target triple of its release artifact."""

from __future__ import annotations

import logging
import platform
from typing import Callable

from services.update.models import (
    Architecture,
    OperatingSystem,
    TargetIdentifier,
    UnsupportedPlatform,
)


_LOGGER = logging.getLogger(__name__)

PlatformSource = Callable[[], tuple[str, str]]

_TRIPLES: dict[tuple[OperatingSystem, Architecture], str] = {
    (OperatingSystem.MACOS, Architecture.X86_64): "x86_64-apple-darwin",
    (OperatingSystem.MACOS, Architecture.AARCH64): "aarch64-apple-darwin",
    (OperatingSystem.LINUX, Architecture.X86_64): "x86_64-unknown-linux-gnu",
    (OperatingSystem.LINUX, Architecture.AARCH64): "aarch64-unknown-linux-gnu",
}

_OS_ALIASES = {
    "macos": OperatingSystem.MACOS,
    "darwin": OperatingSystem.MACOS,
    "osx": OperatingSystem.MACOS,
    "linux": OperatingSystem.LINUX,
}

_ARCH_ALIASES = {
    "x86_64": Architecture.X86_64,
    "amd64": Architecture.X86_64,
    "x64": Architecture.X86_64,
    "aarch64": Architecture.AARCH64,
    "arm64": Architecture.AARCH64,
}


def resolve_target(os_name: str, arch: str) -> TargetIdentifier:
    """Return the :class:`TargetIdentifier` for ``os_name``/``arch``.

    Raises :class:`UnsupportedPlatform` when no release artifact is published
    for the pair.
    """

    operating_system = _OS_ALIASES.get(str(os_name).strip().lower())
    architecture = _ARCH_ALIASES.get(str(arch).strip().lower())
    if operating_system is None or architecture is None:
        raise UnsupportedPlatform(os_name, arch)
    triple = _TRIPLES.get((operating_system, architecture))
    if triple is None:  # pragma: no cover - every enum pair is mapped
        raise UnsupportedPlatform(os_name, arch)
    return TargetIdentifier(os=operating_system, arch=architecture, triple=triple)


def host_platform() -> tuple[str, str]:
    """Return the raw operating system and machine names of this process."""

    return platform.system(), platform.machine()


class PlatformResolver:
    """Resolve the target triple from an injected platform source."""

    def __init__(self, source: PlatformSource = host_platform) -> None:
        self._source = source

    def resolve(self) -> TargetIdentifier:
        os_name, arch = self._source()
        target = resolve_target(os_name, arch)
        _LOGGER.debug("Resolved platform %s/%s to %s", os_name, arch, target.triple)
        return target


__all__ = ["PlatformResolver", "PlatformSource", "host_platform", "resolve_target"]
