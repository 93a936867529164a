"""Application-wide configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_APP_CONFIG_CACHE: AppConfig | None = None

API_BASE_ENV = "POLYMARKET_UPDATE_API_BASE"
DOWNLOAD_BASE_ENV = "POLYMARKET_UPDATE_DOWNLOAD_BASE"
NO_SUDO_ENV = "POLYMARKET_UPDATE_NO_SUDO"


@dataclass(frozen=True)
class UpdateConfig:
    """Where releases are published and how the updater may act."""

    owner: str = "Polymarket"
    repo: str = "polymarket-cli"
    binary: str = "polymarket"
    api_base: str = "https://api.github.com"
    download_base: str = "https://github.com"
    allow_privileged_retry: bool = True
    request_timeout: float | None = None

    @property
    def latest_release_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/repos/{self.owner}/{self.repo}/releases/latest"


@dataclass(frozen=True)
class AppConfig:
    """Structured configuration values for the command-line client."""

    update: UpdateConfig


def get_app_config() -> AppConfig:
    """Return the cached application configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config()
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Load configuration from ``path`` or the bundled JSON resource.

    Environment variables in ``environ`` (default :data:`os.environ`) take
    precedence over file values.
    """

    data = _read_config_data(path)
    update_section = data.get("update") if isinstance(data, Mapping) else None
    update = _parse_update_section(update_section)
    update = _apply_environment(update, os.environ if environ is None else environ)
    return AppConfig(update=update)


def get_update_config() -> UpdateConfig:
    """Convenience accessor for the update configuration."""

    return get_app_config().update


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_update_section(section: Mapping[str, Any] | None) -> UpdateConfig:
    defaults = UpdateConfig()
    if not isinstance(section, Mapping):
        return defaults
    return UpdateConfig(
        owner=_coerce_text(section.get("owner"), default=defaults.owner),
        repo=_coerce_text(section.get("repo"), default=defaults.repo),
        binary=_coerce_text(section.get("binary"), default=defaults.binary),
        api_base=_coerce_url(section.get("api_base"), default=defaults.api_base),
        download_base=_coerce_url(section.get("download_base"), default=defaults.download_base),
        allow_privileged_retry=_coerce_bool(
            section.get("allow_privileged_retry"), default=defaults.allow_privileged_retry
        ),
        request_timeout=_coerce_timeout(section.get("request_timeout")),
    )


def _apply_environment(config: UpdateConfig, environ: Mapping[str, str]) -> UpdateConfig:
    overrides: dict[str, Any] = {}
    api_base = environ.get(API_BASE_ENV)
    if api_base:
        overrides["api_base"] = _coerce_url(api_base, default=config.api_base)
    download_base = environ.get(DOWNLOAD_BASE_ENV)
    if download_base:
        overrides["download_base"] = _coerce_url(download_base, default=config.download_base)
    if environ.get(NO_SUDO_ENV):
        overrides["allow_privileged_retry"] = False
    if not overrides:
        return config
    return replace(config, **overrides)


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _coerce_url(value: Any, *, default: str) -> str:
    text = _coerce_text(value, default=default)
    if not text.startswith(("https://", "http://", "file://")):
        return default
    return text.rstrip("/")


def _coerce_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_timeout(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not isfinite(candidate) or candidate <= 0:
        return None
    return candidate
