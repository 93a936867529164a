from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


_ISOLATED_ENV_VARS = (
    "GITHUB_TOKEN",
    "POLYMARKET_VERSION",
    "POLYMARKET_INSTALL_PATH",
    "POLYMARKET_UPDATE_API_BASE",
    "POLYMARKET_UPDATE_DOWNLOAD_BASE",
    "POLYMARKET_UPDATE_NO_SUDO",
    "POLYMARKET_LOG_FILE",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep tests away from real tokens, install paths and the user's log file."""

    for name in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POLYMARKET_LOG_DIR", str(tmp_path_factory.mktemp("logs")))

    from app.config import reset_app_config_cache
    from app.version import get_app_version
    from shared import logging_config

    reset_app_config_cache()
    get_app_version.cache_clear()
    yield
    reset_app_config_cache()
    get_app_version.cache_clear()
    logging_config._reset_for_tests()
