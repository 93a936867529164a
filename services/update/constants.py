"""Constants shared across the update service modules."""

from __future__ import annotations

GITHUB_OWNER = "Polymarket"
GITHUB_REPO = "polymarket-cli"
BINARY_NAME = "polymarket"

API_BASE = "https://api.github.com"
DOWNLOAD_BASE = "https://github.com"
API_URL = f"{API_BASE}/repos/{GITHUB_OWNER}/{GITHUB_REPO}/releases/latest"

CHECKSUMS_ASSET_NAME = "checksums.txt"
ARCHIVE_SUFFIX = ".tar.gz"
BACKUP_SUFFIX = ".bak"
LOCK_SUFFIX = ".lock"
SCRATCH_PREFIX = "polymarket-update-"

HASH_CHUNK_SIZE = 65536
EXECUTABLE_MODE = 0o755

MAX_ARCHIVE_TOTAL_BYTES = 500 * 1024 * 1024  # 500 MiB
MAX_ARCHIVE_FILE_SIZE = 250 * 1024 * 1024  # 250 MiB per file
MAX_ARCHIVE_ENTRIES = 2000

GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
INSTALL_PATH_ENV = "POLYMARKET_INSTALL_PATH"
