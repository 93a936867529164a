"""Central logging configuration for the command-line client.

Diagnostics from the update pipeline go to a log file so that a failed
self-update can be investigated after the fact, while the terminal only shows
the short progress lines printed by the CLI.

Two environment variables allow customising where the log file is written:

``POLYMARKET_LOG_FILE``
    Absolute path to the log file that should be created.

``POLYMARKET_LOG_DIR``
    Directory where the default log file name will be created.  Ignored when
    ``POLYMARKET_LOG_FILE`` is present.

Home directory paths are replaced with ``<user_home>`` before records are
written, since the updater logs executable and backup paths.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable

_LOG_FILE_ENV = "POLYMARKET_LOG_FILE"
_LOG_DIR_ENV = "POLYMARKET_LOG_DIR"
_DEFAULT_DIRNAME = ".polymarket"
_DEFAULT_LOGNAME = "polymarket.log"
_CONFIGURED = False
_LOG_PATH: Path | None = None
_HANDLER_TAG = "_polymarket_logging_handler"
_FILE_HANDLER: logging.FileHandler | None = None

USER_HOME_PLACEHOLDER = "<user_home>"


class LogVerbosity(str, Enum):
    """Verbosity levels supported by the log file."""

    DISABLED = "disabled"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"


_VERBOSITY_LEVELS: dict[LogVerbosity, int] = {
    LogVerbosity.DISABLED: logging.CRITICAL + 1,
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

_DEFAULT_VERBOSITY = LogVerbosity.INFO
_CURRENT_VERBOSITY = _DEFAULT_VERBOSITY


def _collect_home_candidates() -> set[str]:
    candidates = {str(Path.home())}
    home_env = os.environ.get("HOME")
    if home_env:
        candidates.add(os.path.expanduser(home_env))
    return {
        os.path.normpath(candidate)
        for candidate in candidates
        if candidate and os.path.normpath(candidate) not in {os.sep, "."}
    }


def _build_redaction_patterns() -> list[re.Pattern[str]]:
    # Longest first so nested home paths are replaced whole.
    homes = sorted(_collect_home_candidates(), key=len, reverse=True)
    return [re.compile(re.escape(home)) for home in homes]


_REDACTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(_build_redaction_patterns())


def _sanitize_text(message: str) -> str:
    if not message:
        return message
    redacted = message
    for pattern in _REDACTION_PATTERNS:
        redacted = pattern.sub(USER_HOME_PLACEHOLDER, redacted)
    return redacted


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        return _sanitize_text(formatted)


def ensure_app_logging(*, console: bool = False) -> Path | None:
    """Configure the root logger for the command-line client.

    The first invocation installs a file handler at the current verbosity
    and, when ``console`` is requested and stderr is a terminal, a DEBUG
    stream handler.  When the log file cannot be opened a warning is printed
    to stderr and the client runs without file logging.  Subsequent calls are
    no-ops and return the configured log file path, or ``None`` when there is
    none.
    """

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER

    if _CONFIGURED:
        return _LOG_PATH

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    formatter = _RedactingFormatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_path = _resolve_log_path()
    file_handler = _open_file_handler(log_path)
    if file_handler is not None:
        file_handler.setLevel(_VERBOSITY_LEVELS[_CURRENT_VERBOSITY])
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)
        _FILE_HANDLER = file_handler
        _LOG_PATH = log_path

    if console and _should_log_to_stderr(root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.DEBUG)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _HANDLER_TAG, True)
        root.addHandler(stream_handler)

    _CONFIGURED = True

    if _LOG_PATH is not None:
        logging.getLogger(__name__).info(
            "Writing logs to %s (verbosity=%s)",
            _LOG_PATH,
            _CURRENT_VERBOSITY.value,
        )
    return _LOG_PATH


def _open_file_handler(log_path: Path) -> logging.FileHandler | None:
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        print(
            f"Warning: cannot write log file {_sanitize_text(str(log_path))} ({exc.strerror or exc}); "
            f"set {_LOG_FILE_ENV} to a writable path to keep diagnostics.",
            file=sys.stderr,
        )
        return None


def set_file_log_verbosity(verbosity: LogVerbosity | str) -> None:
    """Adjust the minimum severity recorded in the log file."""

    global _CURRENT_VERBOSITY

    if isinstance(verbosity, str):
        try:
            verbosity = LogVerbosity(verbosity.lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported log verbosity: {verbosity}") from exc

    _CURRENT_VERBOSITY = verbosity
    ensure_app_logging()
    handler = _FILE_HANDLER
    if handler is None:
        return

    handler.setLevel(_VERBOSITY_LEVELS[verbosity])
    logging.getLogger(__name__).info("File log verbosity set to %s", verbosity.value)


def get_file_log_verbosity() -> LogVerbosity:
    """Return the current verbosity level for the log file."""

    return _CURRENT_VERBOSITY


def _resolve_log_path() -> Path:
    env_file = os.environ.get(_LOG_FILE_ENV)
    if env_file:
        return Path(env_file).expanduser()

    env_dir = os.environ.get(_LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser() / _DEFAULT_LOGNAME

    return Path.home() / _DEFAULT_DIRNAME / "logs" / _DEFAULT_LOGNAME


def _should_log_to_stderr(handlers: Iterable[logging.Handler]) -> bool:
    stderr = getattr(sys, "stderr", None)
    if stderr is None:
        return False
    is_tty = getattr(stderr, "isatty", None)
    if not callable(is_tty):
        return False
    try:
        if not is_tty():
            return False
    except (OSError, ValueError):
        return False

    for handler in handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is stderr:
            return False
    return True


def _reset_for_tests() -> None:
    """Remove handlers installed by :func:`ensure_app_logging`."""

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER, _CURRENT_VERBOSITY

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    _CONFIGURED = False
    _LOG_PATH = None
    _FILE_HANDLER = None
    _CURRENT_VERBOSITY = _DEFAULT_VERBOSITY
