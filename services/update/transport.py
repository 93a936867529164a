"""HTTP transport used to talk to the release registry."""

from __future__ import annotations

import http.client
import logging
import shutil
from pathlib import Path
from typing import Any, Mapping, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from services.update.models import NetworkError


_LOGGER = logging.getLogger(__name__)


class HttpClient(Protocol):
    """Protocol describing the read-only requests made by the updater."""

    def get(self, url: str, headers: Mapping[str, str] | None = None) -> bytes:
        """Return the body of ``url`` or raise :class:`NetworkError`."""

    def download(
        self, url: str, destination: Path, headers: Mapping[str, str] | None = None
    ) -> Path:
        """Stream ``url`` into ``destination`` or raise :class:`NetworkError`."""


class UrllibHttpClient:
    """Blocking client built on :func:`urllib.request.urlopen`.

    ``timeout`` is passed to every request when set; by default a stalled
    connection blocks until the operating system gives up.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._timeout = timeout

    def get(self, url: str, headers: Mapping[str, str] | None = None) -> bytes:
        _LOGGER.debug("GET %s", url)
        try:
            with self._open(url, headers) as response:
                _check_status(url, response)
                return response.read()
        except HTTPError as exc:
            raise NetworkError(f"Request to {url} failed with HTTP status {exc.code}") from exc
        except (URLError, OSError, http.client.HTTPException) as exc:
            raise NetworkError(f"Request to {url} failed: {_describe(exc)}") from exc

    def download(
        self, url: str, destination: Path, headers: Mapping[str, str] | None = None
    ) -> Path:
        _LOGGER.debug("Downloading %s to %s", url, destination)
        try:
            with self._open(url, headers) as response:
                _check_status(url, response)
                with destination.open("wb") as target:
                    shutil.copyfileobj(response, target)
        except HTTPError as exc:
            raise NetworkError(f"Download of {url} failed with HTTP status {exc.code}") from exc
        except (URLError, OSError, http.client.HTTPException) as exc:
            raise NetworkError(f"Download of {url} failed: {_describe(exc)}") from exc
        return destination

    def _open(self, url: str, headers: Mapping[str, str] | None) -> Any:
        request = Request(url, headers=dict(headers or {}))
        if self._timeout is None:
            return urlopen(request)  # nosec - HTTPS registry or local file mirror
        return urlopen(request, timeout=self._timeout)  # nosec


def _check_status(url: str, response: Any) -> None:
    # ``file://`` responses report no status at all.
    status = getattr(response, "status", None)
    if status is not None and not 200 <= int(status) < 300:
        raise NetworkError(f"Request to {url} returned HTTP status {status}")


def _describe(exc: BaseException) -> str:
    reason = getattr(exc, "reason", None)
    return str(reason) if reason else str(exc)


__all__ = ["HttpClient", "UrllibHttpClient"]
