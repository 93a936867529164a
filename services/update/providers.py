"""Release provider implementations."""

from __future__ import annotations

import json
import logging
import os
from typing import Mapping, Protocol

from services.update.constants import API_URL, GITHUB_TOKEN_ENV
from services.update.models import ParseError, ReleaseInfo
from services.update.transport import HttpClient, UrllibHttpClient
from services.update.versioning import normalize_tag


_LOGGER = logging.getLogger(__name__)


class ReleaseProvider(Protocol):
    """Protocol describing release metadata providers."""

    def fetch_latest(self) -> ReleaseInfo:
        """Return the newest published release.

        Raises :class:`NetworkError` or :class:`ParseError`.
        """


def build_request_headers(user_agent: str, token: str | None = None) -> dict[str, str]:
    """Return the headers sent to the GitHub REST API."""

    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": user_agent,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class GitHubReleaseProvider:
    """Fetch the latest release tag from the GitHub Releases API."""

    def __init__(
        self,
        client: HttpClient | None = None,
        api_url: str = API_URL,
        *,
        user_agent: str = "polymarket-cli",
        token: str | None = None,
    ) -> None:
        self._client = client or UrllibHttpClient()
        self._api_url = api_url
        if token is None:
            token = os.environ.get(GITHUB_TOKEN_ENV) or None
        self._headers = build_request_headers(user_agent, token)

    def fetch_latest(self) -> ReleaseInfo:
        _LOGGER.debug("Querying latest release from %s", self._api_url)
        body = self._client.get(self._api_url, headers=self._headers)
        payload = _parse_json(body)
        tag = payload.get("tag_name")
        if not isinstance(tag, str) or not tag.strip():
            raise ParseError("No tag_name in release response")
        tag = tag.strip()
        release = ReleaseInfo(tag=tag, version=normalize_tag(tag))
        _LOGGER.info("Latest published release is %s", release.tag)
        return release


def _parse_json(body: bytes) -> Mapping[str, object]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"Failed to parse GitHub API response: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("Failed to parse GitHub API response: expected a JSON object")
    return payload


__all__ = ["GitHubReleaseProvider", "ReleaseProvider", "build_request_headers"]
