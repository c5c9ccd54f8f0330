"""GitHub URL helpers and REST API access.

The REST API is only used as a fallback for discovering the default branch when
``git ls-remote --symref`` does not report one.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from repofetch.models.settings import DEFAULT_SERVER_URL

logger = logging.getLogger(__name__)

GITHUB_HOSTNAME = "github.com"


def is_ghes(server_url: str) -> bool:
    """Check if a server URL points at a GitHub Enterprise Server."""
    host = (urlparse(server_url or DEFAULT_SERVER_URL).hostname or "").lower()
    if not host:
        return False
    return not (
        host == GITHUB_HOSTNAME
        or host.endswith(".ghe.com")
        or host in ("localhost", "127.0.0.1")
    )


def get_fetch_url(server_url: str, owner: str, name: str) -> str:
    """Clone URL for a repository, without credentials."""
    base = (server_url or DEFAULT_SERVER_URL).rstrip("/")
    return f"{base}/{quote(owner, safe='')}/{quote(name, safe='')}"


def get_api_url(server_url: str) -> str:
    """REST API base URL for a server."""
    if is_ghes(server_url):
        return f"{server_url.rstrip('/')}/api/v3"
    parsed = urlparse(server_url or DEFAULT_SERVER_URL)
    if (parsed.hostname or "").lower().endswith(".ghe.com"):
        return f"{parsed.scheme}://api.{parsed.netloc}"
    return "https://api.github.com"


def normalize_remote_url(url: str) -> str:
    """Comparable form of a remote URL: no credentials, no trailing slash or .git."""
    url = url.strip()
    url = re.sub(r"^(\w+://)[^/@]+@", r"\1", url)
    url = url.rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()


class GitHubClient:
    """Minimal async GitHub REST client."""

    def __init__(self, server_url: str = "", token: str = "", timeout: float = 30.0) -> None:
        self.api_url = get_api_url(server_url)
        self.token = token
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def get_auth_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.get_auth_headers(),
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str) -> dict[str, Any]:
        response = await self.client.get(f"{self.api_url}/{endpoint}")
        response.raise_for_status()
        return response.json()

    async def get_default_branch(self, owner: str, name: str) -> str | None:
        """Default branch name, or None if the API cannot tell."""
        try:
            data = await self._request(f"repos/{quote(owner, safe='')}/{quote(name, safe='')}")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to query default branch of {owner}/{name}: {e}")
            return None
        branch = data.get("default_branch")
        return str(branch) if branch else None
