"""Jira Cloud HTTP client for custom field updates."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from testrail_jira_sync import __version__
from testrail_jira_sync.auth import BasicAuth
from testrail_jira_sync.config import JiraConfig

logger = logging.getLogger(__name__)


class IssueUpdateError(Exception):
    """Raised when Jira rejects an issue update."""

    def __init__(self, issue_key: str, status_code: int, body: str) -> None:
        self.issue_key = issue_key
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to update {issue_key}: HTTP {status_code}: {body}")


class JiraClient:
    """Async HTTP client for the Jira Cloud REST API v3."""

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        auth: BasicAuth,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Jira HTTP client.

        Args:
            base_url: Jira site URL (e.g. https://example.atlassian.net).
            auth: Basic credentials (account e-mail and API token).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: JiraConfig) -> "JiraClient":
        """Create a client from configuration, reading the token from the environment.

        Raises:
            AuthenticationError: If the token environment variable is unset.
        """
        auth = BasicAuth.from_env(config.email, config.token_env)
        return cls(base_url=config.base_url, auth=auth, timeout=config.timeout_seconds)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": f"testrail-jira-sync/{__version__}",
            }
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth.httpx_auth(),
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def update_issue_fields(self, issue_key: str, fields: dict[str, Any]) -> None:
        """Set fields on an issue.

        Args:
            issue_key: Issue key such as ``ABC-123``.
            fields: Mapping of field id to new value.

        Raises:
            IssueUpdateError: If Jira returns a non-success status.
            httpx.HTTPError: On transport failure.
        """
        client = await self._ensure_client()
        path = f"/rest/api/3/issue/{quote(issue_key, safe='')}"

        logger.debug("PUT %s %s", path, fields)
        response = await client.put(path, json={"fields": fields})

        if not response.is_success:
            raise IssueUpdateError(issue_key, response.status_code, response.text)

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JiraClient":
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
