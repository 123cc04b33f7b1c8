"""TestRail HTTP client.

Async HTTP client for the TestRail v2 API. Every call is a single GET
spaced by a ``RequestSpacer``; any non-success response is fatal for the
calling job, so there is no in-process retry here. The scheduler that runs
the job is the retry mechanism.
"""

import logging
from typing import Any

import httpx

from testrail_jira_sync import __version__
from testrail_jira_sync.auth import BasicAuth
from testrail_jira_sync.config import TestRailConfig
from testrail_jira_sync.testrail.ratelimit import RequestSpacer

logger = logging.getLogger(__name__)

API_PREFIX = "index.php?/api/v2/"


class UpstreamRequestError(Exception):
    """Raised when a TestRail request fails.

    Attributes:
        url: Requested URL.
        status_code: HTTP status, or None for transport failures.
        body: Response body text (or the transport error message).
    """

    def __init__(self, url: str, status_code: int | None, body: str) -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Failed to fetch {url}: {body}"
        else:
            message = f"Failed to fetch {url}: HTTP {status_code}: {body}"
        super().__init__(message)


class TestRailClient:
    """Async HTTP client for the TestRail API.

    Features:
    - Basic authentication from user and API token
    - Fixed minimum spacing between calls
    - Non-success responses raised as UpstreamRequestError
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        auth: BasicAuth,
        spacer: RequestSpacer | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize TestRail HTTP client.

        Args:
            base_url: TestRail site URL (e.g. https://example.testrail.io).
            auth: Basic credentials for the API user.
            spacer: Request spacer. Defaults to the 180 calls/minute spacing.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._spacer = spacer or RequestSpacer()
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: TestRailConfig) -> "TestRailClient":
        """Create a client from configuration, reading the token from the environment.

        Raises:
            AuthenticationError: If the token environment variable is unset.
        """
        auth = BasicAuth.from_env(config.user, config.token_env)
        return cls(
            base_url=config.base_url,
            auth=auth,
            spacer=RequestSpacer(config.min_request_interval_seconds),
            timeout=config.timeout_seconds,
        )

    @property
    def spacer(self) -> RequestSpacer:
        """Get the request spacer."""
        return self._spacer

    def build_url(self, endpoint: str) -> str:
        """Build the full API URL for an endpoint path such as ``get_plan/12``."""
        return f"{self._base_url}/{API_PREFIX}{endpoint.lstrip('/')}"

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"testrail-jira-sync/{__version__}",
        }

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure async client is initialized.

        Returns:
            Active httpx.AsyncClient instance.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=self._auth.httpx_auth(),
                timeout=self._timeout,
                headers=self._get_headers(),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def fetch(self, endpoint: str) -> Any:
        """GET one TestRail API endpoint and return the decoded JSON body.

        Args:
            endpoint: Endpoint path after ``/api/v2/``, including any
                ``&key=value`` query parameters.

        Returns:
            Decoded JSON body.

        Raises:
            UpstreamRequestError: On a non-success response or transport failure.
        """
        client = await self._ensure_client()
        url = self.build_url(endpoint)

        async with self._spacer:
            logger.debug("GET %s", url)
            try:
                response = await client.get(url)
            except httpx.HTTPError as e:
                logger.error("Error fetching %s: %s", url, e)
                raise UpstreamRequestError(url, None, str(e)) from e

        if not response.is_success:
            logger.error("Error fetching %s: HTTP %d: %s", url, response.status_code, response.text)
            raise UpstreamRequestError(url, response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamRequestError(url, response.status_code, response.text) from e

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TestRailClient":
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
