"""Credential loading for HTTP Basic authentication.

Both TestRail and Jira Cloud authenticate API calls with HTTP Basic
credentials built from a login (user or e-mail) and an API token. Tokens
are never stored in the YAML config; the config names the environment
variable that holds them.
"""

import logging
import os

import httpx

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when credentials are missing or empty."""


def load_secret(env_var: str) -> str:
    """Load a secret from an environment variable.

    Args:
        env_var: Name of the environment variable holding the secret.

    Returns:
        The secret, stripped of surrounding whitespace.

    Raises:
        AuthenticationError: If the secret is missing or empty.
    """
    value = os.environ.get(env_var, "").strip()
    if not value:
        raise AuthenticationError(
            f"Credential not found. Set the {env_var} environment variable."
        )

    logger.debug("Using credential from %s environment variable", env_var)
    return value


class BasicAuth:
    """Validated login and API token for HTTP Basic authentication."""

    def __init__(self, login: str, token: str) -> None:
        """Initialize Basic credentials.

        Args:
            login: Account login (TestRail user or Jira e-mail).
            token: API token for the account.

        Raises:
            AuthenticationError: If either part is empty.
        """
        if not login or not login.strip():
            raise AuthenticationError("Login is empty")
        if not token or not token.strip():
            raise AuthenticationError("Token is empty")

        self._login = login.strip()
        self._token = token.strip()

    @classmethod
    def from_env(cls, login: str, token_env: str) -> "BasicAuth":
        """Build credentials with the token read from ``token_env``."""
        return cls(login, load_secret(token_env))

    @property
    def login(self) -> str:
        """Get the account login."""
        return self._login

    def httpx_auth(self) -> httpx.BasicAuth:
        """Credentials in the form ``httpx.AsyncClient(auth=...)`` accepts."""
        return httpx.BasicAuth(self._login, self._token)
