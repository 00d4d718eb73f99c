"""Authenticated HTTP transport for the remote store.

Attaches a bearer credential to every request and, on a 401, asks the
token provider for a fresh credential once before giving up.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)

# =============================================================================
# ERRORS
# =============================================================================


class RemoteError(Exception):
    """Error during remote store interaction."""

    pass


class RemoteConnectionError(RemoteError):
    """Remote store unreachable or timed out."""

    pass


class RemoteAuthError(RemoteError):
    """No usable credential (missing, or refresh failed)."""

    pass


class RemoteResponseError(RemoteError):
    """Non-2xx status or unparseable body."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# CREDENTIALS
# =============================================================================


class TokenProvider(Protocol):
    """Source of bearer credentials."""

    def get_token(self) -> str | None: ...

    async def refresh(self) -> str | None: ...


@dataclass
class StaticTokenProvider:
    """Fixed token, e.g. from an environment variable. Cannot refresh."""

    token: str | None = None

    def get_token(self) -> str | None:
        return self.token

    async def refresh(self) -> str | None:
        return None


# =============================================================================
# TRANSPORT
# =============================================================================


class AuthenticatedTransport:
    """Bearer-authenticated JSON requests against the remote store."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize transport.

        Args:
            base_url: API root, e.g. http://localhost:3000/api
            token_provider: Supplies and refreshes the bearer credential
            timeout: Per-request timeout in seconds
            client: Preconfigured client (tests pass one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def has_credential(self) -> bool:
        return bool(self.token_provider.get_token())

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body.

        Raises:
            RemoteAuthError: If there is no credential or refreshing it failed
            RemoteConnectionError: On network errors and timeouts
            RemoteResponseError: On non-2xx responses or invalid JSON
        """
        token = self.token_provider.get_token()
        if not token:
            raise RemoteAuthError("No access token available")

        response = await self._send(method, path, token, json, params)

        if response.status_code == 401:
            logger.info("transport.token_refresh", path=path)
            token = await self.token_provider.refresh()
            if not token:
                raise RemoteAuthError("Access token expired and refresh failed")
            response = await self._send(method, path, token, json, params)
            if response.status_code == 401:
                raise RemoteAuthError("Access token rejected after refresh")

        if response.status_code >= 400:
            raise RemoteResponseError(
                f"{method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RemoteResponseError(
                f"Invalid JSON from {method} {path}", status_code=response.status_code
            ) from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def probe(self, path: str, timeout: float) -> bool:
        """Unauthenticated reachability check; True on any 2xx."""
        try:
            response = await self._client.get(f"{self.base_url}{path}", timeout=timeout)
        except httpx.HTTPError:
            return False
        return response.is_success

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        json: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise RemoteConnectionError(f"Timeout on {method} {path}") from e
        except httpx.HTTPError as e:
            raise RemoteConnectionError(f"Cannot reach remote store: {e}") from e
