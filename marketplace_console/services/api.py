"""HTTP transport for the marketplace REST API.

Wraps ``httpx.AsyncClient`` and converts every failure into a typed
``ConsoleError``.  Only GET is retried, and only on transport errors or
timeouts; mutations are never resent, to avoid double submission.
"""

import asyncio
import logging
from typing import Any

import httpx

from marketplace_console.config import settings
from marketplace_console.errors import (
    ConsoleError,
    NetworkError,
    RequestTimeoutError,
    error_from_response,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Async JSON client bound to one API origin.

    Usage:
        async with ApiClient() as api:
            data = await api.get("/api/admin/courses", params={"page": "1"})

    Pass ``client=`` to reuse an existing ``httpx.AsyncClient`` (tests use
    ``httpx.MockTransport`` or ``httpx.ASGITransport`` this way); such a
    client is not closed by ``aclose()``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        get_retries: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = settings.request_timeout_seconds if timeout is None else timeout
        self.get_retries = settings.get_retries if get_retries is None else get_retries

        token = settings.api_token if token is None else token
        self._headers = {"Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Returns None for an empty body (e.g. 204).

        Raises:
            ConsoleError: a subclass matching the failure.
        """
        method = method.upper()
        attempts = 1 + (max(self.get_retries, 0) if method == "GET" else 0)
        url = self.url(path)

        for attempt in range(1, attempts + 1):
            logger.debug("%s %s params=%s (attempt %d/%d)", method, url, params, attempt, attempts)
            try:
                response = await asyncio.wait_for(
                    self._client.request(
                        method, url, params=params, json=json, headers=self._headers,
                        timeout=self.timeout,
                    ),
                    timeout=self.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                error: ConsoleError = RequestTimeoutError(
                    f"{method} {path} timed out after {self.timeout:g}s"
                )
                cause: Exception = exc
            except httpx.TransportError as exc:
                error = NetworkError(f"{method} {path} failed: {exc}")
                cause = exc
            else:
                return self._decode(method, path, response)

            if attempt < attempts:
                logger.info("Retrying %s %s after %s", method, path, error.error_code)
                continue
            raise error from cause

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        if not response.is_success:
            error = error_from_response(response)
            logger.debug("%s %s -> %d %s", method, path, response.status_code, error.error_code)
            raise error
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise NetworkError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from None

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", path, params=params)
