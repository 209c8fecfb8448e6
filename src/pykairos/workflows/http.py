"""
Shared HTTP plumbing for collaborators that call external services.

Maps HTTP failures onto the step error taxonomy:
- network errors, 5xx and 429: RetryableError (429 honours Retry-After)
- other 4xx: FatalError
"""

from __future__ import annotations

from typing import Any

import httpx

from pykairos.models import FatalError, RetryableError


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class JsonClient:
    """
    Thin async JSON client.

    Args:
        base_url: Prefix for relative paths.
        timeout: Request timeout in seconds.
        client: Pre-built httpx.AsyncClient (tests pass one with a mock transport).
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def post(self, path: str, payload: dict[str, Any]) -> Any:
        """
        POST JSON and return the parsed response body.

        Raises:
            RetryableError: On network failures, 5xx and 429 responses.
            FatalError: On other 4xx responses.
        """
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        try:
            response = await self._client.post(url, json=payload)
        except httpx.RequestError as e:
            raise RetryableError(f"Request to {url} failed: {e}") from e

        if response.status_code == 429:
            raise RetryableError(
                f"Rate limited by {url}", retry_after=_retry_after(response)
            )
        if response.status_code >= 500:
            raise RetryableError(f"{url} returned {response.status_code}")
        if response.status_code >= 400:
            raise FatalError(f"{url} returned {response.status_code}: {response.text[:500]}")

        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
