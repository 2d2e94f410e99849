"""Shared plumbing for outbound provider HTTP clients."""

from typing import Any

import httpx


class ProviderHttpClient:
    """Base class for provider clients built on httpx.

    A long-lived ``httpx.AsyncClient`` may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise a short-lived client is opened per request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize client with provider base URL and request timeout."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request to the provider and return the raw response."""
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)

        if self._http is not None:
            return await self._http.request(method, url, **kwargs)

        async with httpx.AsyncClient() as client:
            return await client.request(method, url, **kwargs)

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """
        Decode a response body that must be a JSON object.

        Raises:
            ValueError: If the body is not JSON or not an object
        """
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def aclose(self) -> None:
        """Close the injected HTTP client, if any."""
        if self._http is not None:
            await self._http.aclose()
