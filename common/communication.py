"""
Shared HTTP plumbing for peer-to-peer traffic.
"""
from typing import Any, Dict, Optional

import httpx


class HttpClient:
    """
    HTTP client for calls between peers.

    Features:
    1. Configurable per-request timeouts
    2. Keep-alive connection pooling
    3. Automatic JSON serialization/deserialization
    """

    def __init__(self, timeout: float = 1.0, max_connections: int = 100):
        """
        Initialize the HTTP client.

        Args:
            timeout: Default request timeout in seconds
            max_connections: Maximum number of concurrent connections
        """
        self.timeout = timeout
        self.limits = httpx.Limits(max_connections=max_connections)
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """
        Lazily create the underlying async client.

        Returns:
            httpx.AsyncClient: The async HTTP client
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=self.limits,
                follow_redirects=True
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def post(self, url: str, json: Optional[Dict[str, Any]] = None,
                   timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Send a POST request.

        Args:
            url: Request URL
            json: Body to send as JSON
            timeout: Timeout for this request (overrides the default)

        Returns:
            Dict[str, Any]: Decoded JSON body

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status codes
        """
        response = await self.client.post(url, json=json, timeout=timeout or self.timeout)
        response.raise_for_status()
        return response.json() if response.content else {}
