"""Kubernetes core API client.

Talks to the in-cluster API server with the pod's service account token.
Certificate validation is disabled: the API server is reached through the
cluster-internal service address.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from wicked.autodeploy.errors import KubernetesError, decode_body

logger = logging.getLogger(__name__)


def join_url(base: str, path: str) -> str:
    """Join ``base`` and ``path`` with exactly one slash.

    Strips one trailing slash from ``base`` and one leading slash from
    ``path``; nothing else is normalized.
    """
    if base.endswith("/"):
        base = base[:-1]
    if path.startswith("/"):
        path = path[1:]
    return f"{base}/{path}"


class KubernetesClient:
    """Async client for the Kubernetes REST API."""

    def __init__(
        self,
        api_root: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_root = api_root
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "KubernetesClient":
        self._client = httpx.AsyncClient(
            verify=False,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def action(self, path: str, method: str, body: Any = None) -> Any:
        """Send one request relative to the API root.

        Returns the decoded response body. A GET answered with 404 returns
        None; any other non-2xx response raises KubernetesError.
        """
        if self._client is None:
            raise KubernetesError("Client is not open; use 'async with'")

        url = join_url(self._api_root, path)
        logger.info("Kubernetes: %s %s", method, url)

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }
        try:
            response = await self._client.request(
                method, url, headers=headers, json=body
            )
        except httpx.HTTPError as e:
            raise KubernetesError(f"{method} {url} failed: {e}") from e

        if method == "GET" and response.status_code == 404:
            return None

        decoded = decode_body(response)
        if not response.is_success:
            raise KubernetesError(
                f"Unexpected response {response.status_code} from {method} {url}",
                status_code=response.status_code,
                body=decoded,
            )
        return decoded

    async def get(self, path: str) -> Any:
        return await self.action(path, "GET")

    async def post(self, path: str, body: Any) -> Any:
        return await self.action(path, "POST", body)

    async def delete(self, path: str) -> Any:
        return await self.action(path, "DELETE")
