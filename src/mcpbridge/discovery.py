"""Client for the mcplookup.org discovery API.

Each method performs one blocking ``requests`` call in a worker thread and
returns the decoded JSON body.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import requests

from mcpbridge.config.settings import DEFAULT_BASE_URL
from mcpbridge.exceptions import DiscoveryAPIError

logger = logging.getLogger(__name__)


class DiscoveryClient:
    """Thin wrapper over the discovery REST endpoints.

    Args:
        base_url: API root, e.g. ``https://mcplookup.org/api/v1``
        api_key: Optional key sent as a bearer token
        timeout: Seconds allowed for each request
        session: Optional ``requests.Session`` to reuse
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request_sync(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=body,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise DiscoveryAPIError(f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            raise DiscoveryAPIError(
                f"API request failed: {response.status_code} {response.reason} - {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise DiscoveryAPIError(
                f"Invalid JSON from {method} {path}: {exc}", status_code=response.status_code
            ) from exc

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await asyncio.to_thread(self._request_sync, method, path, body, params)

    async def discover(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/discover", body=body)

    async def discover_smart(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/discover/smart", body=body)

    async def register(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/register", body=body)

    async def start_domain_verification(self, domain: str) -> Any:
        return await self._request("POST", f"/register/verify/{quote(domain, safe='')}")

    async def check_domain_ownership(self, domain: str) -> Any:
        return await self._request("GET", "/onboarding/domain-check", params={"domain": domain})

    async def get_server_health(self, domain: str, realtime: bool = False) -> Any:
        return await self._request(
            "GET",
            f"/health/{quote(domain, safe='')}",
            params={"realtime": "true" if realtime else "false"},
        )

    async def get_onboarding_state(self) -> Any:
        return await self._request("GET", "/onboarding")

    def close(self) -> None:
        self.session.close()
