"""
Home Assistant REST client with local/external failover.

Every request is tried against the local address first and the
external address second. Only transport-level failures move on to the
next endpoint; an HTTP error status is returned to the caller as is.
"""

import json
import logging
from typing import Any, Optional

import httpx

from ..errors import (
    AllEndpointsFailed,
    DecodeError,
    EndpointTimeout,
    NoEndpointsConfigured,
)
from ..store import TOKEN_KEY, SettingsStore
from .endpoints import Endpoint, EndpointResolver

logger = logging.getLogger("wrist.companion.capabilities.homeassistant")

STATES_PATH = "/api/states"


def decode_json(body: Any) -> Any:
    """
    Decode a response body that may already be structured.

    Args:
        body: Parsed data, JSON text or JSON bytes

    Returns:
        The decoded value

    Raises:
        DecodeError: If text or bytes are not valid JSON
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Body is not UTF-8: {e}") from e
    if isinstance(body, str):
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed JSON body: {e}") from e
    return body


class FailoverClient:
    """
    Authenticated Home Assistant client for the companion.

    Provides:
    - Local-first failover between configured endpoints
    - Bearer token and JSON content type on every request
    - Per-call timeouts, reported as EndpointTimeout
    """

    def __init__(
        self,
        store: SettingsStore,
        client: httpx.AsyncClient,
        resolver: Optional[EndpointResolver] = None,
        timeout: Optional[float] = 10.0,
    ):
        """
        Initialize the failover client.

        Args:
            store: Settings store holding the token and addresses
            client: Shared httpx client used for every attempt
            resolver: Endpoint resolver (built from store if None)
            timeout: Default per-endpoint timeout in seconds
        """
        self._store = store
        self._client = client
        self._resolver = resolver or EndpointResolver(store)
        self._timeout = timeout

    def _headers(self, extra: Optional[dict[str, str]]) -> dict[str, str]:
        token = self._store.get(TOKEN_KEY) or ""
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        json: Any = None,
        content: Optional[str | bytes] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Issue a request against the first endpoint that answers.

        Args:
            path: API path starting with "/"
            method: HTTP method
            json: JSON-serializable body
            content: Raw body, used when json is None
            headers: Extra headers merged over the defaults
            timeout: Per-endpoint timeout (client default if None)

        Returns:
            The first response received

        Raises:
            NoEndpointsConfigured: If no address is configured
            AllEndpointsFailed: If every configured endpoint failed
        """
        endpoints = self._resolver.resolve()
        if not endpoints:
            raise NoEndpointsConfigured()

        effective_timeout = self._timeout if timeout is None else timeout
        request_headers = self._headers(headers)
        failures: dict[str, BaseException] = {}

        for endpoint in endpoints:
            try:
                response = await self._attempt(
                    endpoint,
                    path,
                    method,
                    json,
                    content,
                    request_headers,
                    effective_timeout,
                )
            except (EndpointTimeout, httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning(
                    "HA %s %s via %s endpoint failed: %s",
                    method,
                    path,
                    endpoint.name,
                    e,
                )
                failures[endpoint.name] = e
                continue

            logger.debug(
                "HA %s %s via %s -> %d",
                method,
                path,
                endpoint.name,
                response.status_code,
            )
            return response

        raise AllEndpointsFailed(failures)

    async def _attempt(
        self,
        endpoint: Endpoint,
        path: str,
        method: str,
        json: Any,
        content: Optional[str | bytes],
        headers: dict[str, str],
        timeout: Optional[float],
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                endpoint.url_for(path),
                json=json,
                content=content if json is None else None,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise EndpointTimeout(endpoint.name, timeout) from e

    async def get_json(self, path: str, **kwargs: Any) -> Any:
        """GET path and decode the JSON body."""
        response = await self.request(path, **kwargs)
        return decode_json(response.content)

    async def get_states(self) -> Any:
        """Fetch every entity state."""
        return await self.get_json(STATES_PATH)

    async def call_service(
        self,
        service_path: str,
        data: dict[str, Any],
    ) -> httpx.Response:
        """
        Call a Home Assistant service.

        Args:
            service_path: Service path (e.g., "switch/turn_on")
            data: Service data (entity_id, etc.)

        Returns:
            The raw response; its body is not inspected
        """
        response = await self.request(
            f"/api/services/{service_path}",
            method="POST",
            json=data,
        )
        logger.info("HA service: %s with %s -> %d", service_path, data, response.status_code)
        return response
