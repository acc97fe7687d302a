"""
HTTP seam for the raw JSON-RPC client.

``JsonRpcClient`` posts through a ``JsonRpcTransport`` so node access can
be replaced in tests (or routed through a provider SDK) without touching
request building or response parsing.

Node endpoints and what the transport does about them:

    2xx                            → parsed body, result or error object
    non-2xx with a JSON-RPC error  → parsed body (the client raises
                                     JsonRpcError with the node's code)
    non-2xx otherwise              → httpx.HTTPStatusError
    connect / read timeout         → httpx.TimeoutException

A 4xx/5xx that carries an ``error`` object keeps its code, so revert
and not-found detection see the node's answer rather than an HTTP status.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async POST of one JSON-RPC request body."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Post *payload* to *url* and return the decoded response body.

        Raises:
            Exception: Connection, timeout and HTTP-status failures. The
                resource layer turns these into RPC errors.
        """
        ...


def _rpc_error_body(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body
    return None


class HttpxTransport:
    """httpx-backed transport.

    Args:
        timeout: Read/write/pool timeout in seconds.
        connect_timeout: Connect timeout in seconds; defaults to *timeout*.
        headers: Extra headers sent with every request (provider API keys).
        client: Shared ``httpx.AsyncClient``. Its own timeout and headers
            apply; without one a client is opened per request.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        *,
        connect_timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(
            timeout, connect=timeout if connect_timeout is None else connect_timeout
        )
        self._headers = {**_JSON_HEADERS, **(headers or {})}
        self._client = client

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug("POST %s method=%s id=%s", url, payload.get("method"), payload.get("id"))
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=self._headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers)

        if response.is_success:
            result: dict[str, Any] = response.json()
            return result

        body = _rpc_error_body(response)
        if body is None:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code} from {url}",
                request=response.request,
                response=response,
            )
        logger.debug("HTTP %d from %s carried a JSON-RPC error", response.status_code, url)
        return body
