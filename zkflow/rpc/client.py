"""
JSON-RPC client — raw ``send(method, params)`` over an injectable transport.

This is the "raw JSON-RPC transport" half of the execution backend: the
chain-specific zks_* methods go through it, and so does anything the
EVM client library doesn't model.

Error responses (``{"error": {...}}``) raise JsonRpcError with the
node's code/message/data intact so the boundary wrappers can shape them
(and receipt-not-found detection can match on code or message).
"""

from __future__ import annotations

import itertools
from typing import Any

from zkflow.rpc.transport import HttpxTransport, JsonRpcTransport

_request_ids = itertools.count(1)


def _next_request_id() -> int:
    return next(_request_ids)


class JsonRpcError(Exception):
    """A JSON-RPC error object returned by the node."""

    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client.

    Args:
        url: The JSON-RPC endpoint URL.
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
    """

    def __init__(self, url: str, transport: JsonRpcTransport | None = None) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def send(self, method: str, params: list[Any]) -> Any:
        """Call *method* and return its ``result``.

        Transport exceptions propagate unchanged.

        Raises:
            JsonRpcError: The node answered with an error object, or the
                response had neither ``result`` nor ``error``.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_response(response)


# =====================================================================
# Response parsing (pure)
# =====================================================================


def _parse_response(response: dict[str, Any]) -> Any:
    error = response.get("error")
    if error is not None:
        if isinstance(error, dict):
            raise JsonRpcError(
                error.get("code"),
                str(error.get("message", "unknown JSON-RPC error")),
                error.get("data"),
            )
        raise JsonRpcError(None, str(error))
    if "result" not in response:
        raise JsonRpcError(None, "malformed JSON-RPC response: missing result")
    return response["result"]
