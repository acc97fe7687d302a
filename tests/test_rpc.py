"""
Tests for the JSON-RPC seam and zks_* normalization — no network.

Test plan:
- JsonRpcClient: request envelope (jsonrpc/method/params/id), result
  returned, error object → JsonRpcError with code/message/data,
  missing result → JsonRpcError, transport exception propagates
- HttpxTransport: posts JSON via httpx (pytest-httpx), bare non-2xx
  raises, non-2xx with an error object keeps the node code, extra
  headers sent alongside Content-Type, shared client
- ZksRpc: bridgehub address shape check, proof aliases (index,
  batchNumber), falsy proof → STATE, malformed proof → RPC, receipt
  l2ToL1Logs normalized, genesis tuples → named fields, malformed
  genesis → RPC, block metadata aliases and null, transport failures
  → RPC on resource "zksrpc"
- Types: Receipt.from_raw lowercases hashes/topics and defaults
  l2_to_l1_logs to empty
"""

from typing import Any

import httpx
import pytest

from zkflow.errors import ErrorType, FlowError
from zkflow.rpc import HttpxTransport, JsonRpcClient, JsonRpcError, Receipt, ZksRpc
from zkflow.rpc.types import coerce_int

URL = "http://localhost:3050"
TX = "0x" + "ab" * 32

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeTransport:
    """Returns a canned JSON-RPC response for every request."""

    def __init__(self, response: dict[str, Any]) -> None:
        self._response = response
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((url, payload))
        return self._response


class ErrorTransport:
    """Raises on post_json to simulate transport failures."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._exc


class FakeRpc:
    """Raw RPC returning canned results per method."""

    def __init__(self, results: dict[str, Any]) -> None:
        self._results = results
        self.calls: list[tuple[str, list[Any]]] = []

    async def send(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        value = self._results[method]
        if isinstance(value, Exception):
            raise value
        return value


# ---------------------------------------------------------------------------
# JsonRpcClient
# ---------------------------------------------------------------------------


class TestJsonRpcClient:
    @pytest.mark.asyncio
    async def test_sends_envelope_and_returns_result(self) -> None:
        transport = FakeTransport({"jsonrpc": "2.0", "id": 1, "result": "0x144"})
        client = JsonRpcClient(URL, transport=transport)

        result = await client.send("eth_chainId", [])

        assert result == "0x144"
        url, payload = transport.calls[0]
        assert url == URL
        assert payload["jsonrpc"] == "2.0"
        assert payload["method"] == "eth_chainId"
        assert payload["params"] == []
        assert isinstance(payload["id"], int)

    @pytest.mark.asyncio
    async def test_request_ids_increase(self) -> None:
        transport = FakeTransport({"result": None})
        client = JsonRpcClient(URL, transport=transport)
        await client.send("a", [])
        await client.send("b", [])
        assert transport.calls[1][1]["id"] > transport.calls[0][1]["id"]

    @pytest.mark.asyncio
    async def test_null_result_returned(self) -> None:
        client = JsonRpcClient(URL, transport=FakeTransport({"result": None}))
        assert await client.send("eth_getTransactionReceipt", [TX]) is None

    @pytest.mark.asyncio
    async def test_error_object_raises(self) -> None:
        response = {"error": {"code": 3, "message": "execution reverted", "data": "0xdeadbeef"}}
        client = JsonRpcClient(URL, transport=FakeTransport(response))

        with pytest.raises(JsonRpcError) as exc_info:
            await client.send("eth_call", [{}])
        assert exc_info.value.code == 3
        assert exc_info.value.message == "execution reverted"
        assert exc_info.value.data == "0xdeadbeef"

    @pytest.mark.asyncio
    async def test_missing_result_raises(self) -> None:
        client = JsonRpcClient(URL, transport=FakeTransport({"jsonrpc": "2.0", "id": 1}))
        with pytest.raises(JsonRpcError, match="missing result"):
            await client.send("eth_chainId", [])

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        client = JsonRpcClient(URL, transport=ErrorTransport(TimeoutError("timed out")))
        with pytest.raises(TimeoutError):
            await client.send("eth_chainId", [])


# ---------------------------------------------------------------------------
# HttpxTransport
# ---------------------------------------------------------------------------


class TestHttpxTransport:
    @pytest.mark.asyncio
    async def test_posts_json(self, httpx_mock) -> None:
        httpx_mock.add_response(url=URL, method="POST", json={"result": "0x1"})
        transport = HttpxTransport(timeout=5.0)

        response = await transport.post_json(URL, {"jsonrpc": "2.0", "method": "m", "id": 1})

        assert response == {"result": "0x1"}
        request = httpx_mock.get_request()
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, httpx_mock) -> None:
        httpx_mock.add_response(url=URL, method="POST", status_code=503)
        transport = HttpxTransport()
        with pytest.raises(httpx.HTTPStatusError):
            await transport.post_json(URL, {"jsonrpc": "2.0", "method": "m", "id": 1})

    @pytest.mark.asyncio
    async def test_non_2xx_json_rpc_error_keeps_node_code(self, httpx_mock) -> None:
        httpx_mock.add_response(
            url=URL,
            method="POST",
            status_code=429,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "rate limited"}},
        )
        client = JsonRpcClient(URL, transport=HttpxTransport())

        with pytest.raises(JsonRpcError) as exc_info:
            await client.send("eth_chainId", [])

        assert exc_info.value.code == -32005

    @pytest.mark.asyncio
    async def test_extra_headers(self, httpx_mock) -> None:
        httpx_mock.add_response(url=URL, method="POST", json={"result": "0x1"})
        transport = HttpxTransport(headers={"Authorization": "Bearer key"})

        await transport.post_json(URL, {"jsonrpc": "2.0", "method": "m", "id": 1})

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer key"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_shared_client(self, httpx_mock) -> None:
        httpx_mock.add_response(url=URL, method="POST", json={"result": []})
        async with httpx.AsyncClient() as shared:
            transport = HttpxTransport(client=shared)
            assert await transport.post_json(URL, {"id": 1}) == {"result": []}


# ---------------------------------------------------------------------------
# ZksRpc
# ---------------------------------------------------------------------------


class TestZksAddresses:
    @pytest.mark.asyncio
    async def test_bridgehub_address(self) -> None:
        rpc = FakeRpc({"zks_getBridgehubContract": "0x" + "55" * 20})
        assert await ZksRpc(rpc).get_bridgehub_address() == "0x" + "55" * 20

    @pytest.mark.asyncio
    async def test_bad_address_shape_is_rpc(self) -> None:
        rpc = FakeRpc({"zks_getBytecodeSupplierContract": 12})
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(rpc).get_bytecode_supplier_address()
        assert exc_info.value.type is ErrorType.RPC
        assert exc_info.value.envelope.resource == "zksrpc"


class TestZksProof:
    @pytest.mark.asyncio
    async def test_aliases_normalized(self) -> None:
        rpc = FakeRpc(
            {
                "zks_getL2ToL1LogProof": {
                    "index": "0x3",
                    "batchNumber": 42,
                    "proof": ["0x" + "01" * 32],
                    "root": "0x" + "02" * 32,
                }
            }
        )
        proof = await ZksRpc(rpc).get_l2_to_l1_log_proof(TX, 0)
        assert proof.id == 3
        assert proof.batch_number == 42
        assert proof.proof == ("0x" + "01" * 32,)
        assert proof.root == "0x" + "02" * 32
        assert rpc.calls == [("zks_getL2ToL1LogProof", [TX, 0])]

    @pytest.mark.asyncio
    async def test_snake_case_fields(self) -> None:
        rpc = FakeRpc({"zks_getL2ToL1LogProof": {"id": 1, "batch_number": "0x10", "proof": []}})
        proof = await ZksRpc(rpc).get_l2_to_l1_log_proof(TX, 0)
        assert (proof.id, proof.batch_number, proof.root) == (1, 16, None)

    @pytest.mark.asyncio
    async def test_falsy_proof_is_state(self) -> None:
        rpc = FakeRpc({"zks_getL2ToL1LogProof": None})
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(rpc).get_l2_to_l1_log_proof(TX, 0)
        env = exc_info.value.envelope
        assert env.type is ErrorType.STATE
        assert env.operation == "zksrpc.getL2ToL1LogProof"
        assert "Proof not yet available" in env.message

    @pytest.mark.asyncio
    async def test_missing_fields_is_rpc(self) -> None:
        rpc = FakeRpc({"zks_getL2ToL1LogProof": {"id": 1, "proof": []}})
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(rpc).get_l2_to_l1_log_proof(TX, 0)
        assert exc_info.value.type is ErrorType.RPC
        assert exc_info.value.envelope.context == {"keys": ["id", "proof"]}

    @pytest.mark.asyncio
    async def test_transport_failure_is_rpc(self) -> None:
        rpc = FakeRpc({"zks_getL2ToL1LogProof": JsonRpcError(-32603, "internal error")})
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(rpc).get_l2_to_l1_log_proof(TX, 1)
        env = exc_info.value.envelope
        assert env.type is ErrorType.RPC
        assert env.context == {"txHash": TX, "index": 1}
        assert env.cause["message"] == "internal error"


class TestZksReceipt:
    @pytest.mark.asyncio
    async def test_receipt_with_l2_to_l1_logs(self) -> None:
        raw = {
            "transactionHash": TX.upper().replace("0X", "0x"),
            "status": "0x1",
            "blockNumber": "0x20",
            "logs": [{"address": "0xAB", "topics": ["0xDEAD"], "data": "0x"}],
            "l2ToL1Logs": [{"sender": "0x8008", "key": "0x01", "value": "0x02"}],
        }
        receipt = await ZksRpc(FakeRpc({"eth_getTransactionReceipt": raw})).get_receipt_with_l2_to_l1(TX)
        assert receipt is not None
        assert receipt.transaction_hash == TX
        assert receipt.block_number == 32
        assert receipt.logs[0].topics == ("0xdead",)
        assert receipt.l2_to_l1_logs[0].sender == "0x8008"

    @pytest.mark.asyncio
    async def test_pending_receipt_is_none(self) -> None:
        rpc = FakeRpc({"eth_getTransactionReceipt": None})
        assert await ZksRpc(rpc).get_receipt_with_l2_to_l1(TX) is None

    def test_non_list_l2_to_l1_logs_defaults_to_empty(self) -> None:
        receipt = Receipt.from_raw(
            {"transactionHash": TX, "status": 1, "blockNumber": 1, "l2ToL1Logs": None}
        )
        assert receipt.l2_to_l1_logs == ()
        assert receipt.logs == ()


class TestZksGenesis:
    @pytest.mark.asyncio
    async def test_tuples_become_named_fields(self) -> None:
        raw = {
            "initial_contracts": [["0x" + "01" * 20, "0x6080"]],
            "additional_storage": [["0x" + "00" * 32, "0x" + "11" * 32]],
            "execution_version": 3,
            "genesis_root": "0x" + "22" * 32,
        }
        genesis = await ZksRpc(FakeRpc({"zks_getGenesis": raw})).get_genesis()
        assert genesis.initial_contracts[0].address == "0x" + "01" * 20
        assert genesis.initial_contracts[0].bytecode == "0x6080"
        assert genesis.additional_storage[0].value == "0x" + "11" * 32
        assert genesis.execution_version == 3
        assert genesis.genesis_root == "0x" + "22" * 32

    @pytest.mark.asyncio
    async def test_bad_entry_is_rpc(self) -> None:
        raw = {
            "initial_contracts": [["0x01"]],
            "additional_storage": [],
            "execution_version": 3,
            "genesis_root": "0x" + "22" * 32,
        }
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(FakeRpc({"zks_getGenesis": raw})).get_genesis()
        assert exc_info.value.type is ErrorType.RPC
        assert exc_info.value.envelope.operation == "zksrpc.getGenesis"

    @pytest.mark.asyncio
    async def test_bad_root_is_rpc(self) -> None:
        raw = {
            "initial_contracts": [],
            "additional_storage": [],
            "execution_version": 3,
            "genesis_root": None,
        }
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(FakeRpc({"zks_getGenesis": raw})).get_genesis()
        assert exc_info.value.envelope.message == "Malformed genesis root."


class TestZksBlockMetadata:
    @pytest.mark.asyncio
    async def test_camel_case_aliases(self) -> None:
        raw = {"pubdataPricePerByte": "0x10", "nativePrice": 5, "executionVersion": "2"}
        meta = await ZksRpc(
            FakeRpc({"zks_getBlockMetadataByNumber": raw})
        ).get_block_metadata_by_number(7)
        assert meta is not None
        assert (meta.pubdata_price_per_byte, meta.native_price, meta.execution_version) == (16, 5, 2)

    @pytest.mark.asyncio
    async def test_null_is_none(self) -> None:
        rpc = FakeRpc({"zks_getBlockMetadataByNumber": None})
        assert await ZksRpc(rpc).get_block_metadata_by_number(7) is None

    @pytest.mark.asyncio
    async def test_missing_field_is_rpc(self) -> None:
        rpc = FakeRpc({"zks_getBlockMetadataByNumber": {"native_price": 1}})
        with pytest.raises(FlowError) as exc_info:
            await ZksRpc(rpc).get_block_metadata_by_number(7)
        assert exc_info.value.type is ErrorType.RPC


class TestCoerceInt:
    def test_quantities(self) -> None:
        assert coerce_int("0x1f") == 31
        assert coerce_int("31") == 31
        assert coerce_int(31) == 31

    def test_rejects_bool_and_none(self) -> None:
        with pytest.raises(ValueError):
            coerce_int(True)
        with pytest.raises(ValueError):
            coerce_int(None)
