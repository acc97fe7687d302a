"""
Tests for the error layer — envelopes, wrappers, revert decoding.

Test plan:
- Handlers: FlowError passes through wrap unchanged (same object),
  foreign exceptions become the requested kind with a shaped cause,
  to_result returns Ok/Err and never raises, wrap_receipt maps
  not-found to None and other failures to RPC, error() builds without
  raising
- Cause shaping: revert data cut to selector + ellipsis, code kept
- Receipt-not-found: by class name, by code, by message, through the
  cause chain, and not for unrelated failures
- Revert decoding: Error(string), registered custom errors, unknown
  selector falls back to selector only, runtime registration
- Readiness: mapped names, "paused" message, unmapped decodable
  revert, no revert data at all
- Formatter: header, operation, context and cause lines
"""

import asyncio

import pytest

from fakes import FakeNodeError
from zkflow.abi import encode_args
from zkflow.errors import (
    Err,
    ErrorAbi,
    ErrorHandlers,
    ErrorType,
    FlowError,
    Ok,
    classify_readiness_from_revert,
    create_error,
    decode_revert,
    decode_revert_data,
    format_envelope,
    is_flow_error,
    is_receipt_not_found,
    register_error_abi,
    shape_cause,
    with_rpc_op,
)
from zkflow.plans import ReadinessKind
from zkflow.rpc import JsonRpcError


def revert_data(abi: ErrorAbi, *args) -> str:
    return abi.selector + encode_args(list(abi.inputs), list(args))[2:]


BATCH_NOT_EXECUTED = ErrorAbi("BatchNotExecuted", ("uint256",))
WRONG_SENDER = ErrorAbi("WrongL2Sender", ("address",))
ALREADY_FINALIZED = ErrorAbi("WithdrawalAlreadyFinalized")

handlers = ErrorHandlers("withdrawals")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestHandlers:
    @pytest.mark.asyncio
    async def test_flow_error_passes_through_identical(self) -> None:
        original = handlers.error(ErrorType.STATE, "withdrawals.finalize", "not ready")

        async def fn():
            raise original

        with pytest.raises(FlowError) as exc_info:
            await handlers.wrap_as(ErrorType.RPC, "withdrawals.status", fn)
        assert exc_info.value is original
        assert exc_info.value.type is ErrorType.STATE

    @pytest.mark.asyncio
    async def test_foreign_exception_wrapped_as_kind(self) -> None:
        async def fn():
            raise ConnectionError("connection refused")

        with pytest.raises(FlowError) as exc_info:
            await handlers.wrap_as(
                ErrorType.RPC, "withdrawals.status", fn,
                message="Failed to fetch receipt.", ctx={"l2TxHash": "0xabc"},
            )
        env = exc_info.value.envelope
        assert env.type is ErrorType.RPC
        assert env.resource == "withdrawals"
        assert env.operation == "withdrawals.status"
        assert env.message == "Failed to fetch receipt."
        assert env.context == {"l2TxHash": "0xabc"}
        assert env.cause == {"name": "ConnectionError", "message": "connection refused"}
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_wrap_defaults_to_internal(self) -> None:
        with pytest.raises(FlowError) as exc_info:
            await handlers.wrap("withdrawals.quote", lambda: 1 // 0)
        assert exc_info.value.type is ErrorType.INTERNAL
        assert exc_info.value.envelope.message == "Error during withdrawals.quote."

    @pytest.mark.asyncio
    async def test_wrap_accepts_sync_thunk(self) -> None:
        assert await handlers.wrap("withdrawals.quote", lambda: 42) == 42

    @pytest.mark.asyncio
    async def test_to_result_ok(self) -> None:
        async def fn():
            return "value"

        result = await handlers.to_result("withdrawals.tryQuote", fn)
        assert isinstance(result, Ok)
        assert result.ok is True
        assert result.value == "value"

    @pytest.mark.asyncio
    async def test_to_result_err_keeps_envelope(self) -> None:
        original = handlers.error(ErrorType.VALIDATION, "withdrawals.prepare", "bad amount")

        async def fn():
            raise original

        result = await handlers.to_result("withdrawals.tryPrepare", fn)
        assert isinstance(result, Err)
        assert result.ok is False
        assert result.error is original.envelope

    @pytest.mark.asyncio
    async def test_to_result_wraps_foreign_exception(self) -> None:
        async def fn():
            raise RuntimeError("boom")

        result = await handlers.to_result("withdrawals.tryCreate", fn)
        assert isinstance(result, Err)
        assert result.error.type is ErrorType.INTERNAL
        assert result.error.operation == "withdrawals.tryCreate"

    @pytest.mark.asyncio
    async def test_cancellation_not_wrapped(self) -> None:
        async def fn():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await handlers.wrap("withdrawals.wait", fn)

    def test_error_builds_without_raising(self) -> None:
        err = handlers.error(ErrorType.STATE, "withdrawals.finalize", "not ready", ctx={"a": 1})
        assert is_flow_error(err)
        assert err.envelope.context == {"a": 1}
        assert err.envelope.revert is None

    def test_error_decodes_revert_from_cause(self) -> None:
        cause = FakeNodeError("execution reverted", data=revert_data(BATCH_NOT_EXECUTED, 7))
        err = handlers.error(ErrorType.EXECUTION, "withdrawals.finalize:send", "failed", cause=cause)
        assert err.envelope.revert is not None
        assert err.envelope.revert.name == "BatchNotExecuted"
        assert err.envelope.revert.args == (7,)

    def test_is_flow_error_rejects_other_values(self) -> None:
        assert not is_flow_error(ValueError("x"))
        assert not is_flow_error({"type": "STATE"})

    @pytest.mark.asyncio
    async def test_wrap_receipt_not_found_is_none(self) -> None:
        async def fn():
            raise TransactionNotFound("Transaction with hash 0xabc not found.")

        assert await handlers.wrap_receipt("withdrawals.status", fn, message="no receipt") is None

    @pytest.mark.asyncio
    async def test_wrap_receipt_other_failure_is_rpc(self) -> None:
        async def fn():
            raise ConnectionError("connection refused")

        with pytest.raises(FlowError) as exc_info:
            await handlers.wrap_receipt(
                "withdrawals.status", fn, message="no receipt", ctx={"l2TxHash": "0xabc"}
            )
        env = exc_info.value.envelope
        assert env.type is ErrorType.RPC
        assert env.message == "no receipt"
        assert env.context == {"l2TxHash": "0xabc"}

    @pytest.mark.asyncio
    async def test_with_rpc_op_maps_to_rpc(self) -> None:
        async def fn():
            raise JsonRpcError(-32601, "method not found")

        with pytest.raises(FlowError) as exc_info:
            await with_rpc_op("zksrpc.getGenesis", "Failed to fetch genesis.", {}, fn)
        env = exc_info.value.envelope
        assert env.type is ErrorType.RPC
        assert env.resource == "zksrpc"
        assert env.cause["code"] == -32601


# ---------------------------------------------------------------------------
# Cause shaping
# ---------------------------------------------------------------------------


class TestShapeCause:
    def test_revert_data_truncated_to_selector(self) -> None:
        data = revert_data(BATCH_NOT_EXECUTED, 7)
        shaped = shape_cause(FakeNodeError("execution reverted", data=data, code=3))
        assert shaped["name"] == "FakeNodeError"
        assert shaped["message"] == "execution reverted"
        assert shaped["code"] == 3
        assert shaped["data"] == data[:10] + "…"

    def test_nested_data_dict(self) -> None:
        err = FakeNodeError("reverted")
        err.data = {"data": "0xdeadbeefcafe", "message": "reverted"}
        assert shape_cause(err)["data"] == "0xdeadbeef…"

    def test_plain_exception(self) -> None:
        assert shape_cause(ValueError("bad")) == {"name": "ValueError", "message": "bad"}


# ---------------------------------------------------------------------------
# Receipt-not-found
# ---------------------------------------------------------------------------


class TransactionNotFound(Exception):
    pass


class TestReceiptNotFound:
    def test_by_class_name(self) -> None:
        assert is_receipt_not_found(TransactionNotFound("0xabc"))

    def test_by_code(self) -> None:
        assert is_receipt_not_found(JsonRpcError("RECEIPT_NOT_FOUND", "nope"))

    def test_by_message(self) -> None:
        assert is_receipt_not_found(RuntimeError("Transaction receipt could not be found"))
        assert is_receipt_not_found(RuntimeError("transaction 0xabc not found"))

    def test_through_cause_chain(self) -> None:
        inner = TransactionNotFound("0xabc")
        outer = create_error(
            ErrorType.RPC, resource="deposits", operation="deposits.status",
            message="Failed to fetch receipt.", cause=inner,
        )
        assert is_receipt_not_found(outer)

    def test_unrelated_failures(self) -> None:
        assert not is_receipt_not_found(ConnectionError("connection refused"))
        assert not is_receipt_not_found(None)


# ---------------------------------------------------------------------------
# Revert decoding
# ---------------------------------------------------------------------------


class TestRevertDecoding:
    def test_error_string(self) -> None:
        data = ErrorAbi("Error", ("string",)).selector + encode_args(["string"], ["nope"])[2:]
        detail = decode_revert_data(data)
        assert detail.selector == "0x08c379a0"
        assert detail.name == "Error"
        assert detail.args == ("nope",)
        assert detail.contract is None

    def test_registered_custom_error(self) -> None:
        detail = decode_revert_data(revert_data(BATCH_NOT_EXECUTED, 12))
        assert detail.name == "BatchNotExecuted"
        assert detail.args == (12,)
        assert detail.contract == "IL1Nullifier"

    def test_unknown_selector_keeps_selector_only(self) -> None:
        detail = decode_revert_data("0x12345678" + "00" * 32)
        assert detail.selector == "0x12345678"
        assert detail.name is None
        assert detail.args == ()

    def test_decode_revert_from_args(self) -> None:
        err = RuntimeError("execution reverted", revert_data(ALREADY_FINALIZED))
        detail = decode_revert(err)
        assert detail is not None
        assert detail.name == "WithdrawalAlreadyFinalized"

    def test_decode_revert_none_without_data(self) -> None:
        assert decode_revert(RuntimeError("nothing here")) is None

    def test_runtime_registration(self) -> None:
        custom = ErrorAbi("CustomPaused", ("uint256",))
        assert decode_revert_data(revert_data(custom, 1)).name is None
        register_error_abi("TestContract", [custom])
        detail = decode_revert_data(revert_data(custom, 1))
        assert detail.name == "CustomPaused"
        assert detail.contract == "TestContract"

    def test_to_dict_omits_empty_fields(self) -> None:
        assert decode_revert_data("0x12345678").to_dict() == {"selector": "0x12345678"}


# ---------------------------------------------------------------------------
# Readiness classification
# ---------------------------------------------------------------------------


class TestReadinessFromRevert:
    def test_already_finalized(self) -> None:
        err = FakeNodeError("reverted", data=revert_data(ALREADY_FINALIZED))
        assert classify_readiness_from_revert(err).kind is ReadinessKind.FINALIZED

    def test_batch_not_executed_is_temporary(self) -> None:
        err = FakeNodeError("reverted", data=revert_data(BATCH_NOT_EXECUTED, 3))
        readiness = classify_readiness_from_revert(err)
        assert readiness.kind is ReadinessKind.NOT_READY
        assert readiness.reason == "batch-not-executed"

    def test_wrong_sender_is_permanent(self) -> None:
        err = FakeNodeError("reverted", data=revert_data(WRONG_SENDER, "0x" + "11" * 20))
        readiness = classify_readiness_from_revert(err)
        assert readiness.kind is ReadinessKind.UNFINALIZABLE
        assert readiness.reason == "message-invalid"

    def test_paused_message(self) -> None:
        readiness = classify_readiness_from_revert(FakeNodeError("Pausable: paused"))
        assert readiness.kind is ReadinessKind.NOT_READY
        assert readiness.reason == "paused"

    def test_unmapped_revert_is_unsupported(self) -> None:
        err = FakeNodeError("reverted", data="0xabcdef01")
        readiness = classify_readiness_from_revert(err)
        assert readiness.kind is ReadinessKind.UNFINALIZABLE
        assert readiness.reason == "unsupported"
        assert readiness.detail == "0xabcdef01"

    def test_no_revert_data_is_unknown(self) -> None:
        readiness = classify_readiness_from_revert(RuntimeError("header not found"))
        assert readiness.kind is ReadinessKind.NOT_READY
        assert readiness.reason == "unknown"


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class TestFormatter:
    def test_renders_block(self) -> None:
        err = create_error(
            ErrorType.STATE,
            resource="withdrawals",
            operation="withdrawals.finalize",
            message="Withdrawal not ready.",
            context={"txHash": "0xabc", "step": "finalize"},
            cause=ValueError("bad proof"),
        )
        text = format_envelope(err.envelope)
        lines = text.splitlines()
        assert lines[0] == "✖ FlowError [STATE]"
        assert "Message   : Withdrawal not ready." in text
        assert "Operation : withdrawals.finalize" in text
        assert "Context   : txHash=0xabc" in text
        assert "Step      : finalize" in text
        assert "name=ValueError" in text
        assert "message=bad proof" in text
        assert str(err) == text

    def test_long_cause_message_elided(self) -> None:
        err = create_error(
            ErrorType.RPC, resource="zksrpc", operation="zksrpc.getGenesis",
            message="m", cause=RuntimeError("x" * 1000),
        )
        line = next(ln for ln in str(err).splitlines() if "message=" in ln)
        assert "…" in line
        assert len(line) < 700
