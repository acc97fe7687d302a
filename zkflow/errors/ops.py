"""
Boundary wrappers — turn backend exceptions into FlowErrors.

Every I/O call a resource makes goes through one of these:

    handlers = ErrorHandlers("withdrawals")
    done = await handlers.wrap_as(
        ErrorType.RPC, OP_WITHDRAWALS.is_finalized, lambda: l1.read(...),
        message="Failed to read isWithdrawalFinalized.", ctx={"l2TxHash": h},
    )
    receipt = await handlers.wrap_receipt(
        OP_WITHDRAWALS.status, lambda: l2.get_receipt(h),
        message="Failed to fetch L2 receipt.", ctx={"l2TxHash": h},
    )

Invariants:
    - A FlowError raised inside ``fn`` passes through as the identical
      object. Wrapping never nests envelopes.
    - Only ``Exception`` subclasses are wrapped; cancellation and
      interpreter exits propagate untouched.
    - Any revert payload on the original exception is decoded and
      attached to the envelope.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, TypeVar, Union

from zkflow.errors.envelope import Err, ErrorType, Ok, Result
from zkflow.errors.factory import FlowError, create_error, is_receipt_not_found
from zkflow.errors.revert import decode_revert

T = TypeVar("T")

Thunk = Callable[[], Union[Awaitable[T], T]]

RPC_RESOURCE = "zksrpc"


async def _run(fn: Thunk[T]) -> T:
    result = fn()
    if inspect.isawaitable(result):
        return await result
    return result


def _default_message(operation: str) -> str:
    return f"Error during {operation}."


class ErrorHandlers:
    """Resource-scoped wrap helpers.

    Args:
        resource: Resource label stamped on every envelope
            ("deposits", "withdrawals", "interop", ...).
    """

    def __init__(self, resource: str) -> None:
        self._resource = resource

    @property
    def resource(self) -> str:
        return self._resource

    def error(
        self,
        kind: ErrorType,
        operation: str,
        message: str,
        *,
        ctx: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> FlowError:
        """Build (not raise) a FlowError for this resource."""
        return create_error(
            kind,
            resource=self._resource,
            operation=operation,
            message=message,
            context=ctx,
            revert=decode_revert(cause) if cause is not None else None,
            cause=cause,
        )

    async def wrap_as(
        self,
        kind: ErrorType,
        operation: str,
        fn: Thunk[T],
        *,
        message: str | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> T:
        """Run *fn*; re-raise any non-FlowError as a FlowError of *kind*."""
        try:
            return await _run(fn)
        except FlowError:
            raise
        except Exception as exc:
            raise self.error(
                kind, operation, message or _default_message(operation), ctx=ctx, cause=exc
            ) from exc

    async def wrap_receipt(
        self,
        operation: str,
        fn: Thunk[T | None],
        *,
        message: str,
        ctx: dict[str, Any] | None = None,
    ) -> T | None:
        """``wrap_as`` RPC for receipt lookups.

        Nodes that report an unknown transaction by raising (web3's
        ``TransactionNotFound``, "receipt not found" RPC errors) yield
        None, the same as a null receipt.
        """
        try:
            return await _run(fn)
        except FlowError:
            raise
        except Exception as exc:
            if is_receipt_not_found(exc):
                return None
            raise self.error(ErrorType.RPC, operation, message, ctx=ctx, cause=exc) from exc

    async def wrap(
        self,
        operation: str,
        fn: Thunk[T],
        *,
        message: str | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> T:
        """``wrap_as`` with INTERNAL as the fallback kind."""
        return await self.wrap_as(ErrorType.INTERNAL, operation, fn, message=message, ctx=ctx)

    async def to_result(
        self,
        operation: str,
        fn: Thunk[T],
        *,
        message: str | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> Result[T]:
        """Run *fn* and return Ok(value) or Err(envelope). Never raises."""
        try:
            value = await self.wrap(operation, fn, message=message, ctx=ctx)
        except FlowError as err:
            return Err(err.envelope)
        return Ok(value)


async def with_rpc_op(
    operation: str,
    message: str,
    ctx: dict[str, Any],
    fn: Thunk[T],
) -> T:
    """Run a chain-specific RPC call, mapping failures to RPC errors."""
    try:
        return await _run(fn)
    except FlowError:
        raise
    except Exception as exc:
        raise create_error(
            ErrorType.RPC,
            resource=RPC_RESOURCE,
            operation=operation,
            message=message,
            context=ctx,
            cause=exc,
        ) from exc
