"""Error taxonomy, revert decoding and boundary wrappers."""

from zkflow.errors.envelope import Err, ErrorEnvelope, ErrorType, Ok, Result, RevertDetail
from zkflow.errors.factory import (
    FlowError,
    create_error,
    is_flow_error,
    is_receipt_not_found,
    shape_cause,
)
from zkflow.errors.formatter import format_envelope
from zkflow.errors.ops import ErrorHandlers, with_rpc_op
from zkflow.errors.revert import (
    REVERT_TO_READINESS,
    ErrorAbi,
    classify_readiness_from_revert,
    decode_revert,
    decode_revert_data,
    register_error_abi,
)

__all__ = [
    "Err",
    "ErrorAbi",
    "ErrorEnvelope",
    "ErrorHandlers",
    "ErrorType",
    "FlowError",
    "Ok",
    "REVERT_TO_READINESS",
    "Result",
    "RevertDetail",
    "classify_readiness_from_revert",
    "create_error",
    "decode_revert",
    "decode_revert_data",
    "format_envelope",
    "is_flow_error",
    "is_receipt_not_found",
    "register_error_abi",
    "shape_cause",
    "with_rpc_op",
]
