"""
EntryPoint v0.6 handleOps calldata
"""

import logging
from typing import Sequence

from abi import BYTES, Function, Scalar, TupleArrayType, TupleType
from config import validate_address
from errors import LayoutMismatch
from user_operations import SignedUserOperation

logger = logging.getLogger(__name__)

USER_OPERATION_TYPE = TupleType.of(
    ("sender", Scalar.ADDRESS),
    ("nonce", Scalar.UINT256),
    ("initCode", BYTES),
    ("callData", BYTES),
    ("callGasLimit", Scalar.UINT256),
    ("verificationGasLimit", Scalar.UINT256),
    ("preVerificationGas", Scalar.UINT256),
    ("maxFeePerGas", Scalar.UINT256),
    ("maxPriorityFeePerGas", Scalar.UINT256),
    ("paymasterAndData", BYTES),
    ("signature", BYTES),
)

HANDLE_OPS = Function(
    "handleOps",
    TupleType.of(
        ("ops", TupleArrayType(USER_OPERATION_TYPE)),
        ("beneficiary", Scalar.ADDRESS),
    ),
)
HANDLE_OPS_SELECTOR = HANDLE_OPS.selector


def create_handle_ops_calldata(signed_ops: Sequence[SignedUserOperation], beneficiary: str) -> bytes:
    """Encode handleOps(ops, beneficiary) for a batch of signed UserOperations"""
    ops = []
    for signed_op in signed_ops:
        if not isinstance(signed_op, SignedUserOperation):
            raise LayoutMismatch(f"handleOps requires SignedUserOperation, got {type(signed_op).__name__}")
        ops.append(signed_op.as_abi_tuple())

    beneficiary = validate_address(beneficiary, "beneficiary")
    calldata = HANDLE_OPS.encode_call(ops, beneficiary)

    logger.info(f"HandleOps calldata for {len(ops)} UserOperation(s), beneficiary {beneficiary}: {len(calldata)} bytes")
    return calldata
