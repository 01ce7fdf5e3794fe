"""
UserOperation (EntryPoint v0.6) creation, hashing and signing utilities
"""

import logging
from dataclasses import astuple, dataclass, fields, replace
from typing import Callable, Dict, Mapping, Tuple, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from abi import BYTES, Function, Scalar, TupleType, encode_static, encode_tuple, to_bytes
from config import DEFAULT_GAS_LIMITS, UserOperationConfig, validate_address
from errors import LayoutMismatch, MissingField, SigningError, ValueOutOfRange

logger = logging.getLogger(__name__)

UINT256_FIELDS = (
    "nonce",
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
)
BYTES_FIELDS = ("init_code", "call_data", "paymaster_and_data")

# Every dynamic field replaced by its keccak256, signature excluded
PACKED_USER_OPERATION_TYPE = TupleType.of(
    ("sender", Scalar.ADDRESS),
    ("nonce", Scalar.UINT256),
    ("initCode", Scalar.BYTES32),
    ("callData", Scalar.BYTES32),
    ("callGasLimit", Scalar.UINT256),
    ("verificationGasLimit", Scalar.UINT256),
    ("preVerificationGas", Scalar.UINT256),
    ("maxFeePerGas", Scalar.UINT256),
    ("maxPriorityFeePerGas", Scalar.UINT256),
    ("paymasterAndData", Scalar.BYTES32),
)

USER_OPERATION_HASH_TYPE = TupleType.of(
    ("userOpHash", Scalar.BYTES32),
    ("entryPoint", Scalar.ADDRESS),
    ("chainId", Scalar.UINT256),
)

# execute((address,uint256,bytes)) on the smart account
EXECUTE_FUNCTION = Function(
    "execute",
    TupleType.of(
        ("call", TupleType.of(("to", Scalar.ADDRESS), ("value", Scalar.UINT256), ("data", BYTES))),
    ),
)
EXECUTE_SELECTOR = EXECUTE_FUNCTION.selector


def keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(primitive=bytes(data)))


def _checked_address(address: str, name: str) -> str:
    try:
        return validate_address(address, name)
    except ValueError as e:
        raise ValueOutOfRange(str(e))


@dataclass
class UserOperation:
    """Unsigned UserOperation; sign it with `sign_user_operation` before encoding"""
    sender: str
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes

    def __post_init__(self):
        if self.sender is not None:
            self.sender = _checked_address(self.sender, "sender")
        for name in BYTES_FIELDS:
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, to_bytes(value, name))
        for name in UINT256_FIELDS:
            value = getattr(self, name)
            if value is not None:
                encode_static(value, Scalar.UINT256)


@dataclass(frozen=True)
class SignedUserOperation:
    """Immutable snapshot of the signed UserOperation fields plus the signature"""
    values: Tuple
    signature: bytes

    def __post_init__(self):
        values = tuple(self.values)
        if len(values) != len(fields(UserOperation)):
            raise LayoutMismatch(f"Expected {len(fields(UserOperation))} UserOperation values, got {len(values)}")
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "signature", to_bytes(self.signature, "signature"))

    @classmethod
    def from_user_operation(cls, user_operation: UserOperation, signature: bytes) -> "SignedUserOperation":
        if not isinstance(user_operation, UserOperation):
            raise LayoutMismatch(f"Expected a UserOperation, got {type(user_operation).__name__}")
        return cls(values=astuple(user_operation), signature=signature)

    @property
    def user_operation(self) -> UserOperation:
        """A fresh copy; edits to it never reach the signed values"""
        return UserOperation(*self.values)

    def as_abi_tuple(self) -> tuple:
        """Field values in the order of the on-chain UserOperation struct"""
        return self.values + (self.signature,)

    def to_dict(self) -> Dict[str, str]:
        """JSON-RPC (EntryPoint v0.6) representation"""
        op = self.user_operation
        return {
            "sender": op.sender,
            "nonce": hex(op.nonce),
            "initCode": "0x" + op.init_code.hex(),
            "callData": "0x" + op.call_data.hex(),
            "callGasLimit": hex(op.call_gas_limit),
            "verificationGasLimit": hex(op.verification_gas_limit),
            "preVerificationGas": hex(op.pre_verification_gas),
            "maxFeePerGas": hex(op.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(op.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + op.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }


def _unwrap(user_op: Union[UserOperation, SignedUserOperation]) -> UserOperation:
    if isinstance(user_op, SignedUserOperation):
        return user_op.user_operation
    return user_op


def _check_required_fields(op: UserOperation) -> None:
    for field in fields(UserOperation):
        if getattr(op, field.name) is None:
            raise MissingField(field.name)


def pack_user_operation(user_op: Union[UserOperation, SignedUserOperation]) -> bytes:
    """Static 320-byte encoding of a UserOperation with dynamic fields hashed"""
    op = _unwrap(user_op)
    _check_required_fields(op)

    return encode_tuple(
        [
            op.sender,
            op.nonce,
            keccak(op.init_code),
            keccak(op.call_data),
            op.call_gas_limit,
            op.verification_gas_limit,
            op.pre_verification_gas,
            op.max_fee_per_gas,
            op.max_priority_fee_per_gas,
            keccak(op.paymaster_and_data),
        ],
        PACKED_USER_OPERATION_TYPE,
    )


def _resolve_domain(entry_point: str, chain_id: int, config: UserOperationConfig) -> Tuple[str, int]:
    # Values passed explicitly win over the configuration
    if entry_point is None or chain_id is None:
        config = config or UserOperationConfig()
        if entry_point is None:
            entry_point = config.entry_point_address
        if chain_id is None:
            chain_id = config.chain_id
    return _checked_address(entry_point, "EntryPoint address"), chain_id


def get_user_operation_hash(
    user_op: Union[UserOperation, SignedUserOperation],
    entry_point: str = None,
    chain_id: int = None,
    config: UserOperationConfig = None
) -> bytes:
    """
    Hash a UserOperation bound to an EntryPoint and chain id; this is what gets signed.

    EntryPoint and chain id not given here are taken from `config`
    (or a `UserOperationConfig()` built from the environment).
    """
    entry_point, chain_id = _resolve_domain(entry_point, chain_id, config)
    packed_hash = keccak(pack_user_operation(user_op))
    encoded = encode_tuple([packed_hash, entry_point, chain_id], USER_OPERATION_HASH_TYPE)
    user_op_hash = keccak(encoded)

    logger.debug(f"UserOperation hash for EntryPoint {entry_point} on chain {chain_id}: 0x{user_op_hash.hex()}")
    return user_op_hash


class LocalAccountSigner:
    """Signs digests as EIP-191 personal messages with a local private key"""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def __call__(self, digest: bytes) -> bytes:
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        return bytes(signed.signature)


def sign_user_operation(
    user_operation: UserOperation,
    signer: Callable[[bytes], bytes],
    entry_point: str = None,
    chain_id: int = None,
    config: UserOperationConfig = None
) -> SignedUserOperation:
    """Sign a UserOperation; the returned value is the only form accepted for handleOps"""
    if isinstance(user_operation, SignedUserOperation):
        raise LayoutMismatch("UserOperation is already signed")

    # Snapshot so later edits to the builder cannot change what was signed
    snapshot = replace(user_operation)
    entry_point, chain_id = _resolve_domain(entry_point, chain_id, config)
    digest = get_user_operation_hash(snapshot, entry_point, chain_id)
    logger.info(f"Signing UserOperation: sender={snapshot.sender}, nonce={snapshot.nonce}, chain_id={chain_id}")

    try:
        signature = signer(digest)
    except SigningError:
        raise
    except Exception as e:
        raise SigningError(f"Signer failed: {e}") from e

    if not isinstance(signature, (bytes, bytearray)):
        raise SigningError(f"Signer returned {type(signature).__name__}, expected bytes")

    logger.info(f"Signature length: {len(signature)}, hex: {bytes(signature).hex()[:20]}...")
    return SignedUserOperation.from_user_operation(snapshot, bytes(signature))


def user_operation_from_dict(data: Mapping[str, Union[str, int]]) -> UserOperation:
    """Build a UserOperation from its camelCase JSON-RPC form; signature is ignored"""
    keys = {
        "sender": "sender",
        "nonce": "nonce",
        "init_code": "initCode",
        "call_data": "callData",
        "call_gas_limit": "callGasLimit",
        "verification_gas_limit": "verificationGasLimit",
        "pre_verification_gas": "preVerificationGas",
        "max_fee_per_gas": "maxFeePerGas",
        "max_priority_fee_per_gas": "maxPriorityFeePerGas",
        "paymaster_and_data": "paymasterAndData",
    }
    values = {}
    for name, key in keys.items():
        if data.get(key) is None:
            raise MissingField(key)
        value = data[key]
        if name in UINT256_FIELDS and isinstance(value, str):
            try:
                value = int(value, 16)
            except ValueError:
                raise ValueOutOfRange(f"{key} is not a hex quantity: {value!r}")
        values[name] = value
    return UserOperation(**values)


def create_init_code(factory: str, factory_data: bytes) -> bytes:
    """initCode is the factory address followed by the factory calldata"""
    factory = validate_address(factory, "factory address")
    return to_bytes(factory, "factory address") + to_bytes(factory_data, "factory data")


def create_user_operation(
    sender: str,
    nonce: int = 0,
    init_code: bytes = b'',
    call_data: bytes = b'',
    paymaster_and_data: bytes = b'',
    **gas_overrides: int
) -> UserOperation:
    """Create a UserOperation with default gas settings"""
    gas = {
        "call_gas_limit": DEFAULT_GAS_LIMITS["call"],
        "verification_gas_limit": DEFAULT_GAS_LIMITS["verification"],
        "pre_verification_gas": DEFAULT_GAS_LIMITS["pre_verification"],
        "max_fee_per_gas": DEFAULT_GAS_LIMITS["max_fee"],
        "max_priority_fee_per_gas": DEFAULT_GAS_LIMITS["max_priority_fee"],
    }
    unknown = set(gas_overrides) - set(gas)
    if unknown:
        raise TypeError(f"Unknown gas settings: {', '.join(sorted(unknown))}")
    gas.update(gas_overrides)

    return UserOperation(
        sender=sender,
        nonce=nonce,
        init_code=init_code,
        call_data=call_data,
        paymaster_and_data=paymaster_and_data,
        **gas,
    )


def create_eth_transfer_user_operation(
    smart_account: str,
    to_address: str,
    amount_wei: int,
    nonce: int
) -> UserOperation:
    """Create ETH transfer UserOperation using tuple-based execute function"""
    calldata = EXECUTE_FUNCTION.encode_call(
        (validate_address(to_address, "recipient"), amount_wei, b'')
    )

    logger.info(f"Created ETH transfer: {amount_wei} wei to {to_address}")

    return create_user_operation(sender=smart_account, nonce=nonce, call_data=calldata)
