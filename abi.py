"""
Contract ABI encoding for the types a UserOperation needs

Supports address, uint256, bytes32, bytes, tuples and dynamic arrays of tuples,
using the head/tail layout of the Ethereum Contract ABI.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from collections.abc import Mapping, Sequence
from typing import Any, Tuple, Union

from hexbytes import HexBytes
from web3 import Web3

from errors import LayoutMismatch, ValueOutOfRange

logger = logging.getLogger(__name__)

WORD_SIZE = 32
SELECTOR_SIZE = 4
ADDRESS_SIZE = 20
UINT256_MAX = 2**256 - 1


class Scalar(Enum):
    """Static 32-byte ABI types"""
    ADDRESS = "address"
    UINT256 = "uint256"
    BYTES32 = "bytes32"

    @property
    def canonical(self) -> str:
        return self.value

    @property
    def is_dynamic(self) -> bool:
        return False


@dataclass(frozen=True)
class DynamicBytes:
    """The dynamic `bytes` type"""

    @property
    def canonical(self) -> str:
        return "bytes"

    @property
    def is_dynamic(self) -> bool:
        return True


BYTES = DynamicBytes()


@dataclass(frozen=True)
class Component:
    """Named member of a tuple"""
    name: str
    type: "AbiType"


@dataclass(frozen=True)
class TupleType:
    """Struct of named components, encoded in declaration order"""
    components: Tuple[Component, ...]

    def __post_init__(self):
        components = tuple(self.components)
        names = set()
        for component in components:
            if not isinstance(component, Component):
                raise LayoutMismatch(f"Tuple components must be Component, got {component!r}")
            if not isinstance(component.type, _SCHEMA_TYPES):
                raise LayoutMismatch(f"Unsupported ABI type for '{component.name}': {component.type!r}")
            if component.name in names:
                raise LayoutMismatch(f"Duplicate tuple component '{component.name}'")
            names.add(component.name)
        object.__setattr__(self, "components", components)

    @classmethod
    def of(cls, *components: Tuple[str, "AbiType"]) -> "TupleType":
        """Build a tuple from (name, type) pairs"""
        return cls(tuple(Component(name, abi_type) for name, abi_type in components))

    @property
    def types(self) -> Tuple["AbiType", ...]:
        return tuple(component.type for component in self.components)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(component.name for component in self.components)

    @property
    def canonical(self) -> str:
        return "(" + ",".join(t.canonical for t in self.types) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(t.is_dynamic for t in self.types)


@dataclass(frozen=True)
class TupleArrayType:
    """Dynamic array `T[]` whose elements are tuples"""
    element: TupleType

    def __post_init__(self):
        if not isinstance(self.element, TupleType):
            raise LayoutMismatch(f"Only arrays of tuples are supported, got {self.element!r}")

    @property
    def canonical(self) -> str:
        return self.element.canonical + "[]"

    @property
    def is_dynamic(self) -> bool:
        return True


AbiType = Union[Scalar, DynamicBytes, TupleType, TupleArrayType]
_SCHEMA_TYPES = (Scalar, DynamicBytes, TupleType, TupleArrayType)


def to_bytes(value: Any, what: str) -> bytes:
    """Normalize bytes or a 0x-hex string; anything else is a layout error"""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return bytes(HexBytes(value))
        except ValueError:
            raise ValueOutOfRange(f"{what} is not valid hex: {value!r}")
    raise LayoutMismatch(f"{what} must be bytes or a hex string, got {type(value).__name__}")


def _encode_uint(value: Any) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise LayoutMismatch(f"uint256 value must be an int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueOutOfRange(f"uint256 value out of range: {value}")
    return value.to_bytes(WORD_SIZE, "big")


def _encode_address(value: Any) -> bytes:
    raw = to_bytes(value, "address")
    if len(raw) > ADDRESS_SIZE:
        raise ValueOutOfRange(f"address is {len(raw)} bytes wide, expected at most {ADDRESS_SIZE}")
    return raw.rjust(WORD_SIZE, b"\x00")


def _encode_bytes32(value: Any) -> bytes:
    raw = to_bytes(value, "bytes32")
    if len(raw) != WORD_SIZE:
        raise ValueOutOfRange(f"bytes32 value is {len(raw)} bytes long")
    return raw


def encode_static(value: Any, abi_type: Scalar) -> bytes:
    """Encode a scalar into a single 32-byte word"""
    if abi_type is Scalar.UINT256:
        return _encode_uint(value)
    if abi_type is Scalar.ADDRESS:
        return _encode_address(value)
    if abi_type is Scalar.BYTES32:
        return _encode_bytes32(value)
    raise LayoutMismatch(f"{abi_type!r} is not a static scalar type")


def encode_dynamic_bytes(data: Any) -> bytes:
    """Length word followed by the data right-padded to a multiple of 32 bytes"""
    raw = to_bytes(data, "bytes")
    padding = -len(raw) % WORD_SIZE
    return _encode_uint(len(raw)) + raw + b"\x00" * padding


def _head_size(abi_type: AbiType) -> int:
    # Static tuples are inlined into the enclosing head
    if isinstance(abi_type, TupleType) and not abi_type.is_dynamic:
        return sum(_head_size(t) for t in abi_type.types)
    return WORD_SIZE


def _encode_value(value: Any, abi_type: AbiType) -> bytes:
    if isinstance(abi_type, Scalar):
        return encode_static(value, abi_type)
    if isinstance(abi_type, DynamicBytes):
        return encode_dynamic_bytes(value)
    if isinstance(abi_type, TupleType):
        return encode_tuple(value, abi_type)
    if isinstance(abi_type, TupleArrayType):
        return encode_array_of_tuples(value, abi_type.element)
    raise LayoutMismatch(f"Unsupported ABI type: {abi_type!r}")


def _encode_sequence(values: Sequence[Any], types: Sequence[AbiType]) -> bytes:
    """Head/tail encoding; offsets are relative to the start of the returned bytes"""
    if len(values) != len(types):
        raise LayoutMismatch(f"Expected {len(types)} values, got {len(values)}")

    offset = sum(_head_size(t) for t in types)
    heads, tails = [], []
    for value, abi_type in zip(values, types):
        encoded = _encode_value(value, abi_type)
        if abi_type.is_dynamic:
            heads.append(_encode_uint(offset))
            tails.append(encoded)
            offset += len(encoded)
        else:
            if len(encoded) != _head_size(abi_type):
                raise LayoutMismatch(f"{abi_type.canonical} encoded to {len(encoded)} bytes")
            heads.append(encoded)
    return b"".join(heads) + b"".join(tails)


def _tuple_values(fields: Any, layout: TupleType) -> Sequence[Any]:
    if isinstance(fields, Mapping):
        missing = [name for name in layout.names if name not in fields]
        if missing:
            raise LayoutMismatch(f"Missing tuple fields: {', '.join(missing)}")
        extra = set(fields) - set(layout.names)
        if extra:
            raise LayoutMismatch(f"Unexpected tuple fields: {', '.join(sorted(extra))}")
        return [fields[name] for name in layout.names]
    if isinstance(fields, (str, bytes, bytearray)) or not isinstance(fields, Sequence):
        raise LayoutMismatch(f"Tuple value must be a sequence or mapping, got {type(fields).__name__}")
    return fields


def encode_tuple(fields: Union[Sequence[Any], Mapping[str, Any]], layout: TupleType) -> bytes:
    """Encode a struct, given its values in declaration order or keyed by component name"""
    if not isinstance(layout, TupleType):
        raise LayoutMismatch(f"Expected a TupleType layout, got {layout!r}")
    return _encode_sequence(_tuple_values(fields, layout), layout.types)


def encode_array_of_tuples(items: Sequence[Any], layout: TupleType) -> bytes:
    """Element count word followed by the head/tail encoding of the elements"""
    if not isinstance(layout, TupleType):
        raise LayoutMismatch(f"Expected a TupleType layout, got {layout!r}")
    if isinstance(items, (str, bytes, bytearray, Mapping)) or not isinstance(items, Sequence):
        raise LayoutMismatch(f"Tuple array value must be a sequence, got {type(items).__name__}")
    return _encode_uint(len(items)) + _encode_sequence(items, [layout] * len(items))


def encode_abi(types: Sequence[AbiType], values: Sequence[Any]) -> bytes:
    """Encode a parameter list as an implicit tuple"""
    for abi_type in types:
        if not isinstance(abi_type, _SCHEMA_TYPES):
            raise LayoutMismatch(f"Unsupported ABI type: {abi_type!r}")
    return _encode_sequence(list(values), list(types))


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of a canonical function signature"""
    return bytes(Web3.keccak(text=signature)[:SELECTOR_SIZE])


def encode_function_call(selector: bytes, arg_types: Sequence[AbiType], args: Sequence[Any]) -> bytes:
    """4-byte selector followed by the encoded arguments"""
    selector = to_bytes(selector, "selector")
    if len(selector) != SELECTOR_SIZE:
        raise LayoutMismatch(f"Selector must be {SELECTOR_SIZE} bytes, got {len(selector)}")
    return selector + encode_abi(arg_types, args)


@dataclass(frozen=True)
class Function:
    """Contract function schema used to frame calldata"""
    name: str
    inputs: TupleType

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(t.canonical for t in self.inputs.types)})"

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)

    def encode_call(self, *args: Any) -> bytes:
        calldata = encode_function_call(self.selector, self.inputs.types, args)
        logger.debug(f"Encoded {self.name} calldata: {len(calldata)} bytes")
        return calldata
