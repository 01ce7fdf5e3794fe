"""
Exceptions raised while encoding, hashing and signing UserOperations
"""


class EncodingError(Exception):
    """Base class for ABI encoding failures"""


class ValueOutOfRange(EncodingError):
    """A scalar does not fit its ABI type (uint256 overflow, address wider than 20 bytes, ...)"""


class LayoutMismatch(EncodingError):
    """Supplied values do not match the declared ABI layout"""


class HashingError(Exception):
    """Base class for UserOperation hashing failures"""


class MissingField(HashingError):
    """A required UserOperation field is absent"""

    def __init__(self, field: str):
        super().__init__(f"UserOperation is missing required field '{field}'")
        self.field = field


class SigningError(Exception):
    """Raised by (or on behalf of) the external signer"""
