"""
Configuration for UserOperation hashing and EntryPoint calldata
"""

import os
from dataclasses import dataclass

from web3 import Web3

# Network constants
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
KAKAROT_CHAIN_ID = 1802203764

# Default gas limits for UserOperations
DEFAULT_GAS_LIMITS = {
    "call": 350000,
    "verification": 550000,
    "pre_verification": 250000,
    "max_fee": Web3.to_wei(1, "gwei"),
    "max_priority_fee": Web3.to_wei("0.15", "gwei"),
}


def validate_address(address: str, name: str = "address") -> str:
    """Check a hex address (including its checksum when mixed-case) and return the checksum form"""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid {name}: {address!r}")
    digits = address[2:] if address[:2] in ("0x", "0X") else address
    mixed_case = digits != digits.lower() and digits != digits.upper()
    if mixed_case and not Web3.is_checksum_address(address):
        raise ValueError(f"Invalid {name} checksum: {address!r}")
    return Web3.to_checksum_address(address)


@dataclass
class UserOperationConfig:
    """EntryPoint and chain the UserOperations are bound to"""

    entry_point_address: str = None
    chain_id: int = None

    def __post_init__(self):
        if self.entry_point_address is None:
            self.entry_point_address = os.environ.get('ENTRY_POINT_ADDRESS', ENTRYPOINT_V06)
        self.entry_point_address = validate_address(self.entry_point_address, "EntryPoint address")

        if self.chain_id is None:
            chain_id = os.environ.get('CHAIN_ID', str(KAKAROT_CHAIN_ID))
            try:
                self.chain_id = int(chain_id, 0)
            except ValueError:
                raise ValueError(f"CHAIN_ID must be an integer, got {chain_id!r}")
        if isinstance(self.chain_id, bool) or not isinstance(self.chain_id, int) or self.chain_id < 0:
            raise ValueError(f"Invalid chain id: {self.chain_id!r}")
