import pytest

from user_operations import LocalAccountSigner, create_init_code, create_user_operation

# Demo values; never used outside the test suite
OWNER_PRIVATE_KEY = "0x054ba307210c75ee6438cf0b4afa7d9f243f1de4a562e078597b178ded1c8d32"
ENTRY_POINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
SMART_ACCOUNT = "0x1111111111111111111111111111111111111111"
FACTORY = "0x2222222222222222222222222222222222222222"
BENEFICIARY = "0x433704c40f80cbff02e86fd36bc8bac5e31eb0c1"
CHAIN_ID = 1802203764

# createAccount(owner, salt)
FACTORY_DATA = bytes.fromhex(
    "5fbfb9cf"
    "0000000000000000000000000503f3dc17c544a92ed0ae9666000c9b6ee59112"
    "0000000000000000000000000000000000000000000000000000000000000000"
)

EMPTY_KECCAK = bytes.fromhex("c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470")


@pytest.fixture
def signer():
    return LocalAccountSigner(OWNER_PRIVATE_KEY)


@pytest.fixture
def user_operation():
    return create_user_operation(
        sender=SMART_ACCOUNT,
        nonce=0,
        init_code=create_init_code(FACTORY, FACTORY_DATA),
    )


@pytest.fixture
def zero_user_operation():
    return create_user_operation(
        sender="0x0000000000000000000000000000000000000001",
        call_gas_limit=0,
        verification_gas_limit=0,
        pre_verification_gas=0,
        max_fee_per_gas=0,
        max_priority_fee_per_gas=0,
    )
