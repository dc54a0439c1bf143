from typing import Final
from enum import StrEnum

# Every delegation lives in the system contract's delband table, scoped by the delegator
SYSTEM_ACCOUNT: Final = "eosio"
DELBAND_TABLE: Final = "delband"
UNDELEGATE_ACTION: Final = "undelegatebw"
DEFAULT_PERMISSION: Final = "cpustake"

TABLE_PAGE_LIMIT: Final = 10_000
TABLE_FIRST_KEY: Final = "0"

# Config floors are decimals, amounts on chain carry 8 decimal places
AMOUNT_SCALE: Final = 100_000_000


class BatchState(StrEnum):
    BUILT      = "BUILT"
    SUBMITTED  = "SUBMITTED"
    VALIDATING = "VALIDATING"
    VALIDATED  = "VALIDATED"
    RESUBMIT   = "RESUBMIT"


TX_EXPIRATION_SECONDS = 55 * 60  # comfortably inside the chain's max transaction lifetime
SCAN_RETRY_DELAY = 1.0
TX_OPTIONS_RETRY_DELAY = 0.005
SETTLE_DELAY = 1.5
GRACE_DELAY = 3.5
RPC_TIMEOUT = 10.0

__all__ = [
    "AMOUNT_SCALE",
    "DEFAULT_PERMISSION",
    "DELBAND_TABLE",
    "GRACE_DELAY",
    "RPC_TIMEOUT",
    "SCAN_RETRY_DELAY",
    "SETTLE_DELAY",
    "SYSTEM_ACCOUNT",
    "TABLE_FIRST_KEY",
    "TABLE_PAGE_LIMIT",
    "TX_EXPIRATION_SECONDS",
    "TX_OPTIONS_RETRY_DELAY",
    "UNDELEGATE_ACTION",

    ######
    "BatchState",
]
