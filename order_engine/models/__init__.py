from .units import (
    UINT256_MAX,
    AmountConverter,
    to_base_units,
    from_base_units,
)
from .order import (
    NULL_ADDRESS,
    OrderRecord,
    ECSignature,
    SignedOrder,
    generate_salt,
)
from .receipt import FillReceipt, LogEntry, TransactionReceipt

__all__ = [
    "UINT256_MAX",
    "AmountConverter",
    "to_base_units",
    "from_base_units",
    "NULL_ADDRESS",
    "OrderRecord",
    "ECSignature",
    "SignedOrder",
    "generate_salt",
    "LogEntry",
    "TransactionReceipt",
    "FillReceipt",
]
