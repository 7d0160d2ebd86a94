"""
Order lifecycle module.

Provides hashing, signing, allowance management, fill validation,
fill execution and confirmation waiting.
"""
from .hasher import pack_order_fields, encode_order, hash_order, order_hash_hex
from .signer import OrderSigner, is_valid_signature, personal_message_hash
from .waiter import TransactionWaiter
from .allowance import AllowanceManager
from .validator import FillIssue, FillCheckResult, FillValidator
from .executor import FillExecutor
from .manager import OrderManager

__all__ = [
    # Hashing
    "pack_order_fields",
    "encode_order",
    "hash_order",
    "order_hash_hex",
    # Signing
    "OrderSigner",
    "is_valid_signature",
    "personal_message_hash",
    # Components
    "TransactionWaiter",
    "AllowanceManager",
    "FillIssue",
    "FillCheckResult",
    "FillValidator",
    "FillExecutor",
    "OrderManager",
]
