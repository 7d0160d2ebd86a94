"""
Execution module for the order lifecycle.
"""
from .orders import (
    OrderSigner,
    TransactionWaiter,
    AllowanceManager,
    FillIssue,
    FillCheckResult,
    FillValidator,
    FillExecutor,
    OrderManager,
)

__all__ = [
    "OrderSigner",
    "TransactionWaiter",
    "AllowanceManager",
    "FillIssue",
    "FillCheckResult",
    "FillValidator",
    "FillExecutor",
    "OrderManager",
]
