"""
Ledger-facing collaborators.

Exports:
    - JsonRpcClient: Async JSON-RPC ledger provider
    - ProtocolAddressRegistry / TokenInfo: Contract and token addresses
    - Exceptions: Error taxonomy

Signing collaborators live in order_engine.api.signers and contract
wrappers in order_engine.api.contracts; both depend on order_engine.models.

Example:
    from order_engine.api import JsonRpcClient
    from order_engine.api.signers import LedgerSigner

    async with JsonRpcClient("http://localhost:8545") as ledger:
        signer = LedgerSigner(ledger)
"""

from order_engine.api.rpc_client import JsonRpcClient
from order_engine.api.registry import ProtocolAddressRegistry, TokenInfo
from order_engine.api.exceptions import (
    OrderEngineError,
    ConfigurationError,
    InvalidAmount,
    InvalidOrder,
    UnknownToken,
    OrderIntegrityError,
    SigningError,
    SigningUnavailable,
    SigningRejected,
    InvalidSignature,
    AllowanceInsufficient,
    AllowancesInsufficient,
    AllowanceSetupError,
    OrderNotFillable,
    FillRejected,
    TransactionTimeout,
    TransactionReverted,
    LedgerError,
    LedgerConnectionError,
    LedgerRPCError,
)

__all__ = [
    # Ledger
    "JsonRpcClient",
    "ProtocolAddressRegistry",
    "TokenInfo",
    # Exceptions
    "OrderEngineError",
    "ConfigurationError",
    "InvalidAmount",
    "InvalidOrder",
    "UnknownToken",
    "OrderIntegrityError",
    "SigningError",
    "SigningUnavailable",
    "SigningRejected",
    "InvalidSignature",
    "AllowanceInsufficient",
    "AllowancesInsufficient",
    "AllowanceSetupError",
    "OrderNotFillable",
    "FillRejected",
    "TransactionTimeout",
    "TransactionReverted",
    "LedgerError",
    "LedgerConnectionError",
    "LedgerRPCError",
]
