"""
Exceptions for the order lifecycle engine.

Every error carries ``submitted``: False means nothing reached the ledger,
True means a transaction was sent and may have had side effects (gas spent,
partial state committed) even though the operation failed.
"""

from typing import Any, Dict, Optional


class OrderEngineError(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        submitted: Whether a transaction was sent before the failure
        tx_hash: Hash of the transaction involved, if any
    """

    submitted: bool = False

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.message = message
        self.tx_hash = tx_hash
        super().__init__(message)


class ConfigurationError(OrderEngineError):
    """Invalid or incomplete configuration (addresses, token registry, ...)."""
    pass


class InvalidAmount(OrderEngineError, ValueError):
    """
    Amount outside the protocol's domain.

    Raised for negative, non-finite, unparseable or out-of-range (above
    uint256) amounts, and for zero where a positive amount is required.
    """

    def __init__(self, amount: Any, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InvalidOrder(OrderEngineError, ValueError):
    """An order field (address, taker) is malformed or missing."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid order field '{field}': {message}")


class UnknownToken(OrderEngineError, LookupError):
    """A token symbol or address is not present in the registry."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unknown token: {token}")


class OrderIntegrityError(OrderEngineError):
    """
    The order hash or signature no longer matches the order fields.

    Signed orders are frozen; a record that was altered after signing (or a
    serialized order whose hash disagrees with its fields) ends up here.
    """
    pass


class SigningError(OrderEngineError):
    """Base class for signing failures."""
    pass


class SigningUnavailable(SigningError):
    """The signing collaborator cannot sign for this address."""

    def __init__(self, address: str, message: str = "no signing key available"):
        self.address = address
        super().__init__(f"Cannot sign for {address}: {message}")


class SigningRejected(SigningError):
    """The signing collaborator explicitly declined to sign."""

    def __init__(self, address: str, message: str = "signature request rejected"):
        self.address = address
        super().__init__(f"Signing rejected for {address}: {message}")


class InvalidSignature(SigningError):
    """A produced signature does not recover the expected signer."""

    def __init__(self, order_hash: str, signer: str):
        self.order_hash = order_hash
        self.signer = signer
        super().__init__(f"Signature for {order_hash} does not recover {signer}")


class AllowanceInsufficient(OrderEngineError):
    """
    The proxy is not authorized to move enough of an owner's tokens.

    Attributes:
        token: Token contract address
        owner: Token owner address
        allowance: Allowance observed on the ledger
        required: Allowance that was needed
        side: "maker" or "taker" when known
    """

    def __init__(
        self,
        token: str,
        owner: str,
        allowance: int,
        required: int,
        side: Optional[str] = None,
        submitted: bool = False,
        tx_hash: Optional[str] = None,
    ):
        self.token = token
        self.owner = owner
        self.allowance = allowance
        self.required = required
        self.side = side
        self.submitted = submitted
        label = f"{side} " if side else ""
        super().__init__(
            f"Insufficient {label}allowance for {owner} on {token}: "
            f"have {allowance}, need {required}",
            tx_hash=tx_hash,
        )


class AllowancesInsufficient(AllowanceInsufficient):
    """
    Both parties lack allowance for a fill.

    Attributes:
        shortfalls: Mapping of side ("maker"/"taker") to its
            AllowanceInsufficient
    """

    def __init__(self, shortfalls: Dict[str, AllowanceInsufficient]):
        self.shortfalls = shortfalls
        first = next(iter(shortfalls.values()))
        self.token = first.token
        self.owner = first.owner
        self.allowance = first.allowance
        self.required = first.required
        self.side = None
        self.submitted = False
        details = "; ".join(str(e) for e in shortfalls.values())
        OrderEngineError.__init__(self, f"Insufficient allowance on {' and '.join(shortfalls)} sides: {details}")


class AllowanceSetupError(OrderEngineError):
    """
    One or both sides failed while ensuring allowances.

    Attributes:
        failures: Mapping of side ("maker"/"taker") to the exception raised
        receipts: Mapping of side to the receipt (or None for a no-op) for
            sides that succeeded
    """

    def __init__(self, failures: Dict[str, Exception], receipts: Dict[str, Any]):
        self.failures = failures
        self.receipts = receipts
        self.submitted = any(getattr(e, "submitted", False) for e in failures.values())
        sides = ", ".join(f"{side}: {err}" for side, err in failures.items())
        super().__init__(f"Allowance setup failed ({sides})")


class OrderNotFillable(OrderEngineError):
    """
    Local pre-check failed; nothing was submitted.

    Attributes:
        result: The FillCheckResult describing every issue found
    """

    def __init__(self, result: Any):
        self.result = result
        issues = ", ".join(issue.value for issue in result.issues)
        super().__init__(f"Order {result.order_hash} is not fillable: {issues}")


class FillRejected(OrderEngineError):
    """
    The exchange refused the fill.

    Raised when the node rejects the transaction at send time
    (``submitted`` False), when the mined transaction logged an exchange
    error (``submitted`` True, ``error_code`` set) or when the exchange
    reverted the fill (``submitted`` True, ``reverted`` True). Mined
    rejections carry the ``receipt``.

    ``precheck`` is the local FillCheckResult computed before submission;
    on a fill attempted despite a failing check it lists the issues found.
    """

    def __init__(
        self,
        reason: str,
        submitted: bool,
        error_code: Optional[int] = None,
        tx_hash: Optional[str] = None,
        receipt: Any = None,
        precheck: Any = None,
        reverted: bool = False,
    ):
        self.reason = reason
        self.submitted = submitted
        self.error_code = error_code
        self.receipt = receipt
        self.precheck = precheck
        self.reverted = reverted
        super().__init__(f"Fill rejected: {reason}", tx_hash=tx_hash)


class TransactionTimeout(OrderEngineError):
    """
    The transaction was not mined within the wait timeout.

    For fills, ``precheck`` holds the local FillCheckResult.
    """

    submitted = True
    precheck: Any = None

    def __init__(self, tx_hash: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Transaction {tx_hash} not mined after {timeout:.1f}s", tx_hash=tx_hash
        )


class TransactionReverted(OrderEngineError):
    """The transaction was mined with a failure status."""

    submitted = True

    def __init__(self, receipt: Any):
        self.receipt = receipt
        super().__init__(
            f"Transaction {receipt.tx_hash} reverted in block {receipt.block_number}",
            tx_hash=receipt.tx_hash,
        )


class LedgerError(OrderEngineError):
    """Base class for failures talking to the ledger node."""
    pass


class LedgerConnectionError(LedgerError):
    """Network or HTTP failure reaching the JSON-RPC endpoint."""
    pass


class LedgerRPCError(LedgerError):
    """
    JSON-RPC error object returned by the node.

    Attributes:
        code: JSON-RPC error code
        data: Optional error data payload
    """

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")
        self.message = message
