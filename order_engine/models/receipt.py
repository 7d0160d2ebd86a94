"""
Transaction receipts returned by the ledger.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass(frozen=True)
class LogEntry:
    """Event log emitted by a transaction."""
    address: str
    topics: List[str] = field(default_factory=list)
    data: str = "0x"

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "LogEntry":
        return cls(
            address=raw.get("address", "").lower(),
            topics=[t.lower() for t in raw.get("topics", [])],
            data=raw.get("data", "0x"),
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """
    Mined transaction receipt.

    ``status`` is None for pre-Byzantium receipts, which carry no status;
    those are treated as successful.
    """
    tx_hash: str
    block_number: int
    status: Optional[int]
    gas_used: Optional[int] = None
    logs: List[LogEntry] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status is None or self.status == 1

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "TransactionReceipt":
        return cls(
            tx_hash=raw["transactionHash"],
            block_number=_to_int(raw.get("blockNumber")) or 0,
            status=_to_int(raw.get("status")),
            gas_used=_to_int(raw.get("gasUsed")),
            logs=[LogEntry.from_rpc(log) for log in raw.get("logs", [])],
            raw=raw,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "status": self.status,
            "gas_used": self.gas_used,
            "logs": [
                {"address": log.address, "topics": log.topics, "data": log.data}
                for log in self.logs
            ],
        }


@dataclass(frozen=True)
class FillReceipt(TransactionReceipt):
    """
    Receipt of a mined fill, with the local pre-check that preceded it.

    ``precheck`` is the FillCheckResult computed before submission. When
    the fill was attempted despite a failing check, its issues stay
    visible here.
    """
    precheck: Any = field(default=None, compare=False)

    @property
    def precheck_passed(self) -> bool:
        return self.precheck is None or self.precheck.is_fillable

    @classmethod
    def from_receipt(cls, receipt: TransactionReceipt, precheck: Any) -> "FillReceipt":
        return cls(
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            status=receipt.status,
            gas_used=receipt.gas_used,
            logs=receipt.logs,
            raw=receipt.raw,
            precheck=precheck,
        )
