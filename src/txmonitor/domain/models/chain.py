from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TransactionLike:
    """Transaction as returned by the chain while pending or mined."""

    hash: str
    nonce: int
    input: str
    block_hash: Optional[str] = None
    block_number: Optional[int] = None


@dataclass(frozen=True)
class ReceiptLike:
    """Chain-provided outcome of a mined transaction."""

    transaction_hash: str
    status: bool
    block_number: Optional[int]
    block_hash: Optional[str] = None
    gas_used: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExternalTx:
    """One entry of an account's explorer history."""

    nonce: int
    hash: str
    call_data: str
