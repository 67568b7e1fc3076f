"""
Chain Models
Immutable records shared by the client, binding and tracker
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class ContractRef:
    """Deployed contract address plus its interface descriptor"""
    address: str
    abi: List[Dict] = field(compare=False, repr=False)
    version: str = "1"


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """
    Value observed by a read call and the block it was read at.

    Two results for the same call are only comparable by block height;
    heights are not assumed monotonic across reorgs.
    """
    value: T
    block_number: int


@dataclass(frozen=True)
class Receipt:
    """Inclusion record of a mined transaction"""
    tx_id: str
    block_number: int
    succeeded: bool
    confirmations: int
    gas_used: int = 0


@dataclass(frozen=True)
class PendingTransaction:
    """A submitted write waiting for a terminal status"""
    tx_id: str
    account: str
    method: str
    args: Tuple[Any, ...]
    submitted_at: float = field(default_factory=time.time)
    replaces: Optional[str] = None

    def resubmitted(self, new_tx_id: str) -> 'PendingTransaction':
        """
        Successor of a dropped transaction sent again under a new hash

        Args:
            new_tx_id: Hash of the replacement transaction

        Returns:
            New PendingTransaction pointing back at this one
        """
        if new_tx_id == self.tx_id:
            raise ValueError(f"Resubmission must use a new identifier, got {new_tx_id}")

        return replace(
            self,
            tx_id=new_tx_id,
            submitted_at=time.time(),
            replaces=self.tx_id
        )


class TransactionStatus(str, Enum):
    """Lifecycle states of a tracked transaction"""
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    DROPPED = "DROPPED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransactionStatus.CONFIRMED,
    TransactionStatus.FAILED,
    TransactionStatus.DROPPED,
})

# PENDING -> PENDING carries a changed confirmation count
VALID_TRANSITIONS: Dict[TransactionStatus, List[TransactionStatus]] = {
    TransactionStatus.SUBMITTED: [
        TransactionStatus.PENDING,
        TransactionStatus.CONFIRMED,
        TransactionStatus.FAILED,
        TransactionStatus.DROPPED,
    ],
    TransactionStatus.PENDING: [
        TransactionStatus.PENDING,
        TransactionStatus.CONFIRMED,
        TransactionStatus.FAILED,
        TransactionStatus.DROPPED,
    ],
    TransactionStatus.CONFIRMED: [],
    TransactionStatus.FAILED: [],
    TransactionStatus.DROPPED: [],
}


def can_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    """Check a status change against the transition table"""
    return new in VALID_TRANSITIONS.get(current, [])


@dataclass(frozen=True)
class TransactionEvent:
    """State change reported by the tracker"""
    tx_id: str
    status: TransactionStatus
    confirmations: int = 0
    receipt: Optional[Receipt] = None
    reason: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
