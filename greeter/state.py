"""
Greeter View State
Snapshots handed to the presentation layer
"""

from dataclasses import dataclass, field
from typing import Optional

from blockchain.exceptions import ChainInteractionError


@dataclass(frozen=True)
class ReadState:
    """Displayed greeting: { value, isLoading, error }"""
    value: Optional[str] = None
    is_loading: bool = False
    error: Optional[ChainInteractionError] = None
    block_number: Optional[int] = None

    @property
    def is_stale(self) -> bool:
        return self.error is not None and self.value is not None


@dataclass(frozen=True)
class WriteState:
    """Greeting update: { pending, error }"""
    pending: bool = False
    error: Optional[ChainInteractionError] = None
    tx_id: Optional[str] = None
    confirmations: int = 0


@dataclass(frozen=True)
class GreeterState:
    read: ReadState = field(default_factory=ReadState)
    write: WriteState = field(default_factory=WriteState)
