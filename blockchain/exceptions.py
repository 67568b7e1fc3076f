"""
Error Taxonomy
Typed errors for contract reads, transaction submission and tracking
"""

from typing import Dict, Optional


class ChainInteractionError(Exception):
    """Base exception for every contract interaction failure"""

    retryable = False

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.details = details or {}


class NetworkError(ChainInteractionError):
    """Transport failure or timeout talking to the node"""

    retryable = True


class RevertError(ChainInteractionError):
    """Call or estimate executed and the contract rejected it"""


class RejectedByUser(ChainInteractionError):
    """Signing request declined in the wallet"""


class InsufficientFunds(ChainInteractionError):
    """Account cannot pay for gas"""


class EncodeError(ChainInteractionError):
    """Arguments do not match the interface descriptor"""


class DecodeError(ChainInteractionError):
    """Returned bytes do not match the expected output shape"""


class WriteAlreadyInFlight(ChainInteractionError):
    """A write for this account is still pending"""

    def __init__(self, account: str, tx_id: Optional[str] = None):
        super().__init__(
            f"Write already in flight for {account}",
            {'account': account, 'tx_id': tx_id}
        )
        self.account = account
        self.tx_id = tx_id


class TransactionFailed(ChainInteractionError):
    """Transaction was mined but execution reverted"""

    def __init__(self, tx_id: str, details: Optional[Dict] = None):
        super().__init__(f"Transaction {tx_id} reverted", details)
        self.tx_id = tx_id


class TransactionDropped(ChainInteractionError):
    """
    No receipt within the polling budget, or the node forgot the transaction.
    The outcome is ambiguous: it may still be mined later.
    """

    def __init__(self, tx_id: str, reason: str, details: Optional[Dict] = None):
        super().__init__(f"Transaction {tx_id} dropped: {reason}", details)
        self.tx_id = tx_id
        self.reason = reason


class WalletNotConnected(ChainInteractionError):
    """No account is connected"""


class InvalidGreeting(ChainInteractionError):
    """Greeting input rejected before submission"""


class ConfigError(ChainInteractionError):
    """Missing or malformed configuration"""


class ViewNotMounted(ChainInteractionError):
    """Write attempted while the greeter view is not mounted"""
