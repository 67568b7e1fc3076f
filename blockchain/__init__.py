"""
Blockchain Interaction Package
Handles read calls, transaction submission and receipt tracking
"""

from .chain_client import ChainClient
from .contract_binding import ContractBinding
from .transaction_tracker import TrackedTransaction, TrackerConfig, TransactionTracker

__all__ = [
    'ChainClient',
    'ContractBinding',
    'TrackedTransaction',
    'TrackerConfig',
    'TransactionTracker'
]
