"""
Wallet Package
Wallet-connection seam, local key-backed session and nonce allocation
"""

from .session import WalletSession, AccountNotifier
from .local_session import LocalWalletSession
from .nonce_manager import NonceManager

__all__ = ['WalletSession', 'AccountNotifier', 'LocalWalletSession', 'NonceManager']
