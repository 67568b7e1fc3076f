"""
Local Wallet Session
Key-backed wallet used when no browser wallet is in the loop
"""

import asyncio
import os
from typing import Callable, Dict, Optional

from web3 import AsyncWeb3, Web3
from eth_account import Account
from loguru import logger
from dotenv import load_dotenv

from blockchain.exceptions import ConfigError, RejectedByUser, WalletNotConnected
from .nonce_manager import NonceManager
from .session import AccountNotifier

load_dotenv()

ApprovalCallback = Callable[[Dict], bool]


class LocalWalletSession(AccountNotifier):
    """
    Signs with a private key from the environment and broadcasts raw transactions.

    Submissions are serialized so nonces go out in order.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        approve: Optional[ApprovalCallback] = None,
        private_key_env: str = 'PRIVATE_KEY'
    ):
        """
        Initialize Local Wallet Session

        Args:
            w3: AsyncWeb3 instance used for nonces, chain id and broadcast
            approve: Called with every transaction before signing; False declines
            private_key_env: Environment variable holding the signing key
        """
        super().__init__()
        self.w3 = w3
        self.approve = approve
        self.private_key_env = private_key_env

        self._account = None
        self._nonce_manager: Optional[NonceManager] = None
        self._chain_id: Optional[int] = None
        self._send_lock = asyncio.Lock()

    @property
    def account(self) -> Optional[str]:
        return self._account.address if self._account else None

    def connect(self, private_key: Optional[str] = None) -> str:
        """
        Load the signing key and announce the account

        Args:
            private_key: Hex key; read from the environment when omitted

        Returns:
            Connected address
        """
        key = private_key or os.getenv(self.private_key_env)
        if not key:
            raise ConfigError(f"{self.private_key_env} must be set in .env")

        self._account = Account.from_key(key)
        self._nonce_manager = NonceManager(self.w3, self._account.address)

        logger.info(f"Wallet connected: {self._account.address}")
        self._notify(self._account.address)
        return self._account.address

    def disconnect(self):
        """Drop the key and announce the disconnect"""
        if self._account is None:
            return

        self._account = None
        self._nonce_manager = None
        self._notify(None)

    async def send_transaction(self, tx: Dict) -> str:
        """
        Sign and broadcast a transaction for the connected account

        Args:
            tx: Unsigned transaction (from, to, data, value, gas, gasPrice)

        Returns:
            Transaction hash (0x-prefixed hex)
        """
        if self._account is None:
            raise WalletNotConnected("No account connected")

        sender = Web3.to_checksum_address(tx.get('from', self._account.address))
        if sender != self._account.address:
            raise WalletNotConnected(f"Account {sender} is not connected")

        if self.approve is not None and not self.approve(tx):
            raise RejectedByUser("Transaction declined", {'to': tx.get('to')})

        async with self._send_lock:
            if self._chain_id is None:
                self._chain_id = await self.w3.eth.chain_id

            nonce = await self._nonce_manager.get_nonce()
            to_sign = dict(tx, nonce=nonce, chainId=self._chain_id)

            try:
                signed_tx = self._account.sign_transaction(to_sign)
                tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            except Exception:
                await self._nonce_manager.reset_nonce()
                raise

        logger.info(f"Transaction broadcast: {Web3.to_hex(tx_hash)} (nonce {nonce})")
        return Web3.to_hex(tx_hash)
