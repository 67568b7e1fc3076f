"""
Nonce Manager
Sequential nonce allocation for the locally signing account
"""

import asyncio
from typing import Optional

from web3 import AsyncWeb3, Web3
from loguru import logger


class NonceManager:
    """
    Hands out nonces for one account, synced lazily from the node
    """

    def __init__(self, w3: AsyncWeb3, address: str):
        """
        Initialize Nonce Manager

        Args:
            w3: AsyncWeb3 instance
            address: Account the nonces belong to
        """
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)

        self.current_nonce: Optional[int] = None
        self.lock = asyncio.Lock()

    async def _sync_nonce(self):
        """Sync nonce with the node, counting pending transactions"""
        self.current_nonce = await self.w3.eth.get_transaction_count(
            self.address,
            'pending'
        )
        logger.debug(f"Nonce synced for {self.address}: {self.current_nonce}")

    async def get_nonce(self) -> int:
        """
        Get next available nonce

        Returns:
            Next nonce to use
        """
        async with self.lock:
            if self.current_nonce is None:
                await self._sync_nonce()

            nonce = self.current_nonce
            self.current_nonce += 1

            logger.debug(f"Allocated nonce: {nonce}")
            return nonce

    async def reset_nonce(self):
        """Forget the local counter so the next allocation resyncs"""
        async with self.lock:
            self.current_nonce = None
            logger.warning(f"Nonce reset for {self.address}")
