"""
Chain Client
Read-call, submission and receipt primitives over one node connection
"""

import asyncio
from typing import Dict, Optional, Union

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception
from loguru import logger

from wallet.session import WalletSession
from .exceptions import (
    ChainInteractionError,
    InsufficientFunds,
    NetworkError,
    RejectedByUser,
    RevertError,
    WalletNotConnected,
)
from .models import Receipt

BlockIdentifier = Union[int, str]

USER_REJECTION_MARKERS = ('user rejected', 'user denied', 'rejected by user')


def _classify_error(e: Exception, operation: str) -> Optional[ChainInteractionError]:
    """
    Translate web3 / transport exceptions into the interaction taxonomy

    Args:
        e: Raised exception
        operation: Name of the primitive that failed (for details)

    Returns:
        Mapped error, or None when the exception is not a chain error
    """
    if isinstance(e, ChainInteractionError):
        return e

    details = {'operation': operation, 'cause': str(e)}

    if isinstance(e, ContractLogicError):
        return RevertError(f"{operation} reverted: {e}", details)

    if isinstance(e, (asyncio.TimeoutError, aiohttp.ClientError, OSError)):
        return NetworkError(f"{operation} failed: {str(e) or type(e).__name__}", details)

    if not isinstance(e, (Web3Exception, ValueError)):
        return None

    message = str(e).lower()

    if 'insufficient funds' in message:
        return InsufficientFunds(f"{operation}: insufficient funds for gas", details)
    if any(marker in message for marker in USER_REJECTION_MARKERS):
        return RejectedByUser(f"{operation}: signing declined", details)
    if 'revert' in message:
        return RevertError(f"{operation} reverted: {e}", details)

    # Any other JSON-RPC level error is treated as a node problem
    return NetworkError(f"{operation} failed: {e}", details)


class ChainClient:
    """
    Thin async wrapper over a node connection.

    Never retries: every failure is surfaced to the caller as a
    ChainInteractionError. Read calls are safe to run concurrently;
    submission ordering belongs to the wallet session.
    """

    def __init__(self, w3: AsyncWeb3, wallet: WalletSession, read_timeout: float = 5.0):
        """
        Initialize Chain Client

        Args:
            w3: AsyncWeb3 instance
            wallet: Wallet session that signs and broadcasts
            read_timeout: Seconds before a read call is abandoned
        """
        self.w3 = w3
        self.wallet = wallet
        self.read_timeout = read_timeout

        self.stats = {
            'calls': 0,
            'submissions': 0,
            'receipt_polls': 0,
            'failures': 0
        }

        logger.info(f"Chain Client initialized (read timeout: {read_timeout}s)")

    @staticmethod
    def create_web3(rpc_url: str, request_timeout: float = 10.0) -> AsyncWeb3:
        """
        Build an AsyncWeb3 on an HTTP provider with provider retries disabled

        Args:
            rpc_url: JSON-RPC endpoint
            request_timeout: Per-request HTTP timeout in seconds
        """
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': aiohttp.ClientTimeout(total=request_timeout)},
            exception_retry_configuration=None
        )
        return AsyncWeb3(provider)

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.read_timeout)

    def _fail(self, e: Exception, operation: str) -> ChainInteractionError:
        error = _classify_error(e, operation)
        if error is None:
            raise e
        self.stats['failures'] += 1
        logger.debug(f"{operation} failed: {error}")
        return error

    async def is_connected(self) -> bool:
        """Check if the node answers"""
        try:
            return await self._bounded(self.w3.is_connected())
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError):
            return False

    async def block_number(self) -> int:
        """
        Get current head block number

        Returns:
            Latest block height
        """
        try:
            return await self._bounded(self.w3.eth.block_number)
        except Exception as e:
            raise self._fail(e, 'block_number') from e

    async def call(
        self,
        address: str,
        data: bytes,
        block_identifier: BlockIdentifier = 'latest'
    ) -> bytes:
        """
        Execute a read-only call (eth_call)

        Args:
            address: Contract address
            data: Encoded calldata (selector + arguments)
            block_identifier: Block to execute against

        Returns:
            Raw return data
        """
        self.stats['calls'] += 1

        try:
            result = await self._bounded(
                self.w3.eth.call(
                    {'to': Web3.to_checksum_address(address), 'data': Web3.to_hex(data)},
                    block_identifier
                )
            )
        except Exception as e:
            raise self._fail(e, 'call') from e

        return bytes(result)

    async def submit(self, address: str, data: bytes, account: Optional[str]) -> str:
        """
        Estimate gas and hand a transaction to the wallet for signing

        Args:
            address: Contract address
            data: Encoded calldata
            account: Sending account; must be the connected one

        Returns:
            Transaction hash (0x-prefixed hex)
        """
        if account is None or account != self.wallet.account:
            raise WalletNotConnected(f"Account {account} is not the connected account")

        self.stats['submissions'] += 1

        tx: Dict = {
            'from': account,
            'to': Web3.to_checksum_address(address),
            'data': Web3.to_hex(data),
            'value': 0
        }

        try:
            tx['gas'] = await self._bounded(self.w3.eth.estimate_gas(tx))
            tx['gasPrice'] = await self._bounded(self.w3.eth.gas_price)

            tx_id = await self.wallet.send_transaction(tx)
        except Exception as e:
            raise self._fail(e, 'submit') from e

        logger.info(f"Submitted transaction {tx_id} to {tx['to']}")
        return tx_id

    async def fetch_receipt(self, tx_id: str) -> Optional[Receipt]:
        """
        Poll for a transaction receipt without waiting

        Args:
            tx_id: Transaction hash

        Returns:
            Receipt with confirmation count, or None if not mined yet
        """
        self.stats['receipt_polls'] += 1

        try:
            raw = await self._bounded(self.w3.eth.get_transaction_receipt(tx_id))
        except TransactionNotFound:
            return None
        except Exception as e:
            raise self._fail(e, 'fetch_receipt') from e

        if raw is None or raw.get('blockNumber') is None:
            return None

        head = await self.block_number()
        mined_in = raw['blockNumber']

        return Receipt(
            tx_id=tx_id,
            block_number=mined_in,
            succeeded=raw.get('status') == 1,
            confirmations=max(0, head - mined_in + 1),
            gas_used=raw.get('gasUsed', 0)
        )

    async def is_transaction_known(self, tx_id: str) -> bool:
        """
        Check whether the node still knows a transaction (mempool or chain)

        Args:
            tx_id: Transaction hash
        """
        try:
            tx = await self._bounded(self.w3.eth.get_transaction(tx_id))
        except TransactionNotFound:
            return False
        except Exception as e:
            raise self._fail(e, 'get_transaction') from e

        return tx is not None

    def get_stats(self) -> Dict:
        """Get request counters"""
        return self.stats.copy()
