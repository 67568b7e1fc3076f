"""
Wallet Session
Seam to the wallet-connection collaborator that owns accounts and signing
"""

from typing import Callable, Dict, List, Optional, Protocol

from loguru import logger

AccountListener = Callable[[Optional[str]], None]


class WalletSession(Protocol):
    """
    Capability supplied by the wallet-connection layer.

    The interaction core only reads the current account, listens for
    account changes and hands unsigned transactions over for signing.
    Nonce ordering and signing stay on the wallet side.
    """

    @property
    def account(self) -> Optional[str]: ...

    def subscribe(self, listener: AccountListener) -> Callable[[], None]: ...

    async def send_transaction(self, tx: Dict) -> str: ...


class AccountNotifier:
    """Fan-out of account-change notifications to subscribers"""

    def __init__(self):
        self._listeners: List[AccountListener] = []

    def subscribe(self, listener: AccountListener) -> Callable[[], None]:
        """
        Register an account-change listener

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, account: Optional[str]):
        logger.info(f"Account changed: {account or 'disconnected'}")
        for listener in list(self._listeners):
            listener(account)
