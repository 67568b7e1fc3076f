"""
Greeter Interaction Core
Orchestrates reading and updating the greeting and mirrors it into view state
"""

import asyncio
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from loguru import logger

from blockchain.contract_binding import ContractBinding
from blockchain.exceptions import (
    ChainInteractionError,
    DecodeError,
    EncodeError,
    InvalidGreeting,
    TransactionDropped,
    TransactionFailed,
    ViewNotMounted,
    WalletNotConnected,
    WriteAlreadyInFlight,
)
from blockchain.models import (
    PendingTransaction,
    ReadResult,
    TransactionEvent,
    TransactionStatus,
)
from blockchain.transaction_tracker import TrackedTransaction, TransactionTracker
from wallet.session import WalletSession
from .abi import READ_METHOD, WRITE_METHOD
from .state import GreeterState, ReadState, WriteState

StateListener = Callable[[GreeterState], None]


def validate_greeting(value) -> str:
    """
    Check a greeting before it is sent

    Args:
        value: User input

    Returns:
        The greeting, unchanged
    """
    if not isinstance(value, str):
        raise InvalidGreeting(f"Greeting must be a string, got {type(value).__name__}")
    if not value.strip():
        raise InvalidGreeting("Greeting must not be empty")
    return value


class GreeterCore:
    """
    Owns the displayed greeting and the in-flight writes.

    - Reads never block on writes and keep the last good value on failure.
    - At most one write per account; a second one is rejected, not queued.
    - A confirmed write triggers a fresh read; the submitted value is never
      displayed directly.
    - Account changes and unmount cancel trackers and clear read state so
      nothing from an old session leaks into the new one.
    """

    def __init__(
        self,
        binding: ContractBinding,
        wallet: WalletSession,
        tracker: TransactionTracker,
        read_method: str = READ_METHOD,
        write_method: str = WRITE_METHOD
    ):
        """
        Initialize Greeter Core

        Args:
            binding: Contract binding for the Greeter contract
            wallet: Wallet session supplying the account
            tracker: Transaction tracker for submitted writes
            read_method: View function returning the greeting
            write_method: Function setting the greeting
        """
        self.binding = binding
        self.wallet = wallet
        self.tracker = tracker
        self.read_method = read_method
        self.write_method = write_method

        self.read_state = ReadState()
        self.write_state = WriteState()
        self.mounted = False

        self._listeners: List[StateListener] = []
        self._unsubscribe_wallet: Optional[Callable[[], None]] = None
        self._account: Optional[str] = wallet.account

        # Session state, reset on account change or unmount
        self._epoch = 0
        self._read_seq = 0
        self._reads_outstanding = 0
        self._in_flight: Dict[str, PendingTransaction] = {}
        self._submitting: Set[str] = set()
        self._trackers: Dict[str, TrackedTransaction] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._dropped: Optional[PendingTransaction] = None

        logger.info(f"Greeter Core initialized for {binding.contract.address}")

    # ---------------------------------------------------------------- state

    @property
    def state(self) -> GreeterState:
        return GreeterState(read=self.read_state, write=self.write_state)

    @property
    def last_read_block(self) -> Optional[int]:
        return self.read_state.block_number

    def in_flight(self, account: str) -> Optional[PendingTransaction]:
        """In-flight write for an account, if any"""
        return self._in_flight.get(account)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a presentation listener, called with every new snapshot

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self):
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # Listener failures never abort a state change
                logger.exception(f"Greeter state listener {listener!r} failed")

    def _set_read(self, **changes):
        self.read_state = replace(self.read_state, **changes)
        self._publish()

    def _set_write(self, **changes):
        self.write_state = replace(self.write_state, **changes)
        self._publish()

    # ------------------------------------------------------------ lifecycle

    async def mount(self) -> Optional[ReadResult]:
        """Start listening for account changes and load the greeting"""
        if not self.mounted:
            self.mounted = True
            self._account = self.wallet.account
            self._unsubscribe_wallet = self.wallet.subscribe(self._on_account_changed)
            logger.debug("Greeter view mounted")

        return await self.get_greeter()

    def unmount(self):
        """Stop listening and tear down every tracker"""
        if not self.mounted:
            return

        self.mounted = False
        if self._unsubscribe_wallet is not None:
            self._unsubscribe_wallet()
            self._unsubscribe_wallet = None

        self._reset_session()
        logger.debug("Greeter view unmounted")

    def _reset_session(self):
        self._epoch += 1
        self._reads_outstanding = 0

        for tracked in self._trackers.values():
            tracked.cancel()
        for task in list(self._tasks):
            task.cancel()

        self._trackers.clear()
        self._tasks.clear()
        self._in_flight.clear()
        self._submitting.clear()
        self._dropped = None

    def _on_account_changed(self, account: Optional[str]):
        if account == self._account:
            return

        logger.info(f"Account switched from {self._account} to {account}; resetting greeter state")
        self._account = account
        self._reset_session()

        self.read_state = ReadState()
        self.write_state = WriteState()
        self._publish()

        if self.mounted:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                return
            self._spawn(self.get_greeter())

    async def wait_idle(self):
        """Wait until every background refresh and write follower has finished"""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_task_failure)
        return task

    @staticmethod
    def _log_task_failure(task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Background greeter task failed: {error}")

    # ----------------------------------------------------------------- read

    async def get_greeter(self) -> Optional[ReadResult]:
        """
        Read the current greeting

        On a network or revert error the previous value stays displayed and
        the error is surfaced in the read state. Encode/decode errors are
        surfaced and re-raised: they mean the binding is wrong.

        Returns:
            ReadResult on success, None on a surfaced error
        """
        epoch = self._epoch
        self._read_seq += 1
        seq = self._read_seq

        self._reads_outstanding += 1
        self._set_read(is_loading=True)

        outcome = {}
        try:
            outcome['result'] = await self.binding.read(self.read_method)
        except (EncodeError, DecodeError) as e:
            outcome['error'] = e
            logger.error(f"Greeting read failed, binding mismatch: {e}")
            raise
        except ChainInteractionError as e:
            outcome['error'] = e
            logger.warning(f"Greeting read failed, keeping last value: {e}")
            return None
        finally:
            self._finish_read(epoch, seq, **outcome)

        return outcome['result']

    def _finish_read(
        self,
        epoch: int,
        seq: int,
        result: Optional[ReadResult] = None,
        error: Optional[ChainInteractionError] = None
    ):
        if epoch != self._epoch:
            return

        self._reads_outstanding = max(0, self._reads_outstanding - 1)
        changes = {'is_loading': self._reads_outstanding > 0}

        # Only the most recently issued read may update what is displayed
        if seq == self._read_seq:
            if result is not None:
                changes.update(value=result.value, block_number=result.block_number, error=None)
            elif error is not None:
                changes['error'] = error

        self._set_read(**changes)

    # ---------------------------------------------------------------- write

    async def set_greeter(self, value: str) -> PendingTransaction:
        """
        Submit a new greeting

        The displayed value does not change until the write is confirmed
        and a fresh read returns.

        Args:
            value: New greeting

        Returns:
            The PendingTransaction now being tracked
        """
        validate_greeting(value)
        self._require_mounted()
        account = self._require_free_account()

        return await self._submit(account, (value,))

    async def retry_dropped(self) -> PendingTransaction:
        """
        Resubmit the last dropped greeting under a new transaction

        Returns:
            The replacement PendingTransaction
        """
        self._require_mounted()
        previous = self._dropped
        if previous is None:
            raise ChainInteractionError("No dropped transaction to resubmit")

        account = self._require_free_account()
        if account != previous.account:
            raise WalletNotConnected(f"Dropped transaction belongs to {previous.account}")

        return await self._submit(account, previous.args, previous=previous)

    def _require_mounted(self):
        # Account-change teardown only runs while mounted
        if not self.mounted:
            raise ViewNotMounted("Mount the greeter view before updating the greeting")

    def _require_free_account(self) -> str:
        account = self.wallet.account
        if account is None:
            raise WalletNotConnected("Connect a wallet to update the greeting")

        if account in self._submitting or account in self._in_flight:
            current = self._in_flight.get(account)
            logger.warning(f"Rejected second write for {account}")
            raise WriteAlreadyInFlight(account, current.tx_id if current else None)

        return account

    async def _submit(
        self,
        account: str,
        args: Sequence,
        previous: Optional[PendingTransaction] = None
    ) -> PendingTransaction:
        epoch = self._epoch
        self._submitting.add(account)

        try:
            tx_id = await self.binding.write(self.write_method, list(args), account)
        except ChainInteractionError as e:
            if epoch == self._epoch:
                self._set_write(pending=False, error=e, tx_id=None, confirmations=0)
            logger.error(f"Greeting submission failed: {e}")
            raise
        finally:
            if epoch == self._epoch:
                self._submitting.discard(account)

        if previous is not None:
            pending = previous.resubmitted(tx_id)
        else:
            pending = PendingTransaction(
                tx_id=tx_id,
                account=account,
                method=self.write_method,
                args=tuple(args)
            )

        if epoch != self._epoch:
            logger.warning(f"Session changed while submitting {tx_id}; not tracking it")
            return pending

        self._in_flight[account] = pending
        self._dropped = None

        tracked = self.tracker.track(pending)
        self._trackers[tx_id] = tracked
        self._spawn(self._follow(pending, tracked, epoch))

        self._set_write(pending=True, error=None, tx_id=tx_id, confirmations=0)
        return pending

    async def _follow(self, pending: PendingTransaction, tracked: TrackedTransaction, epoch: int):
        """Consume tracker events for one write"""
        async for event in tracked.events():
            if epoch != self._epoch:
                return

            if event.status == TransactionStatus.PENDING:
                self._set_write(confirmations=event.confirmations)
            elif event.status == TransactionStatus.CONFIRMED:
                await self._on_confirmed(pending, event, epoch)
            elif event.status == TransactionStatus.FAILED:
                self._on_write_failed(pending, event, TransactionFailed(
                    pending.tx_id,
                    {'block_number': event.receipt.block_number if event.receipt else None}
                ))
            elif event.status == TransactionStatus.DROPPED:
                self._dropped = pending
                self._on_write_failed(pending, event, TransactionDropped(pending.tx_id, event.reason))

    async def _on_confirmed(self, pending: PendingTransaction, event: TransactionEvent, epoch: int):
        logger.success(f"Greeting update {pending.tx_id} confirmed; refreshing from chain")
        try:
            await self.get_greeter()
        except ChainInteractionError as e:
            # Already surfaced in read state
            logger.debug(f"Refresh after {pending.tx_id} failed: {e}")
        finally:
            if epoch == self._epoch:
                self._release(pending)
                self._set_write(pending=False, error=None, confirmations=event.confirmations)

    def _on_write_failed(
        self,
        pending: PendingTransaction,
        event: TransactionEvent,
        error: ChainInteractionError
    ):
        logger.error(f"Greeting update {pending.tx_id} ended {event.status.value}: {error}")
        self._release(pending)
        self._set_write(pending=False, error=error, confirmations=event.confirmations)

    def _release(self, pending: PendingTransaction):
        if self._in_flight.get(pending.account) == pending:
            del self._in_flight[pending.account]
        self._trackers.pop(pending.tx_id, None)
