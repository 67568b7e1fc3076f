"""
Transaction Tracker
Polls for receipts with bounded backoff and reports lifecycle events
"""

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterator, Optional

from loguru import logger

from .chain_client import ChainClient
from .exceptions import NetworkError
from .models import (
    PendingTransaction,
    Receipt,
    TransactionEvent,
    TransactionStatus,
    can_transition,
)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class TrackerConfig:
    """Polling policy for one tracked transaction"""
    confirmations_required: int = 1
    initial_interval: float = 0.5
    backoff_factor: float = 2.0
    max_interval: float = 8.0
    max_attempts: int = 40
    expected_block_time: float = 2.0
    retry_budget: int = 60
    timeout: Optional[float] = None
    unknown_grace_polls: int = 3

    def __post_init__(self):
        if self.confirmations_required < 1:
            raise ValueError("confirmations_required must be at least 1")
        if self.initial_interval <= 0 or self.max_interval < self.initial_interval:
            raise ValueError("poll intervals must satisfy 0 < initial_interval <= max_interval")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def resolved_timeout(self) -> float:
        """Explicit timeout, or expected block time x retry budget"""
        if self.timeout is not None:
            return self.timeout
        return self.expected_block_time * self.retry_budget

    @classmethod
    def from_dict(cls, config: Dict) -> 'TrackerConfig':
        """Build from the `tracker` config section, ignoring unknown keys"""
        known = {name: config[name] for name in cls.__dataclass_fields__ if name in config}
        return cls(**known)


def backoff_delays(config: TrackerConfig) -> Iterator[float]:
    """
    Delays before each poll: exponential, capped, bounded in count

    Args:
        config: Tracker configuration

    Yields:
        Seconds to wait before the next poll
    """
    delay = config.initial_interval
    for _ in range(config.max_attempts):
        yield delay
        delay = min(delay * config.backoff_factor, config.max_interval)


class TrackedTransaction:
    """
    Handle for one tracked transaction.

    Events are delivered through an async iterator; the channel closes
    after the terminal event or on cancel. Nothing is emitted after that.
    """

    _CLOSED = object()

    def __init__(self, pending: PendingTransaction):
        self.pending = pending
        self.status = TransactionStatus.SUBMITTED
        self.confirmations = 0
        self.terminal_event: Optional[TransactionEvent] = None
        self.cancelled = False

        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def tx_id(self) -> str:
        return self.pending.tx_id

    @property
    def done(self) -> bool:
        return self._closed

    def _emit(self, event: TransactionEvent) -> bool:
        """Publish an event; refused once the channel is closed"""
        if self._closed:
            return False

        if not can_transition(self.status, event.status):
            logger.error(f"Invalid transition {self.status.value} -> {event.status.value} for {self.tx_id}")
            return False

        self.status = event.status
        self.confirmations = event.confirmations
        self._queue.put_nowait(event)

        if event.is_terminal:
            self.terminal_event = event
            self._close()

        return True

    def _close(self):
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    async def events(self) -> AsyncIterator[TransactionEvent]:
        """Iterate events until the terminal one (or cancellation)"""
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item

    async def wait(self) -> Optional[TransactionEvent]:
        """
        Wait for polling to finish

        Returns:
            Terminal event, or None if tracking was cancelled
        """
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self.cancelled:
                    raise
        return self.terminal_event

    def cancel(self):
        """Stop polling; no further events are emitted"""
        if self._closed:
            return

        self.cancelled = True
        self._close()

        if self._task is not None and not self._task.done():
            self._task.cancel()

        logger.debug(f"Tracking cancelled for {self.tx_id}")


class TransactionTracker:
    """
    Receipt poller. Trackers for different transactions share nothing
    but the chain client connection.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        config: Optional[TrackerConfig] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic
    ):
        """
        Initialize Transaction Tracker

        Args:
            chain_client: Chain Client used for receipt polls
            config: Polling policy
            sleep: Awaitable sleep (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self.chain_client = chain_client
        self.config = config or TrackerConfig()
        self.sleep = sleep
        self.clock = clock

        self.active: Dict[str, TrackedTransaction] = {}

        logger.info(
            f"Transaction Tracker initialized - confirmations: {self.config.confirmations_required}, "
            f"timeout: {self.config.resolved_timeout:.0f}s, max attempts: {self.config.max_attempts}"
        )

    def track(self, pending: PendingTransaction) -> TrackedTransaction:
        """
        Start polling for a submitted transaction

        Args:
            pending: Transaction to follow

        Returns:
            Handle exposing status and events
        """
        if pending.tx_id in self.active:
            return self.active[pending.tx_id]

        tracked = TrackedTransaction(pending)
        self.active[pending.tx_id] = tracked

        tracked._task = asyncio.create_task(self._run(tracked))
        tracked._task.add_done_callback(lambda _: self.active.pop(pending.tx_id, None))

        logger.info(f"Tracking {pending.tx_id} ({pending.method})")
        return tracked

    def cancel_all(self):
        """Tear down every active tracker"""
        for tracked in list(self.active.values()):
            tracked.cancel()
        self.active.clear()

    async def _run(self, tracked: TrackedTransaction):
        try:
            await self._poll(tracked)
        except Exception as e:
            # The handle must still reach a terminal state
            logger.exception(f"Tracker for {tracked.tx_id} crashed")
            self._drop(tracked, f"tracker error: {e}")

    async def _poll(self, tracked: TrackedTransaction):
        """Polling loop for one transaction"""
        started = self.clock()
        timeout = self.config.resolved_timeout
        unknown_polls = 0
        seen_receipt = False
        attempt = 0

        for attempt, delay in enumerate(backoff_delays(self.config), start=1):
            await self.sleep(delay)

            if tracked.done:
                return

            try:
                receipt = await self.chain_client.fetch_receipt(tracked.tx_id)
            except NetworkError as e:
                logger.warning(f"Receipt poll {attempt} for {tracked.tx_id} failed: {e}")
                continue

            if receipt is not None:
                seen_receipt = True
                unknown_polls = 0
                if self._apply_receipt(tracked, receipt):
                    return
                continue

            if seen_receipt:
                # Receipt vanished (reorg); keep waiting for re-inclusion
                logger.warning(f"Receipt for {tracked.tx_id} disappeared, waiting for re-inclusion")
            elif self.clock() - started >= timeout:
                self._drop(tracked, f"no receipt after {timeout:.0f}s")
                return

            try:
                known = await self.chain_client.is_transaction_known(tracked.tx_id)
            except NetworkError as e:
                logger.warning(f"Lookup of {tracked.tx_id} failed: {e}")
                continue

            unknown_polls = 0 if known else unknown_polls + 1
            if unknown_polls >= self.config.unknown_grace_polls:
                self._drop(tracked, "transaction unknown to node")
                return

        self._drop(tracked, f"no final receipt after {attempt} polls")

    def _apply_receipt(self, tracked: TrackedTransaction, receipt: Receipt) -> bool:
        """
        Move the state machine forward from a receipt

        Returns:
            True if a terminal state was reached
        """
        if not receipt.succeeded:
            logger.error(f"Transaction {tracked.tx_id} reverted in block {receipt.block_number}")
            tracked._emit(TransactionEvent(
                tx_id=tracked.tx_id,
                status=TransactionStatus.FAILED,
                confirmations=receipt.confirmations,
                receipt=receipt,
                reason="execution reverted"
            ))
            return True

        if receipt.confirmations >= self.config.confirmations_required:
            logger.success(
                f"Transaction {tracked.tx_id} confirmed in block {receipt.block_number} "
                f"({receipt.confirmations} confirmations)"
            )
            tracked._emit(TransactionEvent(
                tx_id=tracked.tx_id,
                status=TransactionStatus.CONFIRMED,
                confirmations=receipt.confirmations,
                receipt=receipt
            ))
            return True

        first_receipt = tracked.status == TransactionStatus.SUBMITTED
        if first_receipt or receipt.confirmations != tracked.confirmations:
            logger.debug(
                f"Transaction {tracked.tx_id} pending: "
                f"{receipt.confirmations}/{self.config.confirmations_required} confirmations"
            )
            tracked._emit(TransactionEvent(
                tx_id=tracked.tx_id,
                status=TransactionStatus.PENDING,
                confirmations=receipt.confirmations,
                receipt=receipt
            ))

        return False

    def _drop(self, tracked: TrackedTransaction, reason: str):
        logger.warning(f"Transaction {tracked.tx_id} dropped: {reason}")
        tracked._emit(TransactionEvent(
            tx_id=tracked.tx_id,
            status=TransactionStatus.DROPPED,
            confirmations=tracked.confirmations,
            reason=reason
        ))
