"""
Unit Tests for the Transaction Tracker
"""

import asyncio

import pytest

from blockchain.models import PendingTransaction, TransactionEvent, TransactionStatus
from blockchain.transaction_tracker import TrackerConfig, TransactionTracker, backoff_delays
from tests.fakes import ALICE, FlakyNetwork, ScriptedChain, receipt


def make_pending(tx_id: str = "0xabc") -> PendingTransaction:
    return PendingTransaction(tx_id=tx_id, account=ALICE, method="setGreet", args=("world",))


async def collect(tracked):
    return [event async for event in tracked.events()]


@pytest.fixture
def make_tracker(tracker_config, fake_clock):
    """Build a tracker over a scripted receipt source"""
    def _make(chain, config: TrackerConfig = None):
        return TransactionTracker(chain, config or tracker_config, sleep=fake_clock.sleep, clock=fake_clock)
    return _make


class TestTrackerConfig:
    """Polling policy"""

    def test_backoff_is_exponential_and_capped(self, tracker_config):
        delays = list(backoff_delays(tracker_config))

        assert delays[:4] == [1.0, 2.0, 4.0, 4.0]
        assert len(delays) == tracker_config.max_attempts
        assert max(delays) == tracker_config.max_interval

    def test_default_timeout_from_block_time(self):
        config = TrackerConfig(expected_block_time=12.0, retry_budget=10)

        assert config.resolved_timeout == 120.0

    def test_explicit_timeout_wins(self):
        assert TrackerConfig(timeout=5.0).resolved_timeout == 5.0

    def test_from_dict_ignores_unknown_keys(self):
        config = TrackerConfig.from_dict({'confirmations_required': 3, 'comment': 'x'})

        assert config.confirmations_required == 3

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            TrackerConfig(confirmations_required=0)

        with pytest.raises(ValueError):
            TrackerConfig(initial_interval=5.0, max_interval=1.0)


class TestTransitions:
    """State machine"""

    @pytest.mark.asyncio
    async def test_confirmed(self, make_tracker):
        tracked = make_tracker(ScriptedChain([None, receipt(1)])).track(make_pending())

        events = await collect(tracked)

        assert [e.status for e in events] == [TransactionStatus.CONFIRMED]
        assert tracked.status == TransactionStatus.CONFIRMED
        assert events[0].receipt.succeeded

    @pytest.mark.asyncio
    async def test_pending_until_threshold(self, make_tracker, tracker_config):
        config = TrackerConfig(**{**tracker_config.__dict__, 'confirmations_required': 3})
        chain = ScriptedChain([None, receipt(1), receipt(1), receipt(2), receipt(3)])

        events = await collect(make_tracker(chain, config).track(make_pending()))

        assert [(e.status, e.confirmations) for e in events] == [
            (TransactionStatus.PENDING, 1),
            (TransactionStatus.PENDING, 2),
            (TransactionStatus.CONFIRMED, 3),
        ]

    @pytest.mark.asyncio
    async def test_reverted(self, make_tracker):
        events = await collect(make_tracker(ScriptedChain([receipt(succeeded=False)])).track(make_pending()))

        assert [e.status for e in events] == [TransactionStatus.FAILED]
        assert events[0].reason == "execution reverted"

    @pytest.mark.asyncio
    async def test_dropped_after_timeout(self, make_tracker, fake_clock):
        tracked = make_tracker(ScriptedChain([None])).track(make_pending())

        events = await collect(tracked)

        assert [e.status for e in events] == [TransactionStatus.DROPPED]
        assert "no receipt" in events[0].reason
        assert fake_clock.now >= 30.0

    @pytest.mark.asyncio
    async def test_dropped_when_node_forgets(self, make_tracker):
        chain = ScriptedChain([None], known=False)

        events = await collect(make_tracker(chain).track(make_pending()))

        assert [e.status for e in events] == [TransactionStatus.DROPPED]
        assert "unknown" in events[0].reason
        assert chain.polls == 2

    @pytest.mark.asyncio
    async def test_dropped_when_attempts_exhausted(self, make_tracker, tracker_config):
        config = TrackerConfig(**{
            **tracker_config.__dict__,
            'confirmations_required': 2,
            'max_attempts': 3
        })
        chain = ScriptedChain([receipt(1)])

        events = await collect(make_tracker(chain, config).track(make_pending()))

        assert [e.status for e in events] == [TransactionStatus.PENDING, TransactionStatus.DROPPED]
        assert chain.polls == 3

    @pytest.mark.asyncio
    async def test_network_errors_are_tolerated(self, make_tracker):
        chain = ScriptedChain([FlakyNetwork(), FlakyNetwork(), receipt(1)])

        events = await collect(make_tracker(chain).track(make_pending()))

        assert [e.status for e in events] == [TransactionStatus.CONFIRMED]
        assert chain.polls == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_still_terminates(self, make_tracker):
        chain = ScriptedChain([RuntimeError("boom")])

        events = await collect(make_tracker(chain).track(make_pending()))

        assert [e.status for e in events] == [TransactionStatus.DROPPED]
        assert "tracker error" in events[0].reason


class TestTeardown:
    """Idempotent shutdown and cancellation"""

    @pytest.mark.asyncio
    async def test_no_events_after_terminal(self, make_tracker):
        chain = ScriptedChain([receipt(1)])
        tracked = make_tracker(chain).track(make_pending())

        await tracked.wait()
        polls = chain.polls
        accepted = tracked._emit(TransactionEvent(tx_id="0xabc", status=TransactionStatus.DROPPED))

        assert not accepted
        assert tracked.status == TransactionStatus.CONFIRMED
        assert [e.status for e in await collect(tracked)] == [TransactionStatus.CONFIRMED]

        await asyncio.sleep(0)
        assert chain.polls == polls

    @pytest.mark.asyncio
    async def test_cancel_stops_polling_silently(self, make_tracker):
        chain = ScriptedChain([None])
        tracker = make_tracker(chain)
        tracked = tracker.track(make_pending())

        for _ in range(3):
            await asyncio.sleep(0)
        tracked.cancel()
        polls = chain.polls

        assert await tracked.wait() is None
        assert await collect(tracked) == []
        assert tracked.done and tracked.cancelled
        assert chain.polls == polls
        assert "0xabc" not in tracker.active

    @pytest.mark.asyncio
    async def test_cancel_all(self, make_tracker):
        tracker = make_tracker(ScriptedChain([None]))
        first = tracker.track(make_pending("0x01"))
        second = tracker.track(make_pending("0x02"))

        tracker.cancel_all()

        assert first.cancelled and second.cancelled
        assert tracker.active == {}

    @pytest.mark.asyncio
    async def test_track_same_id_returns_same_handle(self, make_tracker):
        tracker = make_tracker(ScriptedChain([None]))

        assert tracker.track(make_pending()) is tracker.track(make_pending())
        tracker.cancel_all()

    @pytest.mark.asyncio
    async def test_trackers_are_independent(self, fake_clock, tracker_config):
        class PerTxChain:
            async def fetch_receipt(self, tx_id):
                return receipt(1, succeeded=(tx_id == "0x01"), tx_id=tx_id)

            async def is_transaction_known(self, tx_id):
                return True

        tracker = TransactionTracker(PerTxChain(), tracker_config, sleep=fake_clock.sleep, clock=fake_clock)
        ok = tracker.track(make_pending("0x01"))
        bad = tracker.track(make_pending("0x02"))

        ok_events, bad_events = await asyncio.gather(collect(ok), collect(bad))

        assert [e.status for e in ok_events] == [TransactionStatus.CONFIRMED]
        assert [e.status for e in bad_events] == [TransactionStatus.FAILED]


class TestResubmission:
    """Dropped transactions come back under a new identifier"""

    def test_resubmitted_gets_new_id(self):
        original = make_pending("0x01")
        replacement = original.resubmitted("0x02")

        assert replacement.tx_id == "0x02"
        assert replacement.replaces == "0x01"
        assert replacement.args == original.args

    def test_resubmission_cannot_reuse_id(self):
        with pytest.raises(ValueError):
            make_pending("0x01").resubmitted("0x01")


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
