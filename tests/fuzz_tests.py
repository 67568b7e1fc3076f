"""
Fuzz Testing for the Greeter client
Tests edge cases and unexpected inputs
"""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from blockchain.contract_binding import ContractBinding
from blockchain.exceptions import DecodeError, InvalidGreeting
from blockchain.models import ContractRef, PendingTransaction, TransactionStatus
from blockchain.transaction_tracker import TrackerConfig, TransactionTracker, backoff_delays
from greeter.abi import get_minimal_greeter_abi
from greeter.core import validate_greeting
from tests.fakes import ALICE, GREETER_ADDRESS, FakeClock, FlakyNetwork, ScriptedChain, receipt


class TestBackoffFuzzing:
    """Fuzz test the polling schedule"""

    @given(
        initial=st.floats(min_value=0.01, max_value=10.0),
        factor=st.floats(min_value=1.0, max_value=5.0),
        cap_multiple=st.floats(min_value=1.0, max_value=100.0),
        attempts=st.integers(min_value=1, max_value=200)
    )
    def test_delays_are_bounded(self, initial, factor, cap_multiple, attempts):
        """Schedule is non-decreasing, capped and finite"""
        config = TrackerConfig(
            initial_interval=initial,
            backoff_factor=factor,
            max_interval=initial * cap_multiple,
            max_attempts=attempts
        )

        delays = list(backoff_delays(config))

        assert len(delays) == attempts
        assert delays[0] == initial
        assert all(d <= config.max_interval for d in delays)
        assert all(a <= b for a, b in zip(delays, delays[1:]))


class TestGreetingValidationFuzzing:
    """Fuzz test greeting validation"""

    @given(value=st.text())
    def test_text_input(self, value):
        """Only blank strings are rejected"""
        if value.strip():
            assert validate_greeting(value) == value
        else:
            with pytest.raises(InvalidGreeting):
                validate_greeting(value)

    @given(value=st.one_of(st.integers(), st.floats(), st.binary(), st.none(), st.lists(st.text())))
    def test_non_text_input(self, value):
        with pytest.raises(InvalidGreeting):
            validate_greeting(value)


class TestDecodingFuzzing:
    """Fuzz test return data decoding"""

    @given(data=st.binary(max_size=256))
    def test_random_return_data(self, data):
        """Garbage return data either decodes to a string or raises DecodeError"""
        binding = ContractBinding(None, ContractRef(GREETER_ADDRESS, get_minimal_greeter_abi()))

        try:
            value = binding.decode_result("greet", data)
        except DecodeError:
            return

        assert isinstance(value, str)


receipt_outcomes = st.one_of(
    st.none(),
    st.builds(receipt, confirmations=st.integers(min_value=0, max_value=6), succeeded=st.booleans()),
    st.builds(FlakyNetwork)
)


class TestTrackerFuzzing:
    """Fuzz test the tracker state machine"""

    @settings(max_examples=75, deadline=None)
    @given(
        outcomes=st.lists(receipt_outcomes, min_size=1, max_size=30),
        required=st.integers(min_value=1, max_value=4),
        known=st.booleans()
    )
    def test_exactly_one_terminal_event(self, outcomes, required, known):
        """Every poll sequence ends in exactly one terminal event, last"""
        config = TrackerConfig(
            confirmations_required=required,
            initial_interval=1.0,
            max_interval=4.0,
            max_attempts=25,
            timeout=40.0,
            unknown_grace_polls=2
        )

        async def run():
            clock = FakeClock()
            chain = ScriptedChain(outcomes, known=known)
            tracker = TransactionTracker(chain, config, sleep=clock.sleep, clock=clock)
            pending = PendingTransaction(tx_id="0xabc", account=ALICE, method="setGreet", args=("x",))

            tracked = tracker.track(pending)
            events = [event async for event in tracked.events()]
            polls = chain.polls

            await asyncio.sleep(0)
            return tracked, events, chain.polls - polls

        tracked, events, late_polls = asyncio.run(run())

        assert events
        assert sum(1 for e in events if e.is_terminal) == 1
        assert events[-1].is_terminal
        assert events[-1] is tracked.terminal_event
        assert all(e.status == TransactionStatus.PENDING for e in events[:-1])
        assert late_polls == 0

        if events[-1].status == TransactionStatus.CONFIRMED:
            assert events[-1].confirmations >= required


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
