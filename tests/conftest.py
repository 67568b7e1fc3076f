"""
Pytest fixtures for the greeter client tests
"""

import pytest

from blockchain.contract_binding import ContractBinding
from blockchain.models import ContractRef
from blockchain.transaction_tracker import TrackerConfig, TransactionTracker
from greeter.abi import get_minimal_greeter_abi
from tests.fakes import ALICE, GREETER_ADDRESS, FakeChainClient, FakeClock, FakeWallet


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_wallet():
    return FakeWallet(ALICE)


@pytest.fixture
def fake_chain():
    return FakeChainClient()


@pytest.fixture
def greeter_ref():
    return ContractRef(address=GREETER_ADDRESS, abi=get_minimal_greeter_abi(), version="1")


@pytest.fixture
def binding(fake_chain, greeter_ref):
    return ContractBinding(fake_chain, greeter_ref)


@pytest.fixture
def tracker_config():
    return TrackerConfig(
        initial_interval=1.0,
        backoff_factor=2.0,
        max_interval=4.0,
        max_attempts=20,
        timeout=30.0,
        unknown_grace_polls=2
    )


@pytest.fixture
def tracker(fake_chain, tracker_config, fake_clock):
    return TransactionTracker(fake_chain, tracker_config, sleep=fake_clock.sleep, clock=fake_clock)
