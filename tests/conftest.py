"""
Shared pytest fixtures for unit tests.

The real `config` module only reads the environment, so tests build `ConnectConfig` directly instead of stubbing it.
"""

import pytest

from config import ConnectConfig
from fakes import BASE_URL, FakeBank, FakeClock


@pytest.fixture
def connect_config() -> ConnectConfig:
    return ConnectConfig(base_url=f"{BASE_URL}/", client_code="TESTCLIENT", client_country="EE")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bank(clock: FakeClock) -> FakeBank:
    return FakeBank(clock=clock)
