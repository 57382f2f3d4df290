"""Unit tests for connection settings and polling policies."""

from typing import Any

import pytest
from pydantic import ValidationError as PydanticValidationError

import config
from config import ConnectConfig, load_connect_config
from core.polling import PollPolicy, RetryPolicy


def test_load_connect_config_reads_environment_values(monkeypatch: Any) -> None:
    monkeypatch.setattr(config, "LHV_BASE_URL", "https://connect.lhv.eu/")
    monkeypatch.setattr(config, "LHV_CLIENT_CODE", " 12345 ")
    monkeypatch.setattr(config, "LHV_INTERFACE_IP", "  ")
    monkeypatch.setattr(config, "LHV_POLL_TIMEOUT_SECONDS", 45.0)

    loaded = load_connect_config()

    assert loaded.base_url == "https://connect.lhv.eu"
    assert loaded.client_code == "12345"
    assert loaded.interface_ip is None
    assert loaded.poll_timeout_seconds == 45.0


@pytest.mark.parametrize("overrides", [{"client_code": ""}, {"base_url": " "}, {"poll_timeout_seconds": 0}])
def test_invalid_config_is_rejected(overrides: dict) -> None:
    values = {"base_url": "https://connect.test", "client_code": "X"}
    values.update(overrides)

    with pytest.raises(PydanticValidationError):
        ConnectConfig(**values)


def test_config_is_immutable(connect_config: ConnectConfig) -> None:
    with pytest.raises(PydanticValidationError):
        connect_config.client_code = "OTHER"


def test_poll_policy_timeout_override_and_fixed_interval() -> None:
    policy = PollPolicy(timeout_seconds=30, interval_seconds=1)

    assert policy.with_timeout(None) is policy
    assert policy.with_timeout(5).timeout_seconds == 5.0
    assert policy.next_interval(1.0) == 1.0
    assert policy.sleep_for(1.0, remaining=0.25) == 0.25


def test_poll_policy_jitter_stays_within_bounds() -> None:
    policy = PollPolicy(interval_seconds=1, jitter_seconds=0.5)

    delays = [policy.sleep_for(1.0, remaining=10) for _ in range(20)]

    assert all(1.0 <= d <= 1.5 for d in delays)


def test_retry_policy_backoff_is_linear() -> None:
    assert [RetryPolicy().delay_for(a) for a in (1, 2)] == [2.0, 4.0]
