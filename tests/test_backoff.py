# tests/test_backoff.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from collab_tasklist.connection.backoff import ReconnectPolicy


def test_default_schedule_is_linear_and_capped() -> None:
    policy = ReconnectPolicy()
    assert policy.schedule() == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0]

    capped = ReconnectPolicy(max_attempts=40)
    delays = capped.schedule()
    assert max(delays) == 30.0
    assert all(a <= b for a, b in zip(delays, delays[1:]))


def test_exhausted_at_max_attempts() -> None:
    policy = ReconnectPolicy(max_attempts=2)
    assert not policy.exhausted(1)
    assert policy.exhausted(2)
    assert ReconnectPolicy(max_attempts=0).exhausted(0)


def test_from_settings() -> None:
    settings = SimpleNamespace(
        reconnect_base_delay=0.5,
        reconnect_step=0.25,
        reconnect_max_delay=1.0,
        max_reconnect_attempts=4,
    )
    assert ReconnectPolicy.from_settings(settings).schedule() == [0.5, 0.75, 1.0, 1.0]


def test_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        ReconnectPolicy(base_delay=-1)
    with pytest.raises(ValueError):
        ReconnectPolicy(max_attempts=-1)
