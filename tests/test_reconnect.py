"""Tests for ReconnectPolicy."""

from __future__ import annotations

import asyncio

import pytest

from control_link.reconnect import ReconnectPolicy


def make_policy(**kwargs) -> ReconnectPolicy:
    options = {"interval": 1.0, "max_interval": 30.0, "max_attempts": 10}
    options.update(kwargs)
    return ReconnectPolicy(**options)


def test_delays_double_then_cap():
    """Test delays grow strictly until they reach the cap."""
    policy = make_policy(interval=3.0, max_interval=30.0)

    delays = [policy.delay_for(n) for n in range(1, 8)]

    assert delays == [3.0, 6.0, 12.0, 24.0, 30.0, 30.0, 30.0]


def test_delay_attempts_start_at_one():
    """Test attempt numbers are 1-based."""
    with pytest.raises(ValueError):
        make_policy().delay_for(0)


@pytest.mark.asyncio
async def test_schedule_fires_callback():
    """Test the scheduled callback runs after the delay."""
    policy = make_policy(interval=0.01, max_interval=0.01)
    fired = asyncio.Event()

    delay = policy.schedule(asyncio.get_running_loop(), fired.set)

    assert delay == 0.01
    assert policy.scheduled
    assert policy.attempts == 1
    await asyncio.wait_for(fired.wait(), 1.0)
    assert not policy.scheduled


@pytest.mark.asyncio
async def test_schedule_uses_increasing_delays():
    """Test consecutive schedules use the next delay."""
    policy = make_policy(interval=0.5, max_interval=1.5)
    loop = asyncio.get_running_loop()

    delays = [policy.schedule(loop, lambda: None) for _ in range(3)]
    policy.cancel()

    assert delays == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_exhausted():
    """Test scheduling stops at the attempt ceiling."""
    policy = make_policy(max_attempts=2)
    loop = asyncio.get_running_loop()

    assert policy.schedule(loop, lambda: None) is not None
    assert policy.schedule(loop, lambda: None) is not None
    assert policy.exhausted
    assert policy.schedule(loop, lambda: None) is None
    assert policy.attempts == 2
    policy.cancel()


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
    """Test a cancelled timer never fires."""
    policy = make_policy(interval=0.01, max_interval=0.01)
    fired = []

    policy.schedule(asyncio.get_running_loop(), lambda: fired.append(True))
    policy.cancel()
    policy.cancel()
    await asyncio.sleep(0.05)

    assert fired == []
    assert not policy.scheduled


def test_reset():
    """Test reset forgets previous attempts."""
    policy = make_policy(max_attempts=1)
    policy._attempts = 1
    assert policy.exhausted

    policy.reset()

    assert policy.attempts == 0
    assert not policy.exhausted


def test_zero_attempts_is_exhausted():
    """Test a ceiling of zero never schedules."""
    assert make_policy(max_attempts=0).exhausted
