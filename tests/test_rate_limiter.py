"""Tests for the extraction call throttle."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from pdgm_engine import rate_limiter
from pdgm_engine.rate_limiter import RateLimiter


def test_first_call_does_not_wait():
    assert RateLimiter(requests_per_minute=60).wait() == 0.0


def test_back_to_back_calls_are_spaced(monkeypatch):
    """The second call sleeps out the remainder of the minimum gap."""
    clock = [1000.0]
    sleeps = []
    monkeypatch.setattr(rate_limiter.time, "monotonic", lambda: clock[0])
    monkeypatch.setattr(rate_limiter.time, "sleep", sleeps.append)

    limiter = RateLimiter(requests_per_minute=30)
    limiter.wait()
    clock[0] += 0.5
    slept = limiter.wait()

    assert slept == pytest.approx(1.5)
    assert sleeps == [pytest.approx(1.5)]


def test_zero_rate_disables_throttling(monkeypatch):
    sleeps = []
    monkeypatch.setattr(rate_limiter.time, "sleep", sleeps.append)

    limiter = RateLimiter(requests_per_minute=0)
    for _ in range(5):
        limiter.wait()

    assert sleeps == []


def test_negative_rate_rejected():
    with pytest.raises(ValueError):
        RateLimiter(requests_per_minute=-1)


def test_configure_rate_limit_replaces_shared_limiter(monkeypatch):
    monkeypatch.setattr(rate_limiter, "_limiter", rate_limiter._limiter)
    rate_limiter.configure_rate_limit(0)
    assert rate_limiter._limiter.min_gap == 0.0
    assert rate_limiter.wait_for_rate_limit() == 0.0
