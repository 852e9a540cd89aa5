"""
Unit tests for the expired auth-state cleanup job.
"""

from app.models import OneTimeCode, RateLimitWindow
from app.services.cleanup_service import run_cleanup, RATE_LIMIT_RETENTION
from app.services.otp_service import OneTimeCodeStore
from app.services.rate_limit_service import RateLimiter, RateLimitOperation


def test_retention_covers_longest_window():
    assert RATE_LIMIT_RETENTION.total_seconds() >= RateLimitOperation.VERIFY_OTP.policy.window_seconds
    assert RATE_LIMIT_RETENTION.total_seconds() >= 3600


def test_cleanup_removes_stale_state(session, clock):
    limiter = RateLimiter(session, clock=clock)
    store = OneTimeCodeStore(session, limiter, clock=clock)

    store.issue('old@example.com')
    clock.advance(hours=2)
    store.issue('new@example.com')

    result = run_cleanup(session, clock=clock)

    assert result == {'one_time_codes': 1, 'rate_limit_windows': 1}
    assert [c.email for c in session.query(OneTimeCode).all()] == ['new@example.com']
    assert [w.identifier for w in session.query(RateLimitWindow).all()] == ['new@example.com']


def test_active_windows_are_kept(session, clock):
    limiter = RateLimiter(session, clock=clock)
    limiter.check(RateLimitOperation.VERIFY_OTP, 'person@example.com')
    clock.advance(minutes=30)

    assert run_cleanup(session, clock=clock)['rate_limit_windows'] == 0
    assert session.query(RateLimitWindow).count() == 1


def test_second_run_deletes_nothing(session, clock):
    store = OneTimeCodeStore(session, RateLimiter(session, clock=clock), clock=clock)
    store.issue('person@example.com')
    clock.advance(days=1)

    first = run_cleanup(session, clock=clock)
    second = run_cleanup(session, clock=clock)

    assert first == {'one_time_codes': 1, 'rate_limit_windows': 1}
    assert second == {'one_time_codes': 0, 'rate_limit_windows': 0}


def test_empty_tables(session, clock):
    assert run_cleanup(session, clock=clock) == {'one_time_codes': 0, 'rate_limit_windows': 0}
