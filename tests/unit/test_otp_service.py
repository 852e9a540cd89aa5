"""
Unit tests for one-time code issue and verification.
"""

import pytest

from app.exceptions import RateLimitedError
from app.models import OneTimeCode
from app.services.otp_service import OneTimeCodeStore, hash_code
from app.services.rate_limit_service import RateLimiter


@pytest.fixture
def store(session, clock):
    return OneTimeCodeStore(session, RateLimiter(session, clock=clock), ttl_minutes=10, clock=clock)


def _wrong(code):
    return str((int(code) + 1) % 1000000).zfill(6)


class TestIssue:

    def test_code_is_six_digits(self, store):
        code = store.issue('person@example.com')
        assert len(code) == 6
        assert code.isdigit()

    def test_only_digest_is_stored(self, store, session):
        code = store.issue('Person@Example.com ')

        row = session.query(OneTimeCode).one()
        assert row.email == 'person@example.com'
        assert row.code_hash == hash_code(code)
        assert code not in row.code_hash

    def test_new_code_invalidates_previous(self, store):
        first = store.issue('person@example.com')
        second = store.issue('person@example.com')

        if first != second:
            assert store.verify('person@example.com', first) is False
        assert store.verify('person@example.com', second) is True

    def test_send_limit(self, store):
        for _ in range(3):
            store.issue('person@example.com')

        with pytest.raises(RateLimitedError):
            store.issue('person@example.com')

    def test_send_limit_is_per_email(self, store):
        for _ in range(3):
            store.issue('person@example.com')

        assert store.issue('other@example.com')


class TestVerify:

    def test_code_is_single_use(self, store):
        code = store.issue('person@example.com')

        assert store.verify('person@example.com', code) is True
        assert store.verify('person@example.com', code) is False

    def test_email_is_case_insensitive(self, store):
        code = store.issue('person@example.com')
        assert store.verify('  PERSON@example.COM', code) is True

    def test_code_bound_to_email(self, store):
        code = store.issue('person@example.com')
        assert store.verify('someone-else@example.com', code) is False
        assert store.verify('person@example.com', code) is True

    def test_wrong_code(self, store):
        code = store.issue('person@example.com')
        assert store.verify('person@example.com', _wrong(code)) is False

    def test_expired_code(self, store, clock):
        code = store.issue('person@example.com')

        clock.advance(minutes=10, seconds=1)
        assert store.verify('person@example.com', code) is False

    def test_code_valid_until_expiry(self, store, clock):
        code = store.issue('person@example.com')

        clock.advance(minutes=9, seconds=59)
        assert store.verify('person@example.com', code) is True

    def test_empty_inputs(self, store):
        assert store.verify('person@example.com', '') is False
        assert store.verify('', '123456') is False

    def test_attempts_are_limited_before_code_check(self, store):
        code = store.issue('person@example.com')
        for _ in range(5):
            assert store.verify('person@example.com', _wrong(code)) is False

        # Correct code, but over the limit
        with pytest.raises(RateLimitedError) as exc_info:
            store.verify('person@example.com', code)
        assert exc_info.value.retry_after > 0

    def test_limit_resets_after_window(self, store, clock):
        for _ in range(5):
            store.verify('person@example.com', '000000')

        clock.advance(minutes=16)
        code = store.issue('person@example.com')
        assert store.verify('person@example.com', code) is True


class TestConcurrentVerify:

    def test_same_code_is_consumed_once(self, store, clock, run_in_threads):
        code = store.issue('person@example.com')

        def verify(thread_session):
            limiter = RateLimiter(thread_session, clock=clock)
            return OneTimeCodeStore(thread_session, limiter, clock=clock).verify('person@example.com', code)

        results = run_in_threads(5, verify)

        assert results.count(True) == 1
        assert results.count(False) == 4

    def test_attempts_past_the_limit_are_rejected(self, store, clock, run_in_threads):
        code = store.issue('person@example.com')

        def verify(thread_session):
            limiter = RateLimiter(thread_session, clock=clock)
            return OneTimeCodeStore(thread_session, limiter, clock=clock).verify('person@example.com', code)

        results = run_in_threads(8, verify)

        assert results.count(True) == 1
        assert results.count(False) == 4
        assert sum(isinstance(r, RateLimitedError) for r in results) == 3


class TestPurgeExpired:

    def test_removes_expired_and_consumed(self, store, session, clock):
        used = store.issue('used@example.com')
        store.verify('used@example.com', used)
        store.issue('expired@example.com')
        clock.advance(minutes=11)
        store.issue('fresh@example.com')

        deleted = store.purge_expired()
        session.commit()

        assert deleted == 2
        assert [r.email for r in session.query(OneTimeCode).all()] == ['fresh@example.com']
