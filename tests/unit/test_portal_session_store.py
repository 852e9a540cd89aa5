"""
Unit tests for portal session issue / validate / revoke and login links.
"""

from datetime import timedelta

import pytest

from app.exceptions import NotFoundError
from app.models import PortalClient
from app.services.portal_session_service import PortalSessionStore, hash_session_token
from app.utils.clock import as_utc


def _flip_one_bit(token: str) -> str:
    first = chr(ord(token[0]) ^ 1)
    return first + token[1:]


class TestIssueSession:

    def test_returns_raw_token_and_stores_only_hash(self, session, portal_client1, clock):
        store = PortalSessionStore(session, clock=clock)
        raw_token, expires_at = store.issue_session(portal_client1.id)

        session.expire_all()
        row = session.get(PortalClient, portal_client1.id)
        assert row.session_token_hash == hash_session_token(raw_token)
        assert row.session_token_hash != raw_token
        assert raw_token not in (row.session_token_hash or '')
        assert as_utc(row.session_expires_at) == expires_at
        assert as_utc(row.last_login_at) == clock.now

    def test_expiry_is_ttl_from_now(self, session, portal_client1, clock):
        store = PortalSessionStore(session, ttl_hours=24, clock=clock)
        _, expires_at = store.issue_session(portal_client1.id)
        assert (expires_at - clock.now).total_seconds() == 24 * 3600

    def test_tokens_are_unique(self, session, portal_client1):
        store = PortalSessionStore(session)
        tokens = {store.issue_session(portal_client1.id)[0] for _ in range(5)}
        assert len(tokens) == 5

    def test_token_has_256_bits(self, session, portal_client1):
        raw_token, _ = PortalSessionStore(session).issue_session(portal_client1.id)
        # urlsafe base64 of 32 bytes
        assert len(raw_token) >= 43

    def test_unknown_client(self, session):
        with pytest.raises(NotFoundError):
            PortalSessionStore(session).issue_session(123456)

    def test_new_session_replaces_previous(self, session, portal_client1):
        store = PortalSessionStore(session)
        old_token, _ = store.issue_session(portal_client1.id)
        new_token, _ = store.issue_session(portal_client1.id)

        assert store.validate(portal_client1.id, old_token) is None
        assert store.validate(portal_client1.id, new_token).id == portal_client1.id


class TestValidate:

    def test_valid_pair(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)
        assert store.validate(portal_client1.id, raw_token).id == portal_client1.id

    def test_bit_flipped_token(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)
        assert store.validate(portal_client1.id, _flip_one_bit(raw_token)) is None

    def test_token_of_other_client(self, session, portal_client1, portal_client2):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)
        assert store.validate(portal_client2.id, raw_token) is None

    def test_missing_values(self, session, portal_client1):
        store = PortalSessionStore(session)
        assert store.validate(portal_client1.id, None) is None
        assert store.validate(portal_client1.id, '') is None
        assert store.validate(None, 'token') is None

    def test_expired_session(self, session, portal_client1, clock):
        store = PortalSessionStore(session, ttl_hours=24, clock=clock)
        raw_token, _ = store.issue_session(portal_client1.id)

        clock.advance(hours=23, minutes=59)
        assert store.validate(portal_client1.id, raw_token) is not None

        clock.advance(minutes=2)
        assert store.validate(portal_client1.id, raw_token) is None

    def test_inactive_client(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)

        portal_client1.is_active = False
        session.commit()

        assert store.validate(portal_client1.id, raw_token) is None


class TestRevoke:

    def test_revoke_clears_session(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)

        assert store.revoke(portal_client1.id, raw_token) is True
        assert store.validate(portal_client1.id, raw_token) is None

        session.expire_all()
        row = session.get(PortalClient, portal_client1.id)
        assert row.session_token_hash is None
        assert row.session_expires_at is None

    def test_revoke_is_idempotent(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)

        assert store.revoke(portal_client1.id, raw_token) is True
        assert store.revoke(portal_client1.id, raw_token) is True

    def test_wrong_token_does_not_revoke(self, session, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_session(portal_client1.id)

        assert store.revoke(portal_client1.id, _flip_one_bit(raw_token)) is True
        assert store.validate(portal_client1.id, raw_token) is not None

    def test_revoke_unknown_client(self, session):
        assert PortalSessionStore(session).revoke(424242, 'whatever') is True


class TestMagicLink:

    def test_stores_only_hash_with_expiry(self, session, portal_client1, clock):
        store = PortalSessionStore(session, clock=clock)
        raw_token, expires_at = store.issue_magic_link(portal_client1.id, ttl_minutes=30)

        session.expire_all()
        row = session.get(PortalClient, portal_client1.id)
        assert row.magic_link_token_hash == hash_session_token(raw_token)
        assert as_utc(row.magic_link_expires_at) == expires_at == clock.now + timedelta(minutes=30)

    def test_consume_is_single_use(self, session, tenant1, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_magic_link(portal_client1.id)

        assert store.consume_magic_link(tenant1.id, raw_token) == portal_client1.id
        assert store.consume_magic_link(tenant1.id, raw_token) is None

        session.expire_all()
        row = session.get(PortalClient, portal_client1.id)
        assert row.magic_link_token_hash is None
        assert row.magic_link_expires_at is None

    def test_expired_link(self, session, tenant1, portal_client1, clock):
        store = PortalSessionStore(session, clock=clock)
        raw_token, _ = store.issue_magic_link(portal_client1.id, ttl_minutes=60)

        clock.advance(minutes=61)
        assert store.consume_magic_link(tenant1.id, raw_token) is None

    def test_link_bound_to_tenant(self, session, tenant2, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_magic_link(portal_client1.id)

        assert store.consume_magic_link(tenant2.id, raw_token) is None

    def test_inactive_client(self, session, tenant1, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_magic_link(portal_client1.id)
        portal_client1.is_active = False
        session.commit()

        assert store.consume_magic_link(tenant1.id, raw_token) is None

    def test_new_link_replaces_previous(self, session, tenant1, portal_client1):
        store = PortalSessionStore(session)
        old_token, _ = store.issue_magic_link(portal_client1.id)
        new_token, _ = store.issue_magic_link(portal_client1.id)

        assert store.consume_magic_link(tenant1.id, old_token) is None
        assert store.consume_magic_link(tenant1.id, new_token) == portal_client1.id

    def test_wrong_or_missing_token(self, session, tenant1, portal_client1):
        store = PortalSessionStore(session)
        raw_token, _ = store.issue_magic_link(portal_client1.id)

        assert store.consume_magic_link(tenant1.id, _flip_one_bit(raw_token)) is None
        assert store.consume_magic_link(tenant1.id, '') is None
        assert store.consume_magic_link(tenant1.id, raw_token) == portal_client1.id

    def test_unknown_client(self, session):
        with pytest.raises(NotFoundError):
            PortalSessionStore(session).issue_magic_link(123456)

    def test_concurrent_use_succeeds_once(self, session, tenant1, portal_client1, run_in_threads):
        raw_token, _ = PortalSessionStore(session).issue_magic_link(portal_client1.id)
        tenant_id = tenant1.id

        results = run_in_threads(
            4, lambda thread_session: PortalSessionStore(thread_session).consume_magic_link(tenant_id, raw_token)
        )

        assert results.count(portal_client1.id) == 1
        assert results.count(None) == 3
