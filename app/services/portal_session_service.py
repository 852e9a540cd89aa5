"""
Portal session store.

Issues opaque session tokens to portal clients. Only the sha256 digest
of a token is persisted, so a database read never yields a usable
credential. Raw tokens are returned once by issue_session() and must
never be logged.
"""
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models import PortalClient
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits of entropy


def hash_session_token(raw_token: str) -> str:
    """One-way, deterministic digest of a raw session token (hex sha256)."""
    return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()


class PortalSessionStore:
    """Portal client sessions and single-use login links."""

    def __init__(self, session: Session, ttl_hours: int = 24, clock=utcnow):
        self.session = session
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    def issue_session(self, client_id: int) -> Tuple[str, object]:
        """
        Start a new session for a portal client, replacing any previous one.

        Args:
            client_id: Portal client id

        Returns:
            (raw_token, expires_at)

        Raises:
            NotFoundError: unknown client
        """
        raw_token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self.clock()
        expires_at = now + self.ttl

        result = self.session.execute(
            update(PortalClient)
            .where(PortalClient.id == client_id)
            .values(
                session_token_hash=hash_session_token(raw_token),
                session_expires_at=expires_at,
                last_login_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError()

        self.session.commit()
        logger.info(f"[PORTAL] Session issued for portal client {client_id}, expires {expires_at.isoformat()}")
        return raw_token, expires_at

    def validate(self, client_id: int, raw_token: Optional[str]) -> Optional[PortalClient]:
        """
        Authenticate a (client id, raw token) pair.

        Id, digest, active flag and expiry are checked in one query, so
        every failure looks the same to the caller.

        Returns:
            PortalClient or None
        """
        if not client_id or not raw_token:
            return None

        return self.session.query(PortalClient).filter(
            PortalClient.id == client_id,
            PortalClient.session_token_hash == hash_session_token(raw_token),
            PortalClient.is_active.is_(True),
            PortalClient.session_expires_at > self.clock(),
        ).first()

    def revoke(self, client_id: int, raw_token: Optional[str]) -> bool:
        """
        End a session if the supplied token is the current one.

        The digest comparison is part of the UPDATE, so knowing a client id
        alone cannot log anybody out. Always returns True, whether or not a
        session existed.
        """
        if not client_id or not raw_token:
            return True

        result = self.session.execute(
            update(PortalClient)
            .where(
                PortalClient.id == client_id,
                PortalClient.session_token_hash == hash_session_token(raw_token),
            )
            .values(session_token_hash=None, session_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

        if result.rowcount:
            logger.info(f"[PORTAL] Session revoked for portal client {client_id}")
        return True

    def issue_magic_link(self, client_id: int, ttl_minutes: int = 60) -> Tuple[str, object]:
        """
        Create a single-use login link token, replacing any unused one.

        Returns:
            (raw_token, expires_at)

        Raises:
            NotFoundError: unknown client
        """
        raw_token = secrets.token_urlsafe(TOKEN_BYTES)
        expires_at = self.clock() + timedelta(minutes=ttl_minutes)

        result = self.session.execute(
            update(PortalClient)
            .where(PortalClient.id == client_id)
            .values(
                magic_link_token_hash=hash_session_token(raw_token),
                magic_link_expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError()

        self.session.commit()
        logger.info(f"[PORTAL] Login link issued for portal client {client_id}, expires {expires_at.isoformat()}")
        return raw_token, expires_at

    def consume_magic_link(self, tenant_id: int, raw_token: Optional[str]) -> Optional[int]:
        """
        Use up a login link token.

        Tenant, digest, active flag and expiry are matched by the UPDATE
        that clears the token, so two requests with the same link cannot
        both get a client id back.

        Returns:
            Portal client id, or None for an unknown, expired, used or
            foreign-tenant token
        """
        if not tenant_id or not raw_token:
            return None

        row = self.session.execute(
            update(PortalClient)
            .where(
                PortalClient.tenant_id == tenant_id,
                PortalClient.magic_link_token_hash == hash_session_token(raw_token),
                PortalClient.is_active.is_(True),
                PortalClient.magic_link_expires_at > self.clock(),
            )
            .values(magic_link_token_hash=None, magic_link_expires_at=None)
            .returning(PortalClient.id)
            .execution_options(synchronize_session=False)
        ).first()
        self.session.commit()

        return row[0] if row is not None else None
