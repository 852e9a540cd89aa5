"""
Authentication service for platform users and portal clients.

Every credential failure raises the same UnauthenticatedError, so a caller
cannot tell an unknown account from a wrong password or a disabled one.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from app.exceptions import UnauthenticatedError
from app.models import AppUser, PortalClient, Tenant
from app.services.portal_session_service import PortalSessionStore

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_LOGIN_LINK = "Invalid or expired login link"

_dummy_hash = None


def _burn_password_check(password: str) -> None:
    """Run one hash comparison for unknown accounts to keep timing uniform."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = generate_password_hash('not-a-real-password', method='scrypt')
    check_password_hash(_dummy_hash, password or '')


def authenticate_user(session: Session, email: str, password: str) -> AppUser:
    """
    Verify a platform user's email and password.

    Args:
        session: Database session
        email: Login email (case-insensitive)
        password: Plain-text password

    Returns:
        AppUser

    Raises:
        UnauthenticatedError: unknown email, wrong password or inactive user
    """
    email = (email or '').strip().lower()
    if not email or not password:
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    user = session.query(AppUser).filter(func.lower(AppUser.email) == email).first()
    if user is None:
        _burn_password_check(password)
        logger.info(f"[AUTH] Login failed for unknown email {email}")
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    if not user.check_password(password) or not user.active:
        logger.info(f"[AUTH] Login failed for user {user.id}")
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    logger.info(f"[AUTH] User {user.id} logged in")
    return user


def mark_email_verified(session: Session, email: str) -> Optional[AppUser]:
    """Flag the platform account with this email as verified, if there is one."""
    email = (email or '').strip().lower()
    user = session.query(AppUser).filter(func.lower(AppUser.email) == email).first()
    if user is not None and not user.email_verified:
        user.email_verified = True
        session.commit()
        logger.info(f"[AUTH] Email verified for user {user.id}")
    return user


def portal_login(
    session: Session,
    tenant: Tenant,
    email: str,
    password: str,
    store: PortalSessionStore,
) -> Tuple[PortalClient, str, object]:
    """
    Log a portal client in to one tenant's portal.

    The client is looked up inside the resolved tenant only; the same email
    under another tenant is a different (and here invisible) account.

    Returns:
        (portal_client, raw_token, expires_at)

    Raises:
        UnauthenticatedError: unknown email, wrong password or inactive client
    """
    email = (email or '').strip().lower()
    if not email or not password:
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    client = session.query(PortalClient).filter(
        PortalClient.tenant_id == tenant.id,
        func.lower(PortalClient.email) == email,
    ).first()

    if client is None:
        _burn_password_check(password)
        logger.info(f"[PORTAL] Login failed for unknown email in tenant {tenant.id}")
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    if not client.check_password(password) or not client.is_active:
        logger.info(f"[PORTAL] Login failed for portal client {client.id}")
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    client_id = client.id
    raw_token, expires_at = store.issue_session(client_id)
    # issue_session commits, which expires loaded attributes
    client = session.get(PortalClient, client_id)
    return client, raw_token, expires_at


def portal_magic_link_login(
    session: Session,
    tenant: Tenant,
    token: str,
    store: PortalSessionStore,
) -> Tuple[PortalClient, str, object]:
    """
    Log a portal client in with a single-use login link.

    The token is consumed before the session is issued, so a link works
    at most once even under concurrent use.

    Returns:
        (portal_client, raw_session_token, expires_at)

    Raises:
        UnauthenticatedError: unknown, expired, used or foreign-tenant link,
            or inactive client
    """
    client_id = store.consume_magic_link(tenant.id, (token or '').strip())
    if client_id is None:
        logger.info(f"[PORTAL] Login link rejected in tenant {tenant.id}")
        raise UnauthenticatedError(INVALID_LOGIN_LINK)

    raw_token, expires_at = store.issue_session(client_id)
    logger.info(f"[PORTAL] Portal client {client_id} logged in with a login link")
    return session.get(PortalClient, client_id), raw_token, expires_at
