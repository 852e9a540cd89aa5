"""
One-time codes for email verification.

A code is bound to a lower-cased email, stored only as a sha256 digest,
and becomes unusable once consumed or expired. Issuing a new code
invalidates every outstanding code for the same email.
"""
import hashlib
import logging
import secrets
from datetime import timedelta

from sqlalchemy import update, delete, or_
from sqlalchemy.orm import Session

from app.models import OneTimeCode
from app.services.rate_limit_service import BaseRateLimiter, RateLimitOperation
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def normalize_email(email) -> str:
    return str(email or '').strip().lower()


def hash_code(code: str) -> str:
    return hashlib.sha256(str(code).strip().encode('utf-8')).hexdigest()


class OneTimeCodeStore:
    """Issue and verify single-use email codes."""

    def __init__(self, session: Session, rate_limiter: BaseRateLimiter,
                 ttl_minutes: int = 10, code_length: int = 6, clock=utcnow):
        self.session = session
        self.rate_limiter = rate_limiter
        self.ttl = timedelta(minutes=ttl_minutes)
        self.code_length = code_length
        self.clock = clock

    def generate_code(self) -> str:
        return str(secrets.randbelow(10 ** self.code_length)).zfill(self.code_length)

    def issue(self, email: str) -> str:
        """
        Create a fresh code for an email.

        Args:
            email: Address the code is sent to

        Returns:
            The raw code (to be emailed, never logged)

        Raises:
            RateLimitedError: too many codes requested for this email
        """
        email = normalize_email(email)
        self.rate_limiter.enforce(RateLimitOperation.SEND_OTP, email)

        now = self.clock()
        code = self.generate_code()

        # Single active code per email
        self.session.execute(
            update(OneTimeCode)
            .where(OneTimeCode.email == email, OneTimeCode.consumed_at.is_(None))
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.add(OneTimeCode(
            email=email,
            code_hash=hash_code(code),
            expires_at=now + self.ttl,
        ))
        self.session.commit()

        logger.info(f"[OTP] Code issued for {email}")
        return code

    def verify(self, email: str, code: str) -> bool:
        """
        Consume a code if it is valid.

        The attempt is counted against the VERIFY_OTP limit before the code
        is looked at. Lookup and consumption are one conditional UPDATE, so
        two concurrent requests with the same code cannot both succeed.

        Returns:
            True when the code was valid and is now consumed; False for a
            wrong, expired or already used code

        Raises:
            RateLimitedError: too many attempts for this email
        """
        email = normalize_email(email)
        self.rate_limiter.enforce(RateLimitOperation.VERIFY_OTP, email)

        code = str(code or '').strip()
        if not email or not code:
            return False

        now = self.clock()
        row = self.session.execute(
            update(OneTimeCode)
            .where(
                OneTimeCode.email == email,
                OneTimeCode.code_hash == hash_code(code),
                OneTimeCode.consumed_at.is_(None),
                OneTimeCode.expires_at > now,
            )
            .values(consumed_at=now)
            .returning(OneTimeCode.id)
            .execution_options(synchronize_session=False)
        ).first()
        self.session.commit()

        if row is None:
            logger.info(f"[OTP] Verification failed for {email}")
            return False

        logger.info(f"[OTP] Code verified for {email}")
        return True

    def purge_expired(self) -> int:
        """Delete expired or consumed codes. Used by the cleanup job."""
        result = self.session.execute(
            delete(OneTimeCode)
            .where(or_(
                OneTimeCode.expires_at <= self.clock(),
                OneTimeCode.consumed_at.isnot(None),
            ))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
