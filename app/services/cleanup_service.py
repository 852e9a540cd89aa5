"""
Scheduled cleanup of expired authentication state.

Runs hourly (cron endpoint or `flask cleanup-auth-state`). Deletes
one-time codes that are expired or consumed, and rate-limit windows old
enough that no policy can still be counting them. Repeated runs with no
new data delete nothing.
"""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from app.services.otp_service import OneTimeCodeStore
from app.services.rate_limit_service import RateLimiter, LONGEST_WINDOW_SECONDS
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

RATE_LIMIT_RETENTION = timedelta(seconds=max(3600, LONGEST_WINDOW_SECONDS))


def run_cleanup(session: Session, clock=utcnow) -> dict:
    """
    Purge expired codes and stale rate-limit windows in one transaction.

    Returns:
        {"one_time_codes": n, "rate_limit_windows": m}
    """
    limiter = RateLimiter(session, clock=clock)
    codes = OneTimeCodeStore(session, limiter, clock=clock)

    try:
        deleted_codes = codes.purge_expired()
        deleted_windows = limiter.purge(clock() - RATE_LIMIT_RETENTION)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[CLEANUP] Deleted {deleted_codes} one-time codes, {deleted_windows} rate-limit windows")
    return {
        'one_time_codes': deleted_codes,
        'rate_limit_windows': deleted_windows,
    }
