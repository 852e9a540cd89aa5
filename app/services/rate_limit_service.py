"""
Rate limiting for sensitive operations (logins, one-time codes).

Counters are fixed windows keyed by (operation, identifier). The SQL
backend keeps them in rate_limit_windows and increments them with a
single INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement, so
parallel requests can never read a stale count. Stale rows are removed
by the cleanup job, never by the check path.

The Redis backend (RATE_LIMIT_BACKEND=redis) uses INCR + EXPIRE in a
transactional pipeline and lets key expiry replace the sweep.
"""
import enum
import ipaddress
import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app
from sqlalchemy import case, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.exceptions import RateLimitedError
from app.models import RateLimitWindow
from app.utils.clock import utcnow, as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    max_attempts: int
    window_seconds: int


class RateLimitOperation(enum.Enum):
    """Operations guarded by the rate limiter, each with its policy."""
    VERIFY_OTP = 'verify-otp'
    SEND_OTP = 'send-otp'
    PLATFORM_LOGIN = 'login'
    PORTAL_LOGIN = 'portal-login'

    @property
    def policy(self) -> RateLimitPolicy:
        return _POLICIES[self]


_POLICIES = {
    RateLimitOperation.VERIFY_OTP: RateLimitPolicy(max_attempts=5, window_seconds=15 * 60),
    RateLimitOperation.SEND_OTP: RateLimitPolicy(max_attempts=3, window_seconds=10 * 60),
    RateLimitOperation.PLATFORM_LOGIN: RateLimitPolicy(max_attempts=10, window_seconds=15 * 60),
    RateLimitOperation.PORTAL_LOGIN: RateLimitPolicy(max_attempts=10, window_seconds=15 * 60),
}

LONGEST_WINDOW_SECONDS = max(p.window_seconds for p in _POLICIES.values())


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: Optional[int] = None


OperationKey = Union[RateLimitOperation, str]


def _resolve_policy(operation: OperationKey, max_attempts: Optional[int],
                    window_seconds: Optional[int]):
    """Return (operation key string, policy) for an enum member or a raw key."""
    if isinstance(operation, RateLimitOperation):
        policy = operation.policy
        key = operation.value
    else:
        if max_attempts is None or window_seconds is None:
            raise ValueError(f"Unknown rate-limit operation {operation!r} requires explicit limits")
        policy = RateLimitPolicy(max_attempts, window_seconds)
        key = str(operation)

    if max_attempts is not None or window_seconds is not None:
        policy = RateLimitPolicy(
            max_attempts if max_attempts is not None else policy.max_attempts,
            window_seconds if window_seconds is not None else policy.window_seconds,
        )
    if policy.max_attempts < 1 or policy.window_seconds < 1:
        raise ValueError("Rate-limit policies need max_attempts >= 1 and window_seconds >= 1")
    return key, policy


def normalize_identifier(identifier) -> str:
    return str(identifier or '').strip().lower()[:255]


class BaseRateLimiter:
    """Shared enforce() on top of a backend-specific check()."""

    def check(self, operation: OperationKey, identifier, max_attempts: Optional[int] = None,
              window_seconds: Optional[int] = None) -> RateLimitResult:
        raise NotImplementedError

    def enforce(self, operation: OperationKey, identifier, max_attempts: Optional[int] = None,
                window_seconds: Optional[int] = None) -> RateLimitResult:
        """
        Count an attempt and raise when it is over the limit.

        Raises:
            RateLimitedError: with retry_after in seconds
        """
        result = self.check(operation, identifier, max_attempts, window_seconds)
        if not result.allowed:
            from app.blueprints.metrics import rate_limit_rejections_total
            key = operation.value if isinstance(operation, RateLimitOperation) else str(operation)
            rate_limit_rejections_total.labels(operation=key).inc()
            raise RateLimitedError(result.retry_after_seconds)
        return result


class RateLimiter(BaseRateLimiter):
    """SQL-backed fixed-window limiter."""

    def __init__(self, session: Session, clock=utcnow):
        self.session = session
        self.clock = clock

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == 'postgresql':
            return postgresql.insert
        if dialect == 'sqlite':
            return sqlite.insert
        raise RuntimeError(f"Rate limiting has no atomic upsert for dialect {dialect!r}")

    def check(self, operation: OperationKey, identifier, max_attempts: Optional[int] = None,
              window_seconds: Optional[int] = None) -> RateLimitResult:
        """
        Record one attempt and decide whether it is allowed.

        The first `max_attempts` calls in a window are allowed; later ones
        are rejected until window_start + window_seconds.

        Args:
            operation: RateLimitOperation, or a raw key with explicit limits
            identifier: Email, IP address, ...
            max_attempts: Override of the policy limit
            window_seconds: Override of the policy window

        Returns:
            RateLimitResult
        """
        key, policy = _resolve_policy(operation, max_attempts, window_seconds)
        identifier = normalize_identifier(identifier)
        now = self.clock()
        window = timedelta(seconds=policy.window_seconds)
        table = RateLimitWindow.__table__
        stale = table.c.window_start <= now - window

        stmt = self._insert()(table).values(
            operation=key,
            identifier=identifier,
            count=1,
            window_start=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.operation, table.c.identifier],
            set_={
                'count': case((stale, 1), else_=table.c.count + 1),
                'window_start': case((stale, now), else_=table.c.window_start),
            },
        ).returning(table.c.count, table.c.window_start)

        count, window_start = self.session.execute(stmt).one()
        self.session.commit()

        window_start = as_utc(window_start)
        if count > policy.max_attempts:
            retry_after = math.ceil((window_start + window - now).total_seconds())
            logger.warning(f"[RATE] {key} limited for identifier (count={count})")
            return RateLimitResult(allowed=False, remaining=0, retry_after_seconds=max(1, retry_after))

        return RateLimitResult(allowed=True, remaining=policy.max_attempts - count)

    def purge(self, older_than) -> int:
        """Delete windows that started before `older_than`. Used by the cleanup job."""
        result = self.session.execute(
            delete(RateLimitWindow)
            .where(RateLimitWindow.window_start < older_than)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class RedisRateLimiter(BaseRateLimiter):
    """Redis-backed fixed-window limiter; keys expire with their window."""

    def __init__(self, client: redis.Redis, prefix: str = 'agency:ratelimit'):
        self.client = client
        self.prefix = prefix

    def _build_key(self, operation: str, identifier: str) -> str:
        return f"{self.prefix}:{operation}:{identifier}"

    def check(self, operation: OperationKey, identifier, max_attempts: Optional[int] = None,
              window_seconds: Optional[int] = None) -> RateLimitResult:
        key, policy = _resolve_policy(operation, max_attempts, window_seconds)
        redis_key = self._build_key(key, normalize_identifier(identifier))

        pipeline = self.client.pipeline(transaction=True)
        pipeline.incr(redis_key)
        pipeline.expire(redis_key, policy.window_seconds, nx=True)
        pipeline.ttl(redis_key)
        count, _, ttl = pipeline.execute()

        if ttl is None or ttl < 0:
            # Key survived without an expiry; bound it to one window
            self.client.expire(redis_key, policy.window_seconds)
            ttl = policy.window_seconds

        count = int(count)
        if count > policy.max_attempts:
            logger.warning(f"[RATE] {key} limited for identifier (count={count})")
            return RateLimitResult(allowed=False, remaining=0, retry_after_seconds=max(1, int(ttl)))

        return RateLimitResult(allowed=True, remaining=policy.max_attempts - count)


def init_rate_limiter(app: Flask) -> None:
    """Connect the Redis backend when configured; fall back to SQL if unreachable."""
    app.extensions['rate_limit_redis'] = None
    if app.config.get('RATE_LIMIT_BACKEND', 'sql') != 'redis':
        return

    redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
    try:
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        app.extensions['rate_limit_redis'] = client
        logger.info(f"[RATE] Redis rate limiting enabled: {redis_url}")
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"[RATE] Redis connection failed: {e}. Using SQL rate limiting.")


def get_rate_limiter(session: Session) -> BaseRateLimiter:
    """Rate limiter for the current app, using the configured backend."""
    client = current_app.extensions.get('rate_limit_redis')
    if client is not None:
        return RedisRateLimiter(client, current_app.config.get('RATE_LIMIT_KEY_PREFIX', 'agency:ratelimit'))
    return RateLimiter(session)


def _valid_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    if len(value) > 45:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def client_ip(request, trust_proxy_headers: bool = False) -> str:
    """
    Client IP for rate-limit identifiers.

    Keyed on the socket peer (already rewritten by ProxyFix in production).
    Proxy headers are read only when trust_proxy_headers is set, i.e. the
    app sits behind an edge that overwrites them, and are validated as IP
    addresses so a crafted header cannot smuggle arbitrary identifiers.
    """
    if trust_proxy_headers:
        ip = _valid_ip(request.headers.get('CF-Connecting-IP'))
        if ip:
            return ip

        forwarded = request.headers.get('X-Forwarded-For')
        if forwarded:
            ip = _valid_ip(forwarded.split(',')[0])
            if ip:
                return ip

        ip = _valid_ip(request.headers.get('X-Real-IP'))
        if ip:
            return ip

    return request.remote_addr or 'unknown'
