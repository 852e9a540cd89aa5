"""
Session resolver: who is calling?

Turns raw request metadata into an AuthContext once per request. The
resolver only reads headers and the signed session cookie; it never
touches the database and never raises for missing or malformed
credentials. Callers decide whether "none" is acceptable.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

PORTAL_CLIENT_HEADER = 'X-Portal-Client-Id'
PORTAL_TOKEN_HEADER = 'X-Portal-Session-Token'
TENANT_HINT_HEADER = 'X-Tenant-Id'


class IdentityKind(enum.Enum):
    """Kind of identity a request is authenticated as."""
    PLATFORM = 'platform'
    PORTAL = 'portal'
    NONE = 'none'


@dataclass(frozen=True)
class AuthContext:
    """Caller identity threaded through the request (stored on g.auth)."""
    identity_kind: IdentityKind
    identity_id: Optional[int] = None
    tenant_id: Optional[int] = None
    # Portal only. Excluded from repr so it never ends up in logs.
    session_token: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        return self.identity_kind is not IdentityKind.NONE

    @property
    def is_platform(self) -> bool:
        return self.identity_kind is IdentityKind.PLATFORM

    @property
    def is_portal(self) -> bool:
        return self.identity_kind is IdentityKind.PORTAL

    def with_tenant(self, tenant_id: int) -> 'AuthContext':
        """Copy of this context bound to a resolved tenant."""
        return replace(self, tenant_id=tenant_id)


ANONYMOUS = AuthContext(IdentityKind.NONE)


# Largest id a BIGINT column holds
MAX_ID = 2 ** 63 - 1


def parse_id(value) -> Optional[int]:
    """Parse a positive integer id that fits a BIGINT column; anything else is None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if 0 < parsed <= MAX_ID else None


def resolve_portal_identity(headers: Mapping[str, str]) -> AuthContext:
    """Portal path: both headers are required, one without the other is anonymous."""
    client_id = parse_id(headers.get(PORTAL_CLIENT_HEADER))
    token = (headers.get(PORTAL_TOKEN_HEADER) or '').strip()

    if client_id is None or not token:
        return ANONYMOUS
    return AuthContext(IdentityKind.PORTAL, identity_id=client_id, session_token=token)


def resolve_platform_identity(
    headers: Mapping[str, str],
    cookie_session: Mapping,
    trust_upstream: bool = False,
    upstream_header: str = 'X-Authenticated-User-Id',
) -> AuthContext:
    """
    Platform path.

    The upstream header is honoured only when the deployment sits behind a
    trusted edge layer that strips it from client traffic; otherwise the
    signed Flask session cookie is the only source.
    """
    user_id = None
    if trust_upstream:
        user_id = parse_id(headers.get(upstream_header))
    if user_id is None:
        user_id = parse_id(cookie_session.get('user_id'))

    if user_id is None:
        return ANONYMOUS
    return AuthContext(IdentityKind.PLATFORM, identity_id=user_id)


def has_portal_headers(headers: Mapping[str, str]) -> bool:
    return bool(headers.get(PORTAL_CLIENT_HEADER) or headers.get(PORTAL_TOKEN_HEADER))


def resolve_auth_context(
    headers: Mapping[str, str],
    cookie_session: Mapping,
    trust_upstream: bool = False,
    upstream_header: str = 'X-Authenticated-User-Id',
) -> AuthContext:
    """
    Resolve the caller of a request.

    A request carrying any portal header is evaluated as a portal request
    only, so a request is never authenticated as two identity kinds.

    Args:
        headers: Request headers (case-insensitive mapping)
        cookie_session: Flask session (signed cookie contents)
        trust_upstream: Accept a caller id from the upstream header
        upstream_header: Header name set by the trusted edge layer

    Returns:
        AuthContext; identity_kind NONE when nothing valid was presented
    """
    if has_portal_headers(headers):
        return resolve_portal_identity(headers)
    return resolve_platform_identity(headers, cookie_session, trust_upstream, upstream_header)
