"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import session, g, request, current_app
from app.database import get_session
from app.exceptions import UnauthenticatedError, UnauthorizedError
from app.models import AppUser
from app.services.session_resolver import ANONYMOUS, resolve_auth_context
from app.services.tenant_resolver import TenantResolver
from app.services.portal_session_service import PortalSessionStore


def wants_json():
    """True for API routes and JSON requests (structured errors, no pages)."""
    return request.path.startswith('/api/') or request.is_json


def load_auth_context():
    """
    Load the caller identity and tenant into g (Flask's per-request global).

    Called before each request. Sets:
        g.auth: validated AuthContext (ANONYMOUS when nothing valid was presented)
        g.presented_auth: AuthContext as presented, before validation
        g.user, g.profile, g.user_role: platform callers
        g.portal_client: portal callers
        g.tenant_id: the caller's tenant, from the profile or portal client row

    The tenant of an authenticated caller never comes from request headers.
    """
    g.auth = ANONYMOUS
    g.user = None
    g.profile = None
    g.user_role = None
    g.portal_client = None
    g.tenant_id = None

    presented = resolve_auth_context(
        request.headers,
        session,
        trust_upstream=current_app.config.get('TRUST_UPSTREAM_IDENTITY', False),
        upstream_header=current_app.config.get('UPSTREAM_USER_HEADER', 'X-Authenticated-User-Id'),
    )
    g.presented_auth = presented

    if not presented.is_authenticated:
        return

    db_session = get_session()

    if presented.is_portal:
        store = PortalSessionStore(db_session, ttl_hours=current_app.config.get('PORTAL_SESSION_TTL_HOURS', 24))
        client = store.validate(presented.identity_id, presented.session_token)
        if client is None or client.tenant is None or not client.tenant.is_available:
            return
        g.portal_client = client
        g.tenant_id = client.tenant_id
        g.auth = presented.with_tenant(client.tenant_id)
        return

    user = db_session.query(AppUser).filter_by(id=presented.identity_id, active=True).first()
    if user is None:
        return

    g.user = user
    g.auth = presented

    resolved = TenantResolver(db_session).resolve_for_user(user.id)
    if resolved is None:
        # No profile, or tenant inactive/suspended: authenticated, no tenant
        return

    profile, tenant = resolved
    g.profile = profile
    g.user_role = profile.role
    g.tenant_id = tenant.id
    g.auth = presented.with_tenant(tenant.id)


def require_login(f):
    """
    Decorator: Require a platform user.

    Raises UnauthenticatedError (401) when no platform identity was resolved.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthenticatedError()
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require the platform user to belong to an available tenant.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise UnauthorizedError("Your account is not linked to an active workspace")
        return f(*args, **kwargs)
    return decorated_function
