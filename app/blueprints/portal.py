"""
Client portal API.

Portal clients authenticate with two headers, X-Portal-Client-Id and
X-Portal-Session-Token. Everything they can read is filtered by their own
tenant and client id, both taken from the validated portal client row.
"""
import logging
from flask import Blueprint, request, g, jsonify, current_app

from app.database import get_session
from app.decorators.permissions import require_portal_client
from app.exceptions import BusinessLogicError, UnauthenticatedError
from app.models import Contract
from app.services import auth_service
from app.services.portal_session_service import PortalSessionStore
from app.services.rate_limit_service import RateLimitOperation, get_rate_limiter, client_ip
from app.services.tenant_resolver import TenantResolver, extract_tenant_hint
from app.blueprints.metrics import record_auth_event

logger = logging.getLogger(__name__)

portal_bp = Blueprint('portal', __name__, url_prefix='/api/portal')


def _session_store(db_session) -> PortalSessionStore:
    return PortalSessionStore(db_session, ttl_hours=current_app.config.get('PORTAL_SESSION_TTL_HOURS', 24))


@portal_bp.route('/auth/login', methods=['POST'])
def login():
    """
    Portal login for one tenant.

    Body: {"email": ..., "password": ...} or {"token": <login link token>};
    tenant from X-Tenant-Id or the request subdomain. The raw session token
    is returned here and only here.
    """
    db_session = get_session()
    ip = client_ip(request, current_app.config.get('TRUST_PROXY_HEADERS', False))
    get_rate_limiter(db_session).enforce(RateLimitOperation.PORTAL_LOGIN, ip)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    link_token = str(data.get('token') or '').strip()
    email = str(data.get('email', '')).strip()
    password = str(data.get('password', ''))
    if not link_token and (not email or not password):
        raise BusinessLogicError('Email and password are required')

    hint = extract_tenant_hint(request.headers, request.host, current_app.config.get('TENANT_BASE_DOMAIN', ''))
    tenant = TenantResolver(db_session).require_public_tenant(hint)

    event = 'portal_magic_link_login' if link_token else 'portal_login'
    try:
        if link_token:
            client, raw_token, expires_at = auth_service.portal_magic_link_login(
                db_session, tenant, link_token, _session_store(db_session)
            )
        else:
            client, raw_token, expires_at = auth_service.portal_login(
                db_session, tenant, email, password, _session_store(db_session)
            )
    except UnauthenticatedError:
        record_auth_event(event, False)
        raise

    record_auth_event(event, True)
    return jsonify({
        'success': True,
        'client': client.to_dict(),
        'session': {
            'client_id': client.id,
            'token': raw_token,
            'expires_at': expires_at.isoformat(),
        },
        'tenant': tenant.branding(),
    }), 200


@portal_bp.route('/auth/logout', methods=['POST'])
def logout():
    """
    End the presented portal session.

    Always succeeds, including for unknown, expired or already revoked
    sessions, so the response reveals nothing about the token.
    """
    presented = g.get('presented_auth')
    if presented is not None and presented.is_portal:
        _session_store(get_session()).revoke(presented.identity_id, presented.session_token)
        record_auth_event('portal_logout', True)
    return jsonify({'success': True}), 200


@portal_bp.route('/me', methods=['GET'])
@require_portal_client
def me():
    """Current portal client and the branding of their tenant."""
    client = g.portal_client
    return jsonify({
        'client': client.to_dict(),
        'tenant': client.tenant.branding(),
    }), 200


@portal_bp.route('/contracts', methods=['GET'])
@require_portal_client
def contracts():
    """Contracts shared with the current portal client."""
    query = TenantResolver.scoped(get_session().query(Contract), Contract, g.tenant_id)
    rows = query.filter(
        Contract.portal_client_id == g.portal_client.id
    ).order_by(Contract.id).all()
    return jsonify({'contracts': [c.to_dict() for c in rows]}), 200
