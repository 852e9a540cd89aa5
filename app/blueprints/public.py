"""
Public tenant-scoped endpoints (no login).

The tenant comes from a hint: X-Tenant-Id or the request subdomain. A
missing or unknown hint is a 400, never an unfiltered query, and a
resource owned by another tenant is a 404 exactly like a missing one.
"""
import logging
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import update

from app.database import get_session
from app.models import Contract
from app.services.session_resolver import parse_id
from app.services.tenant_resolver import TenantResolver, extract_tenant_hint
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__, url_prefix='/api/public')


def _hinted_tenant(resolver: TenantResolver):
    hint = extract_tenant_hint(request.headers, request.host, current_app.config.get('TENANT_BASE_DOMAIN', ''))
    return resolver.require_public_tenant(hint)


@public_bp.route('/tenant', methods=['GET'])
def tenant_branding():
    """Branding for the hinted tenant (portal login page, public pages)."""
    tenant = _hinted_tenant(TenantResolver(get_session()))
    return jsonify({'tenant': tenant.branding()}), 200


@public_bp.route('/contracts/<int:contract_id>/view', methods=['POST'])
def track_contract_view(contract_id):
    """
    Record that a shared contract was opened.

    Only counts when the hinted tenant owns the contract.
    """
    db_session = get_session()
    resolver = TenantResolver(db_session)
    tenant = _hinted_tenant(resolver)

    contract = None
    if parse_id(contract_id) is not None:
        contract = db_session.query(Contract).filter(Contract.id == contract_id).first()
    resolver.ensure_hint_matches(contract, tenant)

    db_session.execute(
        update(Contract)
        .where(Contract.id == contract.id, Contract.tenant_id == tenant.id)
        .values(view_count=Contract.view_count + 1, last_viewed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db_session.commit()

    logger.info(f"[PUBLIC] Contract {contract_id} viewed (tenant {tenant.id})")
    return jsonify({'success': True}), 200
