"""
Contracts API and automation dashboard pages for platform users.

The tenant always comes from the caller's profile (g.tenant_id); any
X-Tenant-Id header on these routes is ignored.
"""
from flask import Blueprint, g, jsonify, render_template

from app.database import get_session
from app.decorators.permissions import Permission, require_permission, require_feature
from app.middleware import require_login, require_tenant
from app.models import Contract
from app.services.plan_service import Feature
from app.services.tenant_resolver import TenantResolver

contracts_bp = Blueprint('contracts', __name__)


@contracts_bp.route('/api/contracts', methods=['GET'])
@require_login
@require_tenant
@require_permission(Permission.CONTRACTS_VIEW)
@require_feature(Feature.CONTRACTS)
def list_contracts():
    """Contracts of the caller's tenant."""
    rows = TenantResolver.scoped(
        get_session().query(Contract), Contract, g.tenant_id
    ).order_by(Contract.id).all()
    return jsonify({'contracts': [c.to_dict() for c in rows]}), 200


@contracts_bp.route('/api/contracts/<int:contract_id>', methods=['GET'])
@require_login
@require_tenant
@require_permission(Permission.CONTRACTS_VIEW)
@require_feature(Feature.CONTRACTS)
def get_contract(contract_id):
    contract = TenantResolver(get_session()).get_scoped(Contract, contract_id, g.tenant_id)
    return jsonify({'contract': contract.to_dict()}), 200


@contracts_bp.route('/dashboard/automation/workflows', methods=['GET'])
@require_login
@require_tenant
@require_permission(Permission.AUTOMATION_VIEW)
@require_feature(Feature.WORKFLOWS)
def automation_workflows():
    return render_template('automation/workflows.html')


@contracts_bp.route('/dashboard/automation/runs', methods=['GET'])
@require_login
@require_tenant
@require_permission(Permission.AUTOMATION_VIEW)
@require_feature(Feature.WORKFLOWS)
def automation_runs():
    return render_template('automation/runs.html')
