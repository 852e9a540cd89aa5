"""
Permission and feature decorators for role-based access control.
Extends the basic require_login and require_tenant decorators with
permission checks (role) and feature checks (plan).

Both checks are evaluated on every request; nothing is cached between
requests because roles and plans can change at any time.
"""
import enum
import logging
from functools import wraps
from flask import g, jsonify, render_template

from app.database import get_session
from app.exceptions import UnauthenticatedError, UnauthorizedError
from app.models import Profile, ProfileRole
from app.services import plan_service

logger = logging.getLogger(__name__)


class Permission(enum.Enum):
    """Permission ids, formatted {category}-{action}."""
    # Projects
    PROJECTS_VIEW = 'projects-view'
    PROJECTS_CREATE = 'projects-create'
    PROJECTS_EDIT = 'projects-edit'
    PROJECTS_DELETE = 'projects-delete'
    PROJECTS_ARCHIVE = 'projects-archive'

    # Tasks
    TASKS_VIEW = 'tasks-view'
    TASKS_CREATE = 'tasks-create'
    TASKS_EDIT = 'tasks-edit'
    TASKS_DELETE = 'tasks-delete'
    TASKS_ASSIGN = 'tasks-assign'

    # Clients
    CLIENTS_VIEW = 'clients-view'
    CLIENTS_CREATE = 'clients-create'
    CLIENTS_EDIT = 'clients-edit'
    CLIENTS_DELETE = 'clients-delete'

    # Finance
    FINANCE_VIEW = 'finance-view'
    INVOICES_CREATE = 'invoices-create'
    INVOICES_EDIT = 'invoices-edit'
    INVOICES_SEND = 'invoices-send'
    PAYMENTS_RECORD = 'payments-record'
    EXPENSES_VIEW = 'expenses-view'
    EXPENSES_APPROVE = 'expenses-approve'
    BUDGETS_MANAGE = 'budgets-manage'

    # Team
    TEAM_VIEW = 'team-view'
    TEAM_INVITE = 'team-invite'
    TEAM_EDIT = 'team-edit'
    TEAM_REMOVE = 'team-remove'
    ROLES_MANAGE = 'roles-manage'

    # Events
    EVENTS_VIEW = 'events-view'
    EVENTS_CREATE = 'events-create'
    EVENTS_EDIT = 'events-edit'
    EVENTS_DELETE = 'events-delete'

    # Reports
    REPORTS_VIEW = 'reports-view'
    REPORTS_EXPORT = 'reports-export'
    REPORTS_CREATE = 'reports-create'

    # Settings
    SETTINGS_VIEW = 'settings-view'
    SETTINGS_EDIT = 'settings-edit'
    INTEGRATIONS_MANAGE = 'integrations-manage'

    # Documents
    DOCUMENTS_VIEW = 'documents-view'
    DOCUMENTS_CREATE = 'documents-create'
    DOCUMENTS_EDIT = 'documents-edit'
    DOCUMENTS_DELETE = 'documents-delete'

    # CRM
    CRM_VIEW = 'crm-view'
    CRM_CREATE = 'crm-create'
    CRM_EDIT = 'crm-edit'
    CRM_DELETE = 'crm-delete'

    # Booking
    BOOKING_VIEW = 'booking-view'
    BOOKING_MANAGE = 'booking-manage'

    # Automation
    AUTOMATION_VIEW = 'automation-view'
    AUTOMATION_MANAGE = 'automation-manage'

    # Forms & Proposals
    FORMS_VIEW = 'forms-view'
    FORMS_MANAGE = 'forms-manage'
    PROPOSALS_VIEW = 'proposals-view'
    PROPOSALS_MANAGE = 'proposals-manage'

    # Contracts
    CONTRACTS_VIEW = 'contracts-view'
    CONTRACTS_MANAGE = 'contracts-manage'

    # Vendors
    VENDORS_VIEW = 'vendors-view'
    VENDORS_MANAGE = 'vendors-manage'


ALL_PERMISSIONS = frozenset(Permission)

# Members without a custom role
DEFAULT_MEMBER_PERMISSIONS = frozenset({
    Permission.PROJECTS_VIEW,
    Permission.TASKS_VIEW,
    Permission.TASKS_CREATE,
    Permission.TASKS_EDIT,
    Permission.CLIENTS_VIEW,
    Permission.EVENTS_VIEW,
    Permission.DOCUMENTS_VIEW,
    Permission.REPORTS_VIEW,
})

_VALID_IDS = {p.value: p for p in Permission}


def _coerce_permission(permission) -> Permission:
    return permission if isinstance(permission, Permission) else Permission(permission)


def get_profile_permissions(profile):
    """
    Effective permissions of a profile.

    Owners and admins have every permission. A member with a custom role
    gets exactly the role's list; unknown ids in the list are ignored. A
    custom role owned by another tenant grants nothing.
    """
    if profile is None:
        return frozenset()

    if profile.role in (ProfileRole.OWNER.value, ProfileRole.ADMIN.value):
        return ALL_PERMISSIONS

    if profile.custom_role is not None:
        if profile.custom_role.tenant_id != profile.tenant_id:
            logger.warning(
                f"[AUTHZ] Profile {profile.id} has custom role {profile.custom_role.id} "
                f"from tenant {profile.custom_role.tenant_id}"
            )
            return frozenset()
        return frozenset(
            _VALID_IDS[pid] for pid in (profile.custom_role.permissions or []) if pid in _VALID_IDS
        )

    return DEFAULT_MEMBER_PERMISSIONS


def has_permission(session, user_id, tenant_id, permission) -> bool:
    """
    Check if a platform user holds a permission inside a tenant.

    Args:
        session: Database session
        user_id: AppUser id
        tenant_id: Tenant the check applies to
        permission: Permission or permission id string

    Returns:
        bool: False when the user has no profile in that tenant
    """
    if user_id is None or tenant_id is None:
        return False

    profile = session.query(Profile).filter(
        Profile.user_id == user_id,
        Profile.tenant_id == tenant_id,
    ).first()

    return _coerce_permission(permission) in get_profile_permissions(profile)


def require_permission(permission):
    """
    Decorator to check for a specific permission.

    Not authenticated -> UnauthenticatedError (401).
    Authenticated without the permission -> UnauthorizedError (403), which
    pages render as the restricted view.

    Usage:
        @require_permission(Permission.CONTRACTS_VIEW)
        def contracts_list():
            ...
    """
    permission = _coerce_permission(permission)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Must be logged in
            if g.get('user') is None:
                raise UnauthenticatedError()

            if not has_permission(get_session(), g.user.id, g.get('tenant_id'), permission):
                logger.info(f"[AUTHZ] User {g.user.id} lacks {permission.value}")
                raise UnauthorizedError(payload={'permission': permission.value})

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def feature_unavailable_response(feature, message: str, json_response: bool, template='restricted.html'):
    """Graceful 'not on your plan' outcome (HTTP 200, not an error)."""
    if json_response:
        return jsonify({
            'status': 'unavailable',
            'feature': feature.value,
            'message': message,
            'upgrade_required': True,
        }), 200
    return render_template(template, feature=feature.value, message=message), 200


def require_feature(feature, template='restricted.html'):
    """
    Decorator to restrict access based on plan features.

    A plan without the feature is not an error: pages render the restricted
    view and APIs return {"status": "unavailable"} with HTTP 200.

    Usage:
        @require_feature(Feature.WORKFLOWS)
        def workflows_page():
            ...
    """
    from app.middleware import wants_json

    feature = plan_service._coerce_feature(feature)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.get('auth') or not g.auth.is_authenticated:
                raise UnauthenticatedError()

            tenant_id = g.get('tenant_id')
            access = plan_service.check_tenant_feature(get_session(), tenant_id, feature)
            if not access.allowed:
                logger.info(f"[AUTHZ] Tenant {tenant_id} has no '{feature.value}' feature")
                return feature_unavailable_response(feature, access.reason, wants_json(), template)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_portal_client(f):
    """
    Decorator: Require a validated portal session.

    load_auth_context() already validated the headers through the portal
    session store; an invalid or expired token leaves g.portal_client unset.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('portal_client') is None:
            raise UnauthenticatedError()
        return f(*args, **kwargs)
    return decorated_function
