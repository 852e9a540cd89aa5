"""
Plan service: which features and limits a tenant's subscription grants.

Plans and their features are a static table; only the tenant's current
plan is read from the database, fresh on every call.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.models import TenantSubscription

logger = logging.getLogger(__name__)

UNLIMITED = -1


class PlanType(enum.Enum):
    FREE = 'free'
    STARTER = 'starter'
    PROFESSIONAL = 'professional'
    BUSINESS = 'business'


class Feature(enum.Enum):
    """Plan-gated features."""
    CRM = 'crm'
    CUSTOM_BRANDING = 'custom_branding'
    ADVANCED_ANALYTICS = 'advanced_analytics'
    INVOICING = 'invoicing'
    TIME_TRACKING = 'time_tracking'
    API_KEYS = 'api_keys'
    WHITE_LABEL = 'white_label'
    SSO = 'sso'
    CONTRACTS = 'contracts'
    FINANCE = 'finance'
    PROJECTS = 'projects'
    EXPENSES = 'expenses'
    PAYMENTS = 'payments'
    BUDGETS = 'budgets'
    WORKFLOWS = 'workflows'


_STARTER_FEATURES = frozenset({
    Feature.CRM, Feature.CUSTOM_BRANDING, Feature.INVOICING, Feature.API_KEYS,
    Feature.CONTRACTS, Feature.FINANCE, Feature.PROJECTS, Feature.EXPENSES,
})
_PROFESSIONAL_FEATURES = _STARTER_FEATURES | {
    Feature.ADVANCED_ANALYTICS, Feature.TIME_TRACKING, Feature.PAYMENTS, Feature.WORKFLOWS,
}

PLAN_FEATURES = {
    PlanType.FREE: frozenset({Feature.API_KEYS}),
    PlanType.STARTER: _STARTER_FEATURES,
    PlanType.PROFESSIONAL: frozenset(_PROFESSIONAL_FEATURES),
    PlanType.BUSINESS: frozenset(Feature),
}

# -1 means unlimited
PLAN_LIMITS = {
    PlanType.FREE: {'events': 3, 'team_members': 2, 'portal_clients': 10, 'contracts': 5},
    PlanType.STARTER: {'events': 10, 'team_members': 5, 'portal_clients': 50, 'contracts': 50},
    PlanType.PROFESSIONAL: {'events': 50, 'team_members': 15, 'portal_clients': 250, 'contracts': 500},
    PlanType.BUSINESS: {'events': UNLIMITED, 'team_members': UNLIMITED,
                        'portal_clients': UNLIMITED, 'contracts': UNLIMITED},
}


@dataclass(frozen=True)
class PlanCheckResult:
    allowed: bool
    reason: Optional[str] = None
    current: Optional[int] = None
    limit: Optional[int] = None
    upgrade_required: bool = False


def _coerce_feature(feature) -> Feature:
    return feature if isinstance(feature, Feature) else Feature(feature)


def get_tenant_plan(session: Session, tenant_id: int) -> PlanType:
    """
    Current plan of a tenant.

    A tenant without a subscription, or whose subscription is not trialing
    or active, is on the free plan.
    """
    subscription = session.query(TenantSubscription).filter(
        TenantSubscription.tenant_id == tenant_id
    ).first()

    if subscription is None or not subscription.is_active:
        return PlanType.FREE
    try:
        return PlanType(subscription.plan_type)
    except ValueError:
        logger.warning(f"[PLAN] Unknown plan '{subscription.plan_type}' for tenant {tenant_id}")
        return PlanType.FREE


def plan_has_feature(plan: PlanType, feature) -> bool:
    return _coerce_feature(feature) in PLAN_FEATURES[plan]


def check_feature_access(plan: Optional[PlanType], feature) -> PlanCheckResult:
    """Feature check with the upgrade message shown to the caller. No plan grants nothing."""
    feature = _coerce_feature(feature)
    if plan is not None and plan_has_feature(plan, feature):
        return PlanCheckResult(allowed=True)
    return PlanCheckResult(
        allowed=False,
        reason=f"The {feature.value.replace('_', ' ')} feature requires a higher plan",
        upgrade_required=True,
    )


def check_tenant_feature(session: Session, tenant_id: Optional[int], feature) -> PlanCheckResult:
    """Check a tenant's current plan for a feature; no tenant means no features."""
    plan = get_tenant_plan(session, tenant_id) if tenant_id is not None else None
    return check_feature_access(plan, feature)


def check_limit(session: Session, tenant_id: int, limit_key: str, current_count: int) -> PlanCheckResult:
    """
    Check whether a tenant may create one more item counted by `limit_key`.

    Args:
        session: Database session
        tenant_id: Tenant ID
        limit_key: Key in PLAN_LIMITS ('events', 'team_members', ...)
        current_count: Items the tenant already has

    Returns:
        PlanCheckResult
    """
    plan = get_tenant_plan(session, tenant_id)
    limit = PLAN_LIMITS[plan][limit_key]

    if limit == UNLIMITED:
        return PlanCheckResult(allowed=True, current=current_count, limit=limit)

    if current_count >= limit:
        return PlanCheckResult(
            allowed=False,
            reason=f"Your {plan.value} plan allows up to {limit} {limit_key.replace('_', ' ')}",
            current=current_count,
            limit=limit,
            upgrade_required=True,
        )
    return PlanCheckResult(allowed=True, current=current_count, limit=limit)
