"""
Tenant resolution and tenant-scoped lookups.

Public endpoints resolve their tenant from a hint (X-Tenant-Id header or
the request subdomain). Platform users are never resolved from a hint:
their tenant comes from their profile row, so a header cannot move a
caller into another tenant.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, TenantRequiredError
from app.models import Tenant, Profile
from app.services.session_resolver import TENANT_HINT_HEADER, parse_id

logger = logging.getLogger(__name__)


def extract_tenant_hint(headers, host: Optional[str] = None, base_domain: str = '') -> Optional[str]:
    """
    Get the raw tenant hint for a request.

    Priority: X-Tenant-Id header, then <subdomain>.<base_domain> from Host.

    Args:
        headers: Request headers
        host: Request host (may include a port)
        base_domain: Configured base domain, e.g. 'agencyportal.app'

    Returns:
        Hint string or None
    """
    hint = (headers.get(TENANT_HINT_HEADER) or '').strip()
    if hint:
        return hint

    if host and base_domain:
        hostname = host.split(':', 1)[0].lower()
        suffix = '.' + base_domain.lower().lstrip('.')
        if hostname.endswith(suffix):
            label = hostname[:-len(suffix)]
            # Only a single left-most label counts; 'www' is the marketing site
            if label and '.' not in label and label != 'www':
                return label

    return None


class TenantResolver:
    """Resolves tenants and enforces tenant filters on resource lookups."""

    def __init__(self, session: Session):
        self.session = session

    def resolve_hint(self, hint: Optional[str]) -> Optional[Tenant]:
        """
        Map a hint (subdomain, or else numeric id) to an available tenant.

        Returns:
            Tenant, or None when absent, unknown, inactive or suspended
        """
        if not hint:
            return None
        hint = str(hint).strip().lower()
        if not hint:
            return None

        # Subdomain first so a numeric subdomain is not shadowed by an id
        tenant = self.session.query(Tenant).filter(Tenant.subdomain == hint).first()
        if tenant is None:
            tenant_id = parse_id(hint)
            if tenant_id is not None:
                tenant = self.session.get(Tenant, tenant_id)

        if tenant is None or not tenant.is_available:
            return None
        return tenant

    def require_public_tenant(self, hint: Optional[str]) -> Tenant:
        """
        Resolve the tenant of a tenant-scoped public endpoint.

        Raises:
            TenantRequiredError: hint absent or unrecognized (never "no filter")
        """
        tenant = self.resolve_hint(hint)
        if tenant is None:
            logger.info(f"[TENANT] Unresolved tenant hint on public endpoint: {hint!r}")
            raise TenantRequiredError()
        return tenant

    def resolve_for_user(self, user_id: int) -> Optional[Tuple[Profile, Tenant]]:
        """
        Derive a platform user's tenant through their profile.

        Returns:
            (profile, tenant), or None when the user has no profile or the
            tenant is unavailable
        """
        profile = self.session.query(Profile).filter(Profile.user_id == user_id).first()
        if profile is None:
            return None

        tenant = self.session.query(Tenant).filter(Tenant.id == profile.tenant_id).first()
        if tenant is None or not tenant.is_available:
            return None
        return profile, tenant

    @staticmethod
    def scoped(query, model, tenant_id: int):
        """Apply the mandatory tenant filter to a query over `model`."""
        if tenant_id is None:
            raise TenantRequiredError()
        return query.filter(model.tenant_id == tenant_id)

    def get_scoped(self, model, resource_id, tenant_id: int):
        """
        Fetch a resource by id within a tenant.

        A row that exists under another tenant is reported exactly like a
        missing one.

        Raises:
            NotFoundError
        """
        if parse_id(resource_id) is None:
            raise NotFoundError()
        query = self.scoped(self.session.query(model), model, tenant_id)
        resource = query.filter(model.id == resource_id).first()
        if resource is None:
            raise NotFoundError()
        return resource

    @staticmethod
    def ensure_hint_matches(resource, tenant: Tenant):
        """
        Cross-check a hinted tenant against the resource's own tenant.

        Raises:
            NotFoundError: resource missing or owned by another tenant
        """
        if resource is None or tenant is None or resource.tenant_id != tenant.id:
            raise NotFoundError()
        return resource
