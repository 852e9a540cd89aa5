"""Models package - exports all SQLAlchemy models."""
# SaaS Core Models
from app.models.tenant import Tenant
from app.models.app_user import AppUser
from app.models.profile import Profile, ProfileRole, CustomRole
from app.models.subscription import TenantSubscription

# Portal and verification state
from app.models.portal_client import PortalClient
from app.models.one_time_code import OneTimeCode
from app.models.rate_limit import RateLimitWindow

# Business Models
from app.models.contract import Contract

__all__ = [
    # SaaS Core
    'Tenant', 'AppUser', 'Profile', 'ProfileRole', 'CustomRole', 'TenantSubscription',
    # Portal and verification state
    'PortalClient', 'OneTimeCode', 'RateLimitWindow',
    # Business
    'Contract',
]
