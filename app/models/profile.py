"""Profile model - binds each platform user to exactly one tenant with a role."""
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class ProfileRole(enum.Enum):
    """Built-in roles within a tenant."""
    OWNER = 'owner'
    ADMIN = 'admin'
    MEMBER = 'member'


class CustomRole(Base):
    """Tenant-defined role with an explicit permission list."""

    __tablename__ = 'custom_roles'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigIntPK, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_custom_role_tenant_name'),
    )

    def __repr__(self):
        return f"<CustomRole(id={self.id}, tenant_id={self.tenant_id}, name='{self.name}')>"


class Profile(Base):
    """
    Profile model - one row per platform user.

    The profile is the only trusted source of a platform user's tenant;
    tenant hints supplied by the request are never used for platform callers.
    """

    __tablename__ = 'profiles'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigIntPK, ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False, unique=True)
    tenant_id = Column(BigIntPK, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), nullable=False, default=ProfileRole.MEMBER.value)
    custom_role_id = Column(BigIntPK, ForeignKey('custom_roles.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='profile')
    tenant = relationship('Tenant', back_populates='profiles')
    custom_role = relationship('CustomRole')

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, tenant_id={self.tenant_id}, role='{self.role}')>"
