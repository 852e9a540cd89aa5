"""
TenantSubscription model - the plan a tenant is currently on.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, backref
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class TenantSubscription(Base):
    """
    Tenant subscription plan and billing status.

    Relationship: One-to-One with Tenant
    """
    __tablename__ = 'tenant_subscriptions'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigIntPK, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, unique=True)

    # Plan and Status
    plan_type = Column(String(20), nullable=False, default='free')
    status = Column(String(20), nullable=False, default='active')

    current_period_end = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Use backref to avoid circular import in Tenant model
    tenant = relationship('Tenant', backref=backref('subscription', uselist=False))

    # Table constraints
    __table_args__ = (
        CheckConstraint("plan_type IN ('free', 'starter', 'professional', 'business')", name='check_plan_type'),
        CheckConstraint("status IN ('trialing', 'active', 'past_due', 'canceled')", name='check_status'),
    )

    def __repr__(self):
        return f'<TenantSubscription tenant_id={self.tenant_id} plan={self.plan_type} status={self.status}>'

    @property
    def is_active(self):
        """Check if subscription grants its plan (trial or paid)."""
        return self.status in ('trialing', 'active')
