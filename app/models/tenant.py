"""Tenant model - represents each agency/organization using the platform."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Tenant(Base):
    """Tenant model - each agency/organization."""

    __tablename__ = 'tenants'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)  # Display name
    subdomain = Column(String(80), nullable=False, unique=True)  # <subdomain>.<base domain>
    logo_url = Column(String(500), nullable=True)
    primary_color = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    is_suspended = Column(Boolean, nullable=False, default=False)  # Admin can suspend tenant access
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    profiles = relationship('Profile', back_populates='tenant')

    @property
    def is_available(self):
        """Tenant can be resolved by requests (active and not suspended)."""
        return bool(self.active) and not self.is_suspended

    def branding(self):
        """Public branding attributes, safe to return to unauthenticated callers."""
        return {
            'id': self.id,
            'name': self.name,
            'subdomain': self.subdomain,
            'logo_url': self.logo_url,
            'primary_color': self.primary_color,
        }

    def __repr__(self):
        return f"<Tenant(id={self.id}, subdomain='{self.subdomain}', name='{self.name}')>"
