"""PortalClient model - external clients who sign in to a tenant's portal."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from app.database import Base, BigIntPK


class PortalClient(Base):
    """
    Portal client - never a platform account, always scoped to one tenant.

    Only the sha256 digest of the current session token is stored;
    logging out clears both the digest and its expiry. Login links are
    kept the same way and cleared when used.
    """

    __tablename__ = 'portal_clients'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigIntPK, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    client_ref = Column(String(100), nullable=True)  # CRM client this login belongs to
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    session_token_hash = Column(String(64), nullable=True, index=True)
    session_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Single-use login link
    magic_link_token_hash = Column(String(64), nullable=True, index=True)
    magic_link_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant')

    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_portal_client_tenant_email'),
    )

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        """Serialize for the portal API (never includes session fields)."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'avatar_url': self.avatar_url,
            'client_ref': self.client_ref,
        }

    def __repr__(self):
        return f"<PortalClient(id={self.id}, tenant_id={self.tenant_id}, email='{self.email}')>"
