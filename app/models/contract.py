"""Contract model - tenant-scoped agreements shared with portal clients."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Contract(Base):
    """Contract model. Every read filters by tenant_id."""

    __tablename__ = 'contracts'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigIntPK, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True)
    portal_client_id = Column(BigIntPK, ForeignKey('portal_clients.id', ondelete='SET NULL'), nullable=True)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default='draft')  # draft, sent, viewed, signed
    view_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'status': self.status,
            'view_count': self.view_count,
            'last_viewed_at': self.last_viewed_at.isoformat() if self.last_viewed_at else None,
        }

    def __repr__(self):
        return f"<Contract(id={self.id}, tenant_id={self.tenant_id}, title='{self.title}')>"
