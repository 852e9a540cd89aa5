"""RateLimitWindow model - per (operation, identifier) attempt counters."""
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint, Index
from app.database import Base, BigIntPK


class RateLimitWindow(Base):
    """Fixed window counter; the unique key makes insert races detectable."""

    __tablename__ = 'rate_limit_windows'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    operation = Column(String(50), nullable=False)
    identifier = Column(String(255), nullable=False)
    count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('operation', 'identifier', name='uq_rate_limit_operation_identifier'),
        Index('ix_rate_limit_windows_window_start', 'window_start'),
    )

    def __repr__(self):
        return f"<RateLimitWindow(operation='{self.operation}', identifier='{self.identifier}', count={self.count})>"
