"""OneTimeCode model - short-lived numeric codes proving email ownership."""
from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class OneTimeCode(Base):
    """
    One-time code bound to a lower-cased email.

    The code itself is stored as a sha256 digest. A code is usable while
    consumed_at is NULL and expires_at is in the future.
    """

    __tablename__ = 'one_time_codes'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('ix_one_time_codes_email_hash', 'email', 'code_hash'),
        Index('ix_one_time_codes_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<OneTimeCode(id={self.id}, email='{self.email}', expires_at={self.expires_at})>"
