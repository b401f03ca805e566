from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from ienerzy.database import Base


class OtpEntry(Base):
    __tablename__ = "otp_storage"

    phone = Column(String(15), primary_key=True)
    code = Column(String(10), nullable=False)
    identity = Column(JSON, nullable=False)
    identity_kind = Column(String(16), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_otp_storage_expires_at", "expires_at"),)
