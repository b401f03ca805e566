from sqlalchemy import Column, DateTime, Integer, String

from ienerzy.database import Base


class BlacklistEntry(Base):
    __tablename__ = "token_blacklist"

    id = Column(Integer, primary_key=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
