from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from ienerzy.database import Base


class RateLimitEntry(Base):
    __tablename__ = "rate_limits"

    id = Column(Integer, primary_key=True)
    identifier = Column(String(255), nullable=False)
    action = Column(String(32), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    first_attempt = Column(DateTime(timezone=True), nullable=False)
    last_attempt = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("identifier", "action", name="uq_rate_limits_identifier_action"),
    )
