from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from ienerzy.database import Base


class ConsumerEntry(Base):
    __tablename__ = "consumers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(15), nullable=False, unique=True, index=True)
    kyc_status = Column(String(20), nullable=False, default="pending")
    dealer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "kyc_status IN ('pending', 'verified', 'rejected')",
            name="ck_consumers_kyc_status",
        ),
    )
