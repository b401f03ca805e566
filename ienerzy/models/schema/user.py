from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from ienerzy.database import Base

STAFF_ROLES = ("admin", "dealer", "nbfc")


class UserEntry(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(15), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'dealer', 'nbfc')", name="ck_users_role"
        ),
    )
