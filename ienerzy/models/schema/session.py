from sqlalchemy import Column, DateTime, Index, Integer, String

from ienerzy.database import Base


class SessionEntry(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True)
    # Staff ids and consumer ids live in different tables; identity_kind says which.
    user_id = Column(Integer, nullable=False)
    identity_kind = Column(String(16), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    refresh_token_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    __table_args__ = (
        Index("ix_user_sessions_owner", "user_id", "identity_kind"),
        Index("ix_user_sessions_expires_at", "expires_at"),
    )
