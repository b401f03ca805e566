from datetime import timedelta
import logging

from sqlalchemy import select

from ienerzy.database import utcnow
from ienerzy.models.db_operation import delete_expired_records
from ienerzy.models.schema.blacklist import BlacklistEntry
from ienerzy.services.sessions import hash_token

LOGGER = logging.getLogger(__name__)


class TokenBlacklist:
    """Revoked access tokens, kept until they would have expired anyway."""

    def __init__(self, database, ttl_seconds: int, clock=utcnow) -> None:
        self._database = database
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def add(self, token: str) -> None:
        now = self._clock()
        statement = (
            self._database.insert(BlacklistEntry)
            .values(
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + timedelta(seconds=self._ttl_seconds),
            )
            .on_conflict_do_nothing(index_elements=[BlacklistEntry.token_hash])
        )
        with self._database.session_scope() as session:
            session.execute(statement)

    def contains(self, token: str) -> bool:
        with self._database.session_scope() as session:
            entry_id = session.execute(
                select(BlacklistEntry.id).where(
                    BlacklistEntry.token_hash == hash_token(token),
                    BlacklistEntry.expires_at > self._clock(),
                )
            ).scalar_one_or_none()
            return entry_id is not None

    def sweep_expired(self) -> int:
        removed = delete_expired_records(self._database, "blacklist", self._clock())
        if removed:
            LOGGER.info("Pruned %s expired blacklist entries", removed)
        return removed
