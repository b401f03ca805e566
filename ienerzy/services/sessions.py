from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ienerzy.database import as_utc, utcnow
from ienerzy.models.db_operation import delete_expired_records, delete_records
from ienerzy.models.schema.session import SessionEntry
from ienerzy.services.users import CONSUMER, IdentityDirectory

LOGGER = logging.getLogger(__name__)


class SessionError(ValueError):
    pass


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SessionRecord:
    id: int
    user_id: int
    identity_kind: str
    created_at: datetime
    expires_at: datetime
    last_activity: datetime
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class ValidatedSession:
    session: SessionRecord
    role: str
    name: str
    phone: str


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None


def _to_record(entry: SessionEntry) -> SessionRecord:
    return SessionRecord(
        id=entry.id,
        user_id=entry.user_id,
        identity_kind=entry.identity_kind,
        created_at=as_utc(entry.created_at),
        expires_at=as_utc(entry.expires_at),
        last_activity=as_utc(entry.last_activity),
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
    )


class SessionStore:
    """Persists token pairs by SHA-256 hash; raw tokens never reach the database."""

    def __init__(
        self,
        database,
        directory: IdentityDirectory,
        ttl_seconds: int,
        clock=utcnow,
    ) -> None:
        self._database = database
        self._directory = directory
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def create(
        self,
        user_id: int,
        access_token: str,
        refresh_token: str,
        *,
        identity_kind: str,
        client: ClientInfo | None = None,
    ) -> SessionRecord:
        token_hash = hash_token(access_token)
        refresh_hash = hash_token(refresh_token)
        if token_hash == refresh_hash:
            raise SessionError("Access and refresh tokens must differ")
        client = client or ClientInfo()
        now = self._clock()
        entry = SessionEntry(
            user_id=user_id,
            identity_kind=identity_kind,
            token_hash=token_hash,
            refresh_token_hash=refresh_hash,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
            last_activity=now,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        try:
            with self._database.session_scope() as session:
                session.add(entry)
                session.flush()
                record = _to_record(entry)
        except IntegrityError as exc:
            raise SessionError("Session token collision") from exc
        LOGGER.info(
            "Session created id=%s user_id=%s kind=%s", record.id, user_id, identity_kind
        )
        return record

    def validate(self, access_token: str) -> ValidatedSession | None:
        now = self._clock()
        with self._database.session_scope() as session:
            entry = session.execute(
                select(SessionEntry).where(
                    SessionEntry.token_hash == hash_token(access_token),
                    SessionEntry.expires_at > now,
                )
            ).scalar_one_or_none()
            if entry is None:
                return None
            entry.last_activity = now
            session.flush()
            record = _to_record(entry)

        identity = self._directory.get_identity(record.user_id, record.identity_kind)
        if identity is None:
            LOGGER.warning(
                "Session %s references missing %s id=%s",
                record.id,
                record.identity_kind,
                record.user_id,
            )
            return None
        return ValidatedSession(
            session=record,
            role=CONSUMER if record.identity_kind == CONSUMER else identity.role,
            name=identity.name,
            phone=identity.phone,
        )

    def refresh(self, refresh_token: str) -> SessionRecord | None:
        now = self._clock()
        with self._database.session_scope() as session:
            entry = session.execute(
                select(SessionEntry).where(
                    SessionEntry.refresh_token_hash == hash_token(refresh_token),
                    SessionEntry.expires_at > now,
                )
            ).scalar_one_or_none()
            if entry is None:
                return None
            return _to_record(entry)

    def update(
        self, session_id: int, new_access_token: str, new_refresh_token: str
    ) -> SessionRecord | None:
        try:
            with self._database.session_scope() as session:
                result = session.execute(
                    update(SessionEntry)
                    .where(SessionEntry.id == session_id)
                    .values(
                        token_hash=hash_token(new_access_token),
                        refresh_token_hash=hash_token(new_refresh_token),
                        last_activity=self._clock(),
                    )
                )
                if result.rowcount == 0:
                    return None
                entry = session.get(SessionEntry, session_id)
                return _to_record(entry)
        except IntegrityError as exc:
            raise SessionError("Session token collision") from exc

    def invalidate(self, access_token: str) -> bool:
        removed = delete_records(
            self._database, "session", token_hash=hash_token(access_token)
        )
        return removed > 0

    def revoke_all(self, user_id: int, identity_kind: str) -> int:
        removed = delete_records(
            self._database, "session", user_id=user_id, identity_kind=identity_kind
        )
        LOGGER.info(
            "Revoked %s sessions user_id=%s kind=%s", removed, user_id, identity_kind
        )
        return removed

    def list_active(self, user_id: int, identity_kind: str) -> list[SessionRecord]:
        now = self._clock()
        with self._database.session_scope() as session:
            entries = session.execute(
                select(SessionEntry)
                .where(
                    SessionEntry.user_id == user_id,
                    SessionEntry.identity_kind == identity_kind,
                    SessionEntry.expires_at > now,
                )
                .order_by(SessionEntry.last_activity.desc(), SessionEntry.id.desc())
            ).scalars().all()
            return [_to_record(entry) for entry in entries]

    def sweep_expired(self) -> int:
        return delete_expired_records(self._database, "session", self._clock())
