from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
import logging
import secrets

from sqlalchemy import delete, select, update

from ienerzy.database import utcnow
from ienerzy.models.db_operation import delete_expired_records
from ienerzy.models.schema.otp import OtpEntry
from ienerzy.services.users import Identity, normalize_phone

LOGGER = logging.getLogger(__name__)


class OtpFailure(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    INVALID_CODE = "INVALID_CODE"


class OtpError(ValueError):
    def __init__(self, reason: OtpFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason


@dataclass(frozen=True)
class OtpRecord:
    phone: str
    code: str
    identity_kind: str
    expires_at: datetime


@dataclass(frozen=True)
class OtpMatch:
    identity: Identity
    identity_kind: str


class OtpStore:
    """One live code per phone; a new request overwrites the previous one."""

    def __init__(
        self,
        database,
        ttl_seconds: int,
        code_length: int,
        max_attempts: int,
        clock=utcnow,
    ) -> None:
        self._database = database
        self._ttl_seconds = ttl_seconds
        self._code_length = code_length
        self._max_attempts = max_attempts
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def generate_code(self) -> str:
        value = secrets.randbelow(10**self._code_length)
        return str(value).zfill(self._code_length)

    def store(
        self, phone: str, code: str, identity: Identity, identity_kind: str
    ) -> OtpRecord:
        self.sweep_expired()
        now = self._clock()
        normalized = normalize_phone(phone)
        expires_at = now + timedelta(seconds=self._ttl_seconds)
        values = {
            "code": code,
            "identity": identity.to_dict(),
            "identity_kind": identity_kind,
            "attempts": 0,
            "created_at": now,
            "expires_at": expires_at,
        }
        statement = self._database.insert(OtpEntry).values(phone=normalized, **values)
        statement = statement.on_conflict_do_update(
            index_elements=[OtpEntry.phone], set_=values
        )
        with self._database.session_scope() as session:
            session.execute(statement)
        return OtpRecord(
            phone=normalized,
            code=code,
            identity_kind=identity_kind,
            expires_at=expires_at,
        )

    def verify(self, phone: str, code: str) -> OtpMatch:
        now = self._clock()
        normalized = normalize_phone(phone)
        clean_code = (code or "").strip()

        # Failures are raised after the scope commits so the attempt bump
        # and the exhausted-record delete are not rolled back.
        failure = None
        match = None
        with self._database.session_scope() as session:
            entry = session.execute(
                select(OtpEntry).where(
                    OtpEntry.phone == normalized,
                    OtpEntry.expires_at > now,
                )
            ).scalar_one_or_none()
            if entry is None:
                failure = OtpFailure.NOT_FOUND
            elif entry.attempts >= self._max_attempts:
                session.delete(entry)
                failure = OtpFailure.MAX_ATTEMPTS_EXCEEDED
            elif not secrets.compare_digest(
                entry.code.encode("utf-8"), clean_code.encode("utf-8")
            ):
                session.execute(
                    update(OtpEntry)
                    .where(OtpEntry.phone == normalized)
                    .values(attempts=OtpEntry.attempts + 1)
                )
                failure = OtpFailure.INVALID_CODE
            else:
                # Only the caller whose delete hits the row owns the code.
                consumed = session.execute(
                    delete(OtpEntry)
                    .where(
                        OtpEntry.phone == normalized,
                        OtpEntry.code == entry.code,
                        OtpEntry.attempts < self._max_attempts,
                        OtpEntry.expires_at > now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if consumed.rowcount == 1:
                    match = OtpMatch(
                        identity=Identity.from_dict(entry.identity, phone=normalized),
                        identity_kind=entry.identity_kind,
                    )
                else:
                    failure = OtpFailure.NOT_FOUND

        if failure is not None:
            if failure is OtpFailure.MAX_ATTEMPTS_EXCEEDED:
                LOGGER.warning("OTP attempts exhausted phone=%s", normalized)
            raise OtpError(failure)
        return match

    def sweep_expired(self) -> int:
        removed = delete_expired_records(self._database, "otp", self._clock())
        if removed:
            LOGGER.info("Cleaned up %s expired OTPs", removed)
        return removed
