"""Login, token issuance and per-request authentication.

The flow is: ``request_login`` stores a fresh OTP for the phone and tries to
text it, ``verify_login`` consumes the OTP and opens a session for a new
access/refresh pair, and ``authenticate`` runs on every protected request
(signature, then blacklist, then session).
"""

from dataclasses import dataclass
import logging

from sqlalchemy.exc import SQLAlchemyError

from ienerzy.services.errors import (
    AuthError,
    DeliveryError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from ienerzy.services.otp import OtpError, OtpFailure
from ienerzy.services.sessions import ClientInfo, SessionError, SessionRecord
from ienerzy.services.tokens import TokenError, TokenExpiredError
from ienerzy.services.users import CONSUMER, STAFF, Identity, normalize_phone

LOGGER = logging.getLogger(__name__)

OTP_FAILURE_MESSAGES = {
    OtpFailure.NOT_FOUND: "OTP expired or not found",
    OtpFailure.MAX_ATTEMPTS_EXCEEDED: "Too many failed attempts. Please request a new OTP",
    OtpFailure.INVALID_CODE: "Invalid OTP",
}


@dataclass(frozen=True)
class LoginChallenge:
    phone: str
    expires_in_seconds: int
    delivered: bool
    otp: str | None = None


@dataclass(frozen=True)
class TokenPair:
    token: str
    refresh_token: str


@dataclass(frozen=True)
class IssuedSession:
    token: str
    refresh_token: str
    identity: Identity
    is_consumer: bool
    session: SessionRecord


@dataclass(frozen=True)
class Principal:
    user_id: int
    phone: str
    role: str
    name: str | None
    is_consumer: bool
    token: str
    session_id: int | None = None

    @property
    def identity_kind(self) -> str:
        return CONSUMER if self.is_consumer else STAFF


class AuthService:
    def __init__(
        self,
        *,
        otp_store,
        session_store,
        blacklist,
        tokens,
        directory,
        sms,
        rate_limiter=None,
        otp_debug: bool = False,
        fail_open: bool = True,
    ) -> None:
        self.otp_store = otp_store
        self.session_store = session_store
        self.blacklist = blacklist
        self.tokens = tokens
        self.directory = directory
        self.sms = sms
        self.rate_limiter = rate_limiter
        self._otp_debug = otp_debug
        self._fail_open = fail_open

    def request_login(self, phone: str, user_type: str | None) -> LoginChallenge:
        normalized = normalize_phone(phone)
        if not normalized:
            raise ValidationError("Phone number is required")

        if user_type == CONSUMER:
            identity = self.directory.find_consumer(normalized)
            kind = CONSUMER
        else:
            identity = self.directory.find_staff(normalized)
            kind = STAFF
        if identity is None:
            raise NotFoundError(
                "Consumer not found" if kind == CONSUMER else "User not found"
            )

        code = self.otp_store.generate_code()
        record = self.otp_store.store(normalized, code, identity, kind)

        delivered = True
        try:
            self.sms.send_otp(identity.phone or normalized, code)
        except DeliveryError as exc:
            # Demo continuity: the code goes back in the response instead.
            delivered = False
            LOGGER.warning("OTP SMS delivery failed phone=%s error=%s", normalized, exc)

        return LoginChallenge(
            phone=record.phone,
            expires_in_seconds=self.otp_store.ttl_seconds,
            delivered=delivered,
            otp=code if (not delivered or self._otp_debug) else None,
        )

    def verify_login(
        self, phone: str, code: str, client: ClientInfo | None = None
    ) -> IssuedSession:
        normalized = normalize_phone(phone)
        if not normalized or not code:
            raise ValidationError("Phone and OTP are required")

        try:
            match = self.otp_store.verify(normalized, code)
        except OtpError as exc:
            LOGGER.info("OTP verification failed phone=%s reason=%s", normalized, exc.reason.value)
            raise ValidationError(OTP_FAILURE_MESSAGES[exc.reason]) from exc

        self.sweep_expired()
        is_consumer = match.identity_kind == CONSUMER
        pair = self._mint(match.identity, is_consumer)
        try:
            session = self.session_store.create(
                match.identity.id,
                pair.token,
                pair.refresh_token,
                identity_kind=match.identity_kind,
                client=client,
            )
        except SessionError as exc:
            raise ServiceError(str(exc), status_code=500) from exc

        return IssuedSession(
            token=pair.token,
            refresh_token=pair.refresh_token,
            identity=match.identity,
            is_consumer=is_consumer,
            session=session,
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        try:
            data = self.tokens.decode_refresh(refresh_token)
        except TokenExpiredError as exc:
            raise AuthError("Refresh token expired, please login again") from exc
        except TokenError as exc:
            raise AuthError("Invalid refresh token") from exc

        record = self.session_store.refresh(refresh_token)
        if record is None or record.user_id != data.user_id:
            raise AuthError("Invalid refresh token")

        identity = self.directory.get_identity(record.user_id, record.identity_kind)
        if identity is None:
            raise AuthError("Invalid refresh token")

        pair = self._mint(identity, record.identity_kind == CONSUMER)
        try:
            updated = self.session_store.update(record.id, pair.token, pair.refresh_token)
        except SessionError as exc:
            raise ServiceError(str(exc), status_code=500) from exc
        if updated is None:
            raise AuthError("Invalid refresh token")
        return pair

    def authenticate(self, token: str | None) -> Principal:
        if not token:
            raise AuthError("Access token required")

        try:
            claims = self.tokens.decode_access(token)
        except TokenExpiredError as exc:
            raise AuthError("Token expired, please refresh or login again") from exc
        except TokenError as exc:
            raise ForbiddenError("Invalid or expired token") from exc

        try:
            revoked = self.blacklist.contains(token)
        except SQLAlchemyError:
            if not self._fail_open:
                raise
            LOGGER.warning("Blacklist lookup failed, treating token as live", exc_info=True)
            revoked = False
        if revoked:
            raise AuthError("Token has been revoked")

        try:
            validated = self.session_store.validate(token)
        except SQLAlchemyError:
            if not self._fail_open:
                raise
            LOGGER.warning(
                "Session lookup failed, accepting signed claims user_id=%s",
                claims.user_id,
                exc_info=True,
            )
            return Principal(
                user_id=claims.user_id,
                phone=claims.phone,
                role=claims.role,
                name=None,
                is_consumer=claims.is_consumer,
                token=token,
            )
        if validated is None:
            raise AuthError("Session expired or invalid")

        return Principal(
            user_id=validated.session.user_id,
            phone=validated.phone,
            role=validated.role,
            name=validated.name,
            is_consumer=validated.session.identity_kind == CONSUMER,
            token=token,
            session_id=validated.session.id,
        )

    def logout(self, principal: Principal) -> None:
        self.session_store.invalidate(principal.token)
        self.blacklist.add(principal.token)
        LOGGER.info("Logged out user_id=%s session_id=%s", principal.user_id, principal.session_id)

    def logout_all(self, principal: Principal) -> int:
        removed = self.session_store.revoke_all(principal.user_id, principal.identity_kind)
        self.blacklist.add(principal.token)
        return removed

    def list_sessions(self, principal: Principal) -> list[SessionRecord]:
        return self.session_store.list_active(principal.user_id, principal.identity_kind)

    def sweep_expired(self) -> None:
        sweeps = [
            ("otp", self.otp_store.sweep_expired),
            ("sessions", self.session_store.sweep_expired),
            ("blacklist", self.blacklist.sweep_expired),
        ]
        if self.rate_limiter is not None:
            sweeps.append(("rate_limits", self.rate_limiter.sweep_stale))
        for name, sweep in sweeps:
            try:
                sweep()
            except SQLAlchemyError:
                # Expiry is re-checked on every read; a failed sweep only delays cleanup.
                LOGGER.warning("Expiry sweep failed table=%s", name, exc_info=True)

    def _mint(self, identity: Identity, is_consumer: bool) -> TokenPair:
        try:
            return TokenPair(
                token=self.tokens.issue_access(identity, is_consumer),
                refresh_token=self.tokens.issue_refresh(identity.id, is_consumer),
            )
        except TokenError as exc:
            raise ServiceError(str(exc), status_code=500) from exc
