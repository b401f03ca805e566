from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import secrets

import jwt

from ienerzy.services.users import Identity


class TokenError(ValueError):
    pass


class TokenExpiredError(TokenError):
    pass


@dataclass(frozen=True)
class AccessTokenData:
    user_id: int
    phone: str
    role: str
    is_consumer: bool


@dataclass(frozen=True)
class RefreshTokenData:
    user_id: int
    is_consumer: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    def __init__(
        self,
        secret: str,
        algorithm: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock=_utcnow,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            settings.jwt_secret,
            settings.jwt_algorithm,
            settings.access_token_ttl_seconds,
            settings.refresh_token_ttl_seconds,
        )

    def issue_access(self, identity: Identity, is_consumer: bool) -> str:
        return self._encode(
            {
                "sub": str(identity.id),
                "userId": identity.id,
                "phone": identity.phone,
                "role": identity.role,
                "isConsumer": is_consumer,
                "type": "access",
            },
            self.access_ttl_seconds,
        )

    def issue_refresh(self, user_id: int, is_consumer: bool) -> str:
        return self._encode(
            {
                "sub": str(user_id),
                "userId": user_id,
                "isConsumer": is_consumer,
                "type": "refresh",
            },
            self.refresh_ttl_seconds,
        )

    def decode_access(self, token: str) -> AccessTokenData:
        payload = self._decode(token, expected_type="access")
        role = payload.get("role")
        if not role:
            raise TokenError("Access token is missing role")
        return AccessTokenData(
            user_id=_parse_user_id(payload),
            phone=payload.get("phone") or "",
            role=role,
            is_consumer=bool(payload.get("isConsumer")),
        )

    def decode_refresh(self, token: str) -> RefreshTokenData:
        payload = self._decode(token, expected_type="refresh")
        return RefreshTokenData(
            user_id=_parse_user_id(payload),
            is_consumer=bool(payload.get("isConsumer")),
        )

    def _encode(self, claims: dict, ttl_seconds: int) -> str:
        if not self._secret:
            raise TokenError("JWT secret is not configured")
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        payload = dict(claims)
        # Tokens minted in the same second for the same user must still hash apart.
        payload["jti"] = secrets.token_hex(16)
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int(expires_at.timestamp())
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str, expected_type: str) -> dict:
        if not token:
            raise TokenError("Token is missing")
        if not self._secret:
            raise TokenError("JWT secret is not configured")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("Invalid token") from exc
        if payload.get("type") != expected_type:
            raise TokenError("Invalid token type")
        return payload


def _parse_user_id(payload: dict) -> int:
    subject = payload.get("userId", payload.get("sub"))
    if subject is None or subject == "":
        raise TokenError("Token subject is missing")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise TokenError("Invalid token subject") from exc
