from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import math

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ienerzy.database import as_utc, utcnow
from ienerzy.models.db_operation import delete_expired_records
from ienerzy.models.schema.rate_limit import RateLimitEntry

LOGGER = logging.getLogger(__name__)

LOGIN = "login"
OTP = "otp"
API = "api"


@dataclass(frozen=True)
class RateLimitRule:
    max_attempts: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    action: str
    limit: int
    remaining: int
    reset_at: datetime
    checked_at: datetime

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil((self.reset_at - self.checked_at).total_seconds()))


def identifier_for(phone: str | None, client_host: str | None) -> str:
    if phone:
        return phone
    return client_host or "unknown"


class RateLimiter:
    """Per (identifier, action) counters; the window opens at the first attempt."""

    def __init__(
        self,
        database,
        rules: dict[str, RateLimitRule],
        *,
        fail_open: bool = True,
        retention_seconds: int = 3600,
        clock=utcnow,
    ) -> None:
        if API not in rules:
            raise ValueError("A default 'api' rule is required")
        self._database = database
        self._rules = dict(rules)
        self._fail_open = fail_open
        self._retention_seconds = retention_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, database, settings, clock=utcnow) -> "RateLimiter":
        window = settings.rate_limit_window_seconds
        return cls(
            database,
            {
                LOGIN: RateLimitRule(settings.login_rate_limit, window),
                OTP: RateLimitRule(settings.otp_rate_limit, window),
                API: RateLimitRule(settings.api_rate_limit, window),
            },
            fail_open=settings.rate_limit_fail_open,
            retention_seconds=settings.rate_limit_retention_seconds,
            clock=clock,
        )

    def rule_for(self, action: str) -> RateLimitRule:
        return self._rules.get(action) or self._rules[API]

    def check_and_record(self, identifier: str, action: str) -> RateLimitDecision:
        rule = self.rule_for(action)
        now = self._clock()
        try:
            return self._check(identifier, action, rule, now)
        except SQLAlchemyError:
            if not self._fail_open:
                raise
            LOGGER.warning(
                "Rate limit storage unavailable, allowing action=%s identifier=%s",
                action,
                identifier,
                exc_info=True,
            )
            return RateLimitDecision(
                allowed=True,
                action=action,
                limit=rule.max_attempts,
                remaining=rule.max_attempts,
                reset_at=now + timedelta(seconds=rule.window_seconds),
                checked_at=now,
            )

    def _check(
        self, identifier: str, action: str, rule: RateLimitRule, now: datetime
    ) -> RateLimitDecision:
        window = timedelta(seconds=rule.window_seconds)
        seed = (
            self._database.insert(RateLimitEntry)
            .values(
                identifier=identifier,
                action=action,
                attempts=0,
                first_attempt=now,
                last_attempt=now,
            )
            .on_conflict_do_nothing(
                index_elements=[RateLimitEntry.identifier, RateLimitEntry.action]
            )
        )
        with self._database.session_scope() as session:
            session.execute(seed)
            entry = session.execute(
                select(RateLimitEntry)
                .where(
                    RateLimitEntry.identifier == identifier,
                    RateLimitEntry.action == action,
                )
                .with_for_update()
            ).scalar_one()

            window_end = as_utc(entry.first_attempt) + window
            if entry.attempts == 0 or now >= window_end:
                entry.attempts = 1
                entry.first_attempt = now
                entry.last_attempt = now
                return RateLimitDecision(
                    allowed=True,
                    action=action,
                    limit=rule.max_attempts,
                    remaining=max(0, rule.max_attempts - 1),
                    reset_at=now + window,
                    checked_at=now,
                )

            if entry.attempts >= rule.max_attempts:
                return RateLimitDecision(
                    allowed=False,
                    action=action,
                    limit=rule.max_attempts,
                    remaining=0,
                    reset_at=window_end,
                    checked_at=now,
                )

            entry.attempts += 1
            entry.last_attempt = now
            return RateLimitDecision(
                allowed=True,
                action=action,
                limit=rule.max_attempts,
                remaining=max(0, rule.max_attempts - entry.attempts),
                reset_at=window_end,
                checked_at=now,
            )

    def sweep_stale(self) -> int:
        cutoff = self._clock() - timedelta(seconds=self._retention_seconds)
        removed = delete_expired_records(
            self._database, "rate_limit", cutoff, column="last_attempt"
        )
        if removed:
            LOGGER.info("Cleaned up %s old rate limit entries", removed)
        return removed
