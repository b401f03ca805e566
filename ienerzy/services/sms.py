from __future__ import annotations

import base64
import logging
import re
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ienerzy.services.errors import DeliveryError

LOGGER = logging.getLogger(__name__)

TWILIO_MESSAGES_ENDPOINT = (
    "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
)


class SmsSendError(DeliveryError):
    pass


class SmsSender:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_phone: str,
        default_country_code: str,
        otp_ttl_seconds: int,
        timeout: float = 10,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_phone = from_phone
        self._default_country_code = default_country_code
        self._otp_ttl_seconds = otp_ttl_seconds
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SmsSender":
        return cls(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
            settings.default_country_code,
            settings.otp_ttl_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_phone)

    def send_otp(self, to_phone: str, code: str) -> None:
        self.send_sms(to_phone, _build_otp_body(code, self._otp_ttl_seconds))

    def send_sms(self, to_phone: str, body: str) -> None:
        if not self.configured:
            raise SmsSendError("Twilio is not configured")

        to_number = self.normalize_e164(to_phone)
        request = self._messages_request(
            {"To": to_number, "From": self.normalize_e164(self._from_phone), "Body": body}
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:
                response.read()
        except HTTPError as exc:
            LOGGER.error(
                "Twilio rejected message to=%s status=%s response=%s",
                to_number,
                exc.code,
                exc.read().decode("utf-8", errors="replace"),
            )
            raise SmsSendError(f"Twilio rejected the message ({exc.code})") from exc
        except URLError as exc:
            raise SmsSendError("Twilio is unreachable") from exc
        LOGGER.info("SMS sent to=%s", to_number)

    def normalize_e164(self, phone_number: str) -> str:
        digits = re.sub(r"\D", "", phone_number or "")
        if len(digits) == 10:
            # Local numbers are routed through the configured country.
            digits = re.sub(r"\D", "", self._default_country_code) + digits
        if not 11 <= len(digits) <= 15:
            raise SmsSendError(f"Cannot route SMS to {phone_number!r}")
        return f"+{digits}"

    def _messages_request(self, fields: dict) -> Request:
        credentials = f"{self._account_sid}:{self._auth_token}".encode("utf-8")
        return Request(
            TWILIO_MESSAGES_ENDPOINT.format(account_sid=self._account_sid),
            data=urlencode(fields).encode("utf-8"),
            headers={
                "Authorization": "Basic " + base64.b64encode(credentials).decode("ascii"),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            method="POST",
        )


def _build_otp_body(code: str, ttl_seconds: int) -> str:
    minutes = max(1, ttl_seconds // 60)
    return (
        f"Your Ienerzy verification code is: {code}."
        f" Valid for {minutes} minute(s)."
        " Do not share this code with anyone."
    )
