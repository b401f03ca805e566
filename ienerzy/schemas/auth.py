import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_phone(value: str) -> str:
    digits = re.sub(r"\D", "", value)
    if not digits:
        raise ValueError("Phone number is required")
    if len(digits) < 10 or len(digits) > 15:
        raise ValueError("Phone number must be 10 to 15 digits")
    return digits


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(CamelModel):
    phone: str = Field(min_length=1, max_length=20)
    user_type: Optional[Literal["admin", "dealer", "nbfc", "consumer"]] = Field(
        default=None, alias="userType"
    )

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value: str) -> str:
        return _normalize_phone(value)


class LoginResponse(CamelModel):
    success: bool = True
    message: str
    phone: str
    expires_in: str = Field(alias="expiresIn")
    otp: Optional[str] = None


class VerifyOtpRequest(CamelModel):
    phone: str = Field(min_length=1, max_length=20)
    otp: str = Field(min_length=1, max_length=10)
    user_type: Optional[Literal["admin", "dealer", "nbfc", "consumer"]] = Field(
        default=None, alias="userType"
    )

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value: str) -> str:
        return _normalize_phone(value)

    @field_validator("otp")
    @classmethod
    def strip_otp(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("OTP is required")
        return cleaned


class UserSummary(CamelModel):
    id: int
    name: Optional[str] = None
    phone: str
    role: str
    is_consumer: bool = Field(default=False, alias="isConsumer")


class VerifyOtpResponse(CamelModel):
    message: str
    token: str
    refresh_token: str = Field(alias="refreshToken")
    user: UserSummary


class RefreshRequest(CamelModel):
    refresh_token: str = Field(max_length=4096, alias="refreshToken")


class RefreshResponse(CamelModel):
    token: str
    refresh_token: str = Field(alias="refreshToken")


class MessageResponse(BaseModel):
    message: str


class LogoutAllResponse(CamelModel):
    message: str
    sessions_revoked: int = Field(alias="sessionsRevoked")


class SessionInfo(CamelModel):
    id: int
    created_at: datetime = Field(alias="createdAt")
    last_activity: datetime = Field(alias="lastActivity")
    expires_at: datetime = Field(alias="expiresAt")
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]


class MeResponse(BaseModel):
    user: UserSummary
