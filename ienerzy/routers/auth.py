from fastapi import APIRouter, Depends, Request, Response

from ienerzy.routers.deps import (
    client_host,
    client_info,
    enforce_rate_limit,
    get_auth_service,
    get_current_principal,
    get_rate_limiter,
)
from ienerzy.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    SessionInfo,
    SessionListResponse,
    UserSummary,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from ienerzy.services.auth import AuthService, Principal
from ienerzy.services.rate_limit import LOGIN, OTP, RateLimiter, identifier_for

router = APIRouter(prefix="/auth", tags=["auth"])


def _minutes_label(seconds: int) -> str:
    minutes = max(1, seconds // 60)
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> LoginResponse:
    enforce_rate_limit(
        limiter, response, OTP, identifier_for(payload.phone, client_host(request))
    )
    challenge = auth.request_login(payload.phone, payload.user_type)
    return LoginResponse(
        success=True,
        message=(
            "OTP sent successfully"
            if challenge.delivered
            else "OTP generated; SMS delivery unavailable"
        ),
        phone=challenge.phone,
        expires_in=_minutes_label(challenge.expires_in_seconds),
        otp=challenge.otp,
    )


@router.post("/verify-otp", response_model=VerifyOtpResponse)
def verify_otp(
    payload: VerifyOtpRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> VerifyOtpResponse:
    enforce_rate_limit(
        limiter, response, LOGIN, identifier_for(payload.phone, client_host(request))
    )
    issued = auth.verify_login(payload.phone, payload.otp, client_info(request))
    return VerifyOtpResponse(
        message="OTP verified successfully",
        token=issued.token,
        refresh_token=issued.refresh_token,
        user=UserSummary(
            id=issued.identity.id,
            name=issued.identity.name,
            phone=issued.identity.phone,
            role=issued.identity.role,
            is_consumer=issued.is_consumer,
        ),
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh_tokens(
    payload: RefreshRequest, auth: AuthService = Depends(get_auth_service)
) -> RefreshResponse:
    pair = auth.refresh(payload.refresh_token)
    return RefreshResponse(token=pair.token, refresh_token=pair.refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    auth.logout(principal)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutAllResponse)
def logout_all(
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
) -> LogoutAllResponse:
    removed = auth.logout_all(principal)
    return LogoutAllResponse(
        message="Logged out from all devices", sessions_revoked=removed
    )


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
) -> SessionListResponse:
    return SessionListResponse(
        sessions=[
            SessionInfo(
                id=record.id,
                created_at=record.created_at,
                last_activity=record.last_activity,
                expires_at=record.expires_at,
                ip_address=record.ip_address,
                user_agent=record.user_agent,
            )
            for record in auth.list_sessions(principal)
        ]
    )


@router.get("/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    return MeResponse(
        user=UserSummary(
            id=principal.user_id,
            name=principal.name,
            phone=principal.phone,
            role=principal.role,
            is_consumer=principal.is_consumer,
        )
    )
