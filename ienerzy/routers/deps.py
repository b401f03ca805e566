from fastapi import Depends, Header, Request, Response

from ienerzy.services.access import require_consumer, require_role
from ienerzy.services.auth import AuthService, Principal
from ienerzy.services.errors import RateLimitError
from ienerzy.services.rate_limit import RateLimiter, identifier_for
from ienerzy.services.sessions import ClientInfo


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def client_host(request: Request) -> str | None:
    return request.client.host if request.client else None


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=client_host(request),
        user_agent=(request.headers.get("user-agent") or "")[:512] or None,
    )


def bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(
    token: str | None = Depends(bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    return auth.authenticate(token)


def require_roles(*roles: str):
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        require_role(principal, roles)
        return principal

    return dependency


def get_consumer_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    require_consumer(principal)
    return principal


def enforce_rate_limit(
    limiter: RateLimiter, response: Response, action: str, identifier: str
) -> None:
    decision = limiter.check_and_record(identifier, action)
    if not decision.allowed:
        raise RateLimitError(
            "Rate limit exceeded",
            action=action,
            retry_after=decision.retry_after,
            reset_at=decision.reset_at,
        )
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = decision.reset_at.isoformat()


def rate_limit(action: str):
    """Address-keyed limit for routes whose body carries no phone number."""

    def dependency(
        request: Request,
        response: Response,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        enforce_rate_limit(
            limiter, response, action, identifier_for(None, client_host(request))
        )

    return dependency
