import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ienerzy.config import Settings, settings as default_settings
from ienerzy.database import Database
from ienerzy.error_handling import register_exception_handlers
from ienerzy.routers import auth, consumers, health
from ienerzy.services.auth import AuthService
from ienerzy.services.blacklist import TokenBlacklist
from ienerzy.services.otp import OtpStore
from ienerzy.services.rate_limit import RateLimiter
from ienerzy.services.sessions import SessionStore
from ienerzy.services.sms import SmsSender
from ienerzy.services.tokens import TokenCodec
from ienerzy.services.users import IdentityDirectory

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_auth_service(
    settings: Settings, database: Database, sms: SmsSender | None = None
) -> AuthService:
    directory = IdentityDirectory(database)
    return AuthService(
        otp_store=OtpStore(
            database,
            settings.otp_ttl_seconds,
            settings.otp_length,
            settings.otp_max_attempts,
        ),
        session_store=SessionStore(
            database, directory, settings.access_token_ttl_seconds
        ),
        blacklist=TokenBlacklist(database, settings.token_blacklist_ttl_seconds),
        tokens=TokenCodec.from_settings(settings),
        directory=directory,
        sms=sms or SmsSender.from_settings(settings),
        rate_limiter=RateLimiter.from_settings(database, settings),
        otp_debug=settings.otp_debug,
        fail_open=settings.auth_fail_open,
    )


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    auth_service: AuthService | None = None,
) -> FastAPI:
    settings = settings or default_settings
    database = database or Database(settings.database_url)
    auth_service = auth_service or build_auth_service(settings, database)

    app = FastAPI(title="Ienerzy Auth")
    app.state.settings = settings
    app.state.database = database
    app.state.auth_service = auth_service
    app.state.directory = auth_service.directory
    app.state.rate_limiter = auth_service.rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(health.router, prefix="/api")
    app.include_router(auth.router, prefix="/api")
    app.include_router(consumers.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(auth.router)  # Compatibility for clients calling /auth/* without /api.

    @app.on_event("startup")
    def startup() -> None:
        database.init_db()
        if settings.seed_demo_data:
            auth_service.directory.seed_demo_data()
        auth_service.sweep_expired()
        LOGGER.info("Ienerzy auth service started")

    @app.on_event("shutdown")
    def shutdown() -> None:
        database.dispose()

    @app.get("/")
    def root():
        return {"status": "Backend running"}

    return app


configure_logging(default_settings.log_level)
app = create_app()
