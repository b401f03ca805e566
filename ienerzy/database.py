import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

LOGGER = logging.getLogger(__name__)

Base = declarative_base()


def build_database_url(raw_url: str) -> str:
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timestamps back without tzinfo; everything we write is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Database:
    def __init__(self, url: str) -> None:
        self.url = build_database_url(url)
        self._engine = None
        self._session_factory = None

    @property
    def engine(self):
        if self._engine is None:
            if not self.url:
                raise RuntimeError("DATABASE_URL is not configured")
            kwargs = {"pool_pre_ping": True}
            if self.url == "sqlite://" or (
                self.url.startswith("sqlite") and ":memory:" in self.url
            ):
                # One shared connection, otherwise each checkout sees an empty database.
                kwargs = {
                    "connect_args": {"check_same_thread": False},
                    "poolclass": StaticPool,
                }
            self._engine = create_engine(self.url, **kwargs)
        return self._engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def _sessions(self):
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def init_db(self) -> None:
        from ienerzy.models.schema import db_config as _models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        LOGGER.info("Database schema ready dialect=%s", self.dialect)

    def insert(self, model):
        if self.dialect == "postgresql":
            return postgresql.insert(model)
        if self.dialect == "sqlite":
            return sqlite.insert(model)
        raise RuntimeError(f"Upserts are not supported on {self.dialect}")

    def ping(self) -> bool:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True

    @contextmanager
    def session_scope(self):
        session = self._sessions()()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
