import logging

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict:
    try:
        database_ok = request.app.state.database.ping()
    except SQLAlchemyError:
        LOGGER.warning("Database ping failed", exc_info=True)
        database_ok = False
    return {"status": "ok" if database_ok else "degraded", "database": database_ok}
