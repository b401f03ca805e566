from sqlalchemy import delete

from ienerzy.models.schema.db_config import Databases


def _model(db: str):
    model = getattr(Databases, db, None)
    if model is None:
        raise ValueError(f"Unknown table '{db}'")
    return model


def _conditions(model, filters: dict) -> list:
    conditions = []
    for field, value in filters.items():
        if not hasattr(model, field):
            raise ValueError(
                f"{model.__name__} has no column '{field}'"
            )
        column = getattr(model, field)
        if value is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == value)
    return conditions


def delete_expired_records(database, db: str, now, column: str = "expires_at") -> int:
    model = _model(db)
    with database.session_scope() as session:
        result = session.execute(
            delete(model).where(getattr(model, column) <= now)
        )
        return result.rowcount


def delete_records(database, db: str, **filters) -> int:
    model = _model(db)
    conditions = _conditions(model, filters)
    if not conditions:
        raise ValueError("Refusing to delete without filters")

    with database.session_scope() as session:
        result = session.execute(
            delete(model).where(*conditions)
        )
        return result.rowcount
