from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def dialect_insert(db: AsyncSession, model):
    """INSERT construct for the session's backend, so callers can use ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise RuntimeError(f"ON CONFLICT inserts are not supported on {dialect}")
