import json
from sqlalchemy import JSON, cast, func, literal_column
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from keygate.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

class Base(DeclarativeBase):
    pass

async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


def insert_ignoring_conflicts(db: AsyncSession, model, conflict_columns: list[str], **values):
    """Build an ``INSERT ... ON CONFLICT DO NOTHING`` for the session's dialect.

    Used wherever two concurrent requests may create the same row; the loser
    simply inserts nothing and the caller checks ``rowcount``.
    """
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")
    return stmt.values(**values).on_conflict_do_nothing(index_elements=conflict_columns)


def json_merged(db: AsyncSession, column, fields: dict):
    """SQL expression for ``column`` with ``fields`` merged over its top-level keys.

    Lets an UPDATE merge JSON in place instead of read-modify-write, so keys
    another writer added in the meantime survive.
    """
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        current = func.coalesce(cast(column, postgresql.JSONB), literal_column("'{}'::jsonb"))
        return cast(current.op("||")(cast(fields, postgresql.JSONB)), JSON)
    if dialect == "sqlite":
        return func.json_patch(func.coalesce(column, literal_column("'{}'")), json.dumps(fields))
    raise RuntimeError(f"Unsupported database dialect: {dialect}")
