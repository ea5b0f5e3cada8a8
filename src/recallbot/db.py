from __future__ import annotations
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from .config import Settings

class Base(DeclarativeBase):
    pass

def make_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url, echo=False, future=True)

def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

def upsert_insert(s: AsyncSession, model):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    if s.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)

async def ensure_sqlite_schema(engine: AsyncEngine) -> None:
    # Databases written by the first bot release use options/thumbs_up/thumbs_down.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        result = await conn.execute(text("PRAGMA table_info(questions);"))
        columns = {row[1] for row in result.fetchall()}
        if "options_json" not in columns:
            await conn.execute(text("ALTER TABLE questions ADD COLUMN options_json TEXT;"))
            if "options" in columns:
                await conn.execute(text("UPDATE questions SET options_json=options;"))
        if "approve_count" not in columns:
            await conn.execute(
                text("ALTER TABLE questions ADD COLUMN approve_count INTEGER DEFAULT 0;")
            )
            if "thumbs_up" in columns:
                await conn.execute(text("UPDATE questions SET approve_count=thumbs_up;"))
        if "reject_count" not in columns:
            await conn.execute(
                text("ALTER TABLE questions ADD COLUMN reject_count INTEGER DEFAULT 0;")
            )
            if "thumbs_down" in columns:
                await conn.execute(text("UPDATE questions SET reject_count=thumbs_down;"))
        result = await conn.execute(text("PRAGMA table_info(users);"))
        columns = {row[1] for row in result.fetchall()}
        if "is_trusted" not in columns:
            await conn.execute(
                text("ALTER TABLE users ADD COLUMN is_trusted BOOLEAN DEFAULT 0;")
            )
        await conn.execute(
            text(
                "UPDATE questions SET approve_count=0 "
                "WHERE approve_count IS NULL;"
            )
        )
        await conn.execute(
            text(
                "UPDATE questions SET reject_count=0 "
                "WHERE reject_count IS NULL;"
            )
        )
        # Legacy rows carry epoch integers (seconds for questions, ms for progress).
        await conn.execute(
            text(
                "UPDATE questions SET created_at=datetime(created_at, 'unixepoch') "
                "WHERE typeof(created_at)='integer';"
            )
        )
        await conn.execute(
            text(
                "UPDATE user_progress "
                "SET last_used_at=strftime('%Y-%m-%d %H:%M:%S', last_used_at / 1000, 'unixepoch') "
                "|| printf('.%06d', (last_used_at % 1000) * 1000) "
                "WHERE typeof(last_used_at)='integer';"
            )
        )
