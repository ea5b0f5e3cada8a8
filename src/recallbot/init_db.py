"""Create or upgrade the schema without starting the bot."""
import asyncio
import logging
from pathlib import Path

from sqlalchemy import text

from .config import Settings, load_settings
from .db import Base, ensure_sqlite_schema, make_engine
from . import models  # noqa: F401  registers the tables on Base

logger = logging.getLogger(__name__)


async def init_database(settings: Settings) -> None:
    sqlite = settings.database_url.startswith("sqlite")
    if sqlite:
        Path("./data").mkdir(parents=True, exist_ok=True)
    Path(settings.image_storage_root).mkdir(parents=True, exist_ok=True)

    engine = make_engine(settings)
    try:
        if sqlite:
            # Same upgrade path the bot runs at startup, so old databases gain new columns.
            await ensure_sqlite_schema(engine)
            async with engine.begin() as conn:
                await conn.execute(text("PRAGMA journal_mode=WAL;"))
                await conn.execute(text("PRAGMA synchronous=NORMAL;"))
        else:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
    logger.info("init_db_done sqlite=%s images=%s", sqlite, settings.image_storage_root)


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    await init_database(load_settings())


if __name__ == "__main__":
    asyncio.run(main())
