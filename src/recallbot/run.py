import asyncio
import logging
import traceback
from pathlib import Path
from aiogram import Bot, Dispatcher
from .config import load_settings
from .db import ensure_sqlite_schema, make_engine, make_sessionmaker
from .debias import reshuffle_all
from .handlers import register_handlers
from .images import ImageStore
from .renderer import QuestionRenderer

async def _notify_admins(bot: Bot, admin_ids: list[int], message: str) -> None:
    chunk_size = 4000
    chunks = [message[i : i + chunk_size] for i in range(0, len(message), chunk_size)] or [message]
    for admin_id in admin_ids:
        for chunk in chunks:
            await bot.send_message(admin_id, chunk, parse_mode=None)

async def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()
    bot = Bot(settings.bot_token)
    try:
        if settings.database_url.startswith("sqlite"):
            Path("./data").mkdir(parents=True, exist_ok=True)
        engine = make_engine(settings)
        if settings.database_url.startswith("sqlite"):
            await ensure_sqlite_schema(engine)
        sessionmaker = make_sessionmaker(engine)
        renderer = QuestionRenderer(settings.font_path)
        image_store = ImageStore(settings.image_storage_root)

        if settings.clean_right_answers:
            await reshuffle_all(sessionmaker, renderer=renderer, image_store=image_store)

        dp = Dispatcher()
        register_handlers(
            dp,
            settings=settings,
            sessionmaker=sessionmaker,
            renderer=renderer,
            image_store=image_store,
        )

        await dp.start_polling(bot)
    except Exception:
        error_text = traceback.format_exc()
        logging.getLogger(__name__).exception("bot_run_failed")
        try:
            await _notify_admins(
                bot,
                settings.admin_ids,
                f"Bot error detected:\n\n{error_text}",
            )
        except Exception:
            logging.getLogger(__name__).exception("failed_to_notify_admins")
        raise
    finally:
        await bot.session.close()

def cli() -> None:
    asyncio.run(main())

if __name__ == "__main__":
    cli()
