from __future__ import annotations
import os
from dataclasses import dataclass
from typing import List
from dotenv import load_dotenv

load_dotenv()

def _split_csv_ints(s: str) -> List[int]:
    out = []
    for part in (s or "").split(","):
        part = part.strip()
        if part:
            out.append(int(part))
    return out

def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}

@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_ids: List[int]
    database_url: str
    llm_api_key: str | None
    llm_model: str
    llm_timeout_s: float = 60.0
    image_storage_root: str = "./data/images"
    font_path: str | None = None
    ui_lang: str = "ru"  # ru/en
    clean_right_answers: bool = False

def load_settings() -> Settings:
    load_dotenv()
    bot_token = os.getenv("BOT_TOKEN")
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is required")

    admin_ids = _split_csv_ints(os.getenv("ADMIN_IDS") or os.getenv("ADMIN_ID", ""))
    if not admin_ids:
        raise RuntimeError("ADMIN_IDS is required (comma-separated Telegram user ids)")

    database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/app.db")
    llm_api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY") or None
    llm_model = os.getenv("LLM_MODEL", "gemini-2.5-flash").strip()
    try:
        llm_timeout_s = float(os.getenv("LLM_TIMEOUT_S", "60"))
    except ValueError as exc:
        raise RuntimeError("LLM_TIMEOUT_S must be a number of seconds") from exc
    if llm_timeout_s <= 0:
        raise RuntimeError("LLM_TIMEOUT_S must be positive")
    ui_lang = os.getenv("UI_LANG", "ru").strip().lower()
    if ui_lang not in {"ru", "en"}:
        raise RuntimeError("UI_LANG must be ru or en")

    return Settings(
        bot_token=bot_token,
        admin_ids=admin_ids,
        database_url=database_url,
        llm_api_key=llm_api_key,
        llm_model=llm_model,
        llm_timeout_s=llm_timeout_s,
        image_storage_root=os.getenv("IMAGE_STORAGE_ROOT", "./data/images"),
        font_path=os.getenv("FONT_PATH") or None,
        ui_lang=ui_lang,
        clean_right_answers=_env_bool("CLEAN_RIGHT_ANSWERS"),
    )
