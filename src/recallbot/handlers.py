from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable

from aiogram import Bot, Dispatcher, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import (
    BufferedInputFile, CallbackQuery, FSInputFile, InlineKeyboardMarkup, Message, TelegramObject,
)
from aiogram.utils.formatting import Bold, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from .config import Settings
from .debias import ReshuffleInProgress, reshuffle_all
from .generation import generate_questions
from .i18n import t
from .images import ImageStore
from .keyboards import (
    kb_answers, kb_clean_confirm, kb_question_list, kb_study_keys, kb_vote, kb_without_button,
)
from .ledger import UnknownQuestion, apply_vote, question_stats
from .llm import LLMClient
from .normalize import norm_study_key
from .questions import (
    all_study_keys, clear_questions, delete_question, list_questions, rename_study_key, save_candidates,
)
from .renderer import QuestionRenderer, option_label
from .selection import next_question
from .users import (
    get_study_key, is_trusted, remember_username, set_study_key, set_trusted, user_id_by_username,
)

logger = logging.getLogger(__name__)

# ---------------- helpers ----------------
def _build_llm(settings: Settings) -> LLMClient | None:
    if not settings.llm_api_key:
        return None
    return LLMClient(settings.llm_api_key, model=settings.llm_model, timeout_s=settings.llm_timeout_s)

def _parse_int_parts(data: str, expected: int) -> list[int] | None:
    parts = data.split(":")[1:]
    if len(parts) != expected:
        return None
    try:
        return [int(p) for p in parts]
    except ValueError:
        return None

async def _safe_edit(action: Awaitable[Any], what: str) -> None:
    try:
        await action
    except TelegramBadRequest as exc:
        logger.warning("telegram_edit_failed what=%s err=%s", what, exc)

async def send_question(
    bot: Bot,
    chat_id: int,
    user_id: int,
    *,
    sessionmaker: async_sessionmaker[AsyncSession],
    renderer: QuestionRenderer,
    image_store: ImageStore,
    ui_lang: str,
) -> None:
    async with sessionmaker() as s:
        study_key = await get_study_key(s, user_id)
        if not study_key:
            await bot.send_message(chat_id, t("no_topic", ui_lang))
            return
        question = await next_question(s, study_key=study_key, user_id=user_id)
    if question is None:
        await bot.send_message(chat_id, t("no_questions", ui_lang, study_key=study_key))
        return

    options = question.options
    if image_store.exists(question.id):
        photo = FSInputFile(image_store.path_for(question.id))
    else:
        try:
            image = await asyncio.to_thread(renderer.render, question.question_text, options)
            await asyncio.to_thread(image_store.save, question.id, image)
        except Exception:
            logger.exception("render_failed question_id=%s", question.id)
            await bot.send_message(chat_id, t("render_failed", ui_lang))
            return
        photo = BufferedInputFile(image, filename="question.png")

    await bot.send_photo(
        chat_id,
        photo=photo,
        reply_markup=kb_answers(question.id, question.correct_index, len(options)),
    )

def _question_list_kwargs(page, study_key: str, ui_lang: str) -> dict:
    parts: list[Any] = [
        Bold(t("list_header", ui_lang, study_key=study_key, page=page.page, pages=page.total_pages)),
        "\n\n",
    ]
    for q in page.items:
        options = q.options
        correct = options[q.correct_index] if 0 <= q.correct_index < len(options) else "?"
        parts.extend([
            "🔹 ", Bold(str(q.id)), f": {q.question_text}\n",
            "✅ ", Bold(t("list_answer", ui_lang)),
            f": {correct} (👍{q.approve_count}/👎{q.reject_count})\n\n",
        ])
    return Text(*parts).as_kwargs()

async def _send_question_list(
    message: Message,
    s: AsyncSession,
    study_key: str,
    page_num: int,
    ui_lang: str,
    *,
    edit: bool = False,
) -> None:
    page = await list_questions(s, study_key, page_num)
    while not page.items and page.page > 1:
        page = await list_questions(s, study_key, page.page - 1)

    if not page.items:
        text = t("list_empty", ui_lang, study_key=study_key)
        if edit:
            await _safe_edit(message.edit_text(text), "question_list_empty")
        else:
            await message.answer(text)
        return

    kwargs = _question_list_kwargs(page, study_key, ui_lang)
    markup = kb_question_list(page.items, page.page, page.total_pages, ui_lang)
    if edit:
        await _safe_edit(message.edit_text(**kwargs, reply_markup=markup), "question_list")
    else:
        await message.answer(**kwargs, reply_markup=markup)

def register_handlers(
    dp: Dispatcher,
    *,
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    llm: LLMClient | None = None,
    renderer: QuestionRenderer | None = None,
    image_store: ImageStore | None = None,
):
    llm = llm if llm is not None else _build_llm(settings)
    renderer = renderer or QuestionRenderer(settings.font_path)
    image_store = image_store or ImageStore(settings.image_storage_root)
    lang = settings.ui_lang

    async def remember_user(
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        from_user = getattr(event, "from_user", None)
        if from_user is not None and from_user.username:
            async with sessionmaker() as s:
                await remember_username(s, from_user.id, from_user.username)
        return await handler(event, data)

    dp.message.outer_middleware(remember_user)
    dp.callback_query.outer_middleware(remember_user)

    def is_admin(user_id: int) -> bool:
        return user_id in settings.admin_ids

    async def may_edit(s: AsyncSession, user_id: int) -> bool:
        return is_admin(user_id) or await is_trusted(s, user_id)

    async def ask(bot: Bot, chat_id: int, user_id: int) -> None:
        await send_question(
            bot,
            chat_id,
            user_id,
            sessionmaker=sessionmaker,
            renderer=renderer,
            image_store=image_store,
            ui_lang=lang,
        )

    async def resolve_target(s: AsyncSession, raw: str | None) -> int | None:
        target = (raw or "").strip()
        if not target:
            return None
        if target.startswith("@"):
            return await user_id_by_username(s, target)
        try:
            return int(target)
        except ValueError:
            return None

    # ---------- admin ----------
    async def set_trust(m: Message, command: CommandObject, trusted: bool) -> None:
        if not is_admin(m.from_user.id):
            return
        if not (command.args or "").strip():
            await m.answer(t("trust_usage", lang, command=command.command))
            return
        async with sessionmaker() as s:
            target_id = await resolve_target(s, command.args)
            if not target_id:
                await m.answer(t("trust_unknown", lang))
                return
            await set_trusted(s, target_id, trusted)
        logger.info("trust_changed admin_id=%s user_id=%s trusted=%s", m.from_user.id, target_id, trusted)
        await m.answer(t("trust_granted" if trusted else "trust_revoked", lang, user_id=target_id))

    @dp.message(Command("add"))
    async def on_add(m: Message, command: CommandObject):
        await set_trust(m, command, True)

    @dp.message(Command("remove"))
    async def on_remove(m: Message, command: CommandObject):
        await set_trust(m, command, False)

    @dp.message(Command("rename"))
    async def on_rename(m: Message, command: CommandObject):
        if not is_admin(m.from_user.id):
            await m.answer(t("admin_only", lang))
            return
        old, sep, new = (command.args or "").partition("|")
        old, new = norm_study_key(old), norm_study_key(new)
        if not sep or not old or not new:
            await m.answer(t("rename_usage", lang))
            return
        async with sessionmaker() as s:
            count = await rename_study_key(s, old, new)
        await m.answer(t("rename_done", lang, old=old, new=new, count=count))

    @dp.message(Command("reshuffle"))
    async def on_reshuffle(m: Message):
        if not is_admin(m.from_user.id):
            await m.answer(t("admin_only", lang))
            return
        await m.answer(t("reshuffle_started", lang))
        try:
            report = await reshuffle_all(sessionmaker, renderer=renderer, image_store=image_store)
        except ReshuffleInProgress:
            await m.answer(t("reshuffle_busy", lang))
            return
        await m.answer(
            t(
                "reshuffle_done",
                lang,
                shuffled=report.shuffled,
                total=report.total,
                skipped=len(report.skipped),
                render_failed=len(report.render_failed),
            )
        )

    @dp.message(Command("clean"))
    async def on_clean(m: Message):
        if not is_admin(m.from_user.id):
            await m.answer(t("admin_only", lang))
            return
        async with sessionmaker() as s:
            study_key = await get_study_key(s, m.from_user.id)
        if not study_key:
            await m.answer(t("no_topic", lang))
            return
        await m.answer(
            t("clean_confirm", lang, study_key=study_key),
            reply_markup=kb_clean_confirm(study_key, lang),
        )

    # ---------- topics ----------
    @dp.message(CommandStart())
    async def on_start(m: Message):
        user_id = m.from_user.id
        async with sessionmaker() as s:
            keys = await all_study_keys(s)
            current = await get_study_key(s, user_id)
            if keys and current not in keys:
                current = keys[0]
                await set_study_key(s, user_id, current)
            trusted = await may_edit(s, user_id)
        text = t("welcome", lang, study_key=current) if keys else t("welcome_empty", lang)
        if trusted:
            text += t("trusted_help", lang)
        await m.answer(text, reply_markup=kb_study_keys(keys))

    @dp.message(Command("study"))
    async def on_study(m: Message, command: CommandObject):
        key = norm_study_key(command.args or "")
        if not key:
            await m.answer(t("study_usage", lang))
            return
        async with sessionmaker() as s:
            await set_study_key(s, m.from_user.id, key)
        await m.answer(t("study_set", lang, study_key=key))

    @dp.callback_query(F.data.startswith("study_select:"))
    async def on_study_select(c: CallbackQuery):
        key = c.data.split(":", 1)[1]
        if not key:
            await c.answer()
            return
        async with sessionmaker() as s:
            await set_study_key(s, c.from_user.id, key)
        await c.answer(key)
        if isinstance(c.message, Message):
            await _safe_edit(c.message.edit_text(t("study_selected", lang, study_key=key)), "study_select")

    # ---------- quiz ----------
    @dp.message(Command("ask"))
    async def on_ask(m: Message):
        await ask(m.bot, m.chat.id, m.from_user.id)

    @dp.callback_query(F.data.startswith("q:"))
    async def on_answer(c: CallbackQuery):
        parsed = _parse_int_parts(c.data, 3)
        if not parsed or not isinstance(c.message, Message):
            await c.answer()
            return
        question_id, correct_index, chosen_index = parsed
        message = c.message

        if chosen_index != correct_index:
            await c.answer(t("wrong_toast", lang))
            await _safe_edit(
                message.edit_reply_markup(reply_markup=kb_without_button(message.reply_markup, c.data)),
                "answer_wrong",
            )
            return

        await c.answer(t("correct_toast", lang))
        async with sessionmaker() as s:
            stats = await question_stats(s, question_id)
        if stats is not None:
            await _safe_edit(
                message.edit_caption(
                    caption=t(
                        "correct_caption",
                        lang,
                        letter=option_label(correct_index),
                        percent=stats.percent,
                    ),
                    reply_markup=kb_vote(question_id, stats.approve_count, stats.reject_count),
                ),
                "answer_correct",
            )
        await ask(c.bot, message.chat.id, c.from_user.id)

    @dp.callback_query(F.data.startswith("vote:"))
    async def on_vote(c: CallbackQuery):
        parts = c.data.split(":")
        if len(parts) != 3 or parts[2] not in ("up", "down") or not parts[1].isdigit():
            await c.answer()
            return
        question_id, approve = int(parts[1]), parts[2] == "up"
        async with sessionmaker() as s:
            try:
                await apply_vote(s, user_id=c.from_user.id, question_id=question_id, approve=approve)
            except UnknownQuestion:
                await c.answer(t("question_missing", lang))
                return
            stats = await question_stats(s, question_id)
        await c.answer(t("vote_up_toast" if approve else "vote_down_toast", lang))
        if isinstance(c.message, Message) and stats is not None:
            await _safe_edit(
                c.message.edit_caption(
                    caption=t("voted_caption", lang, percent=stats.percent, vote="👍" if approve else "👎"),
                    reply_markup=InlineKeyboardMarkup(inline_keyboard=[]),
                ),
                "vote",
            )

    # ---------- question list ----------
    @dp.message(Command("view"))
    async def on_view(m: Message):
        async with sessionmaker() as s:
            if not await may_edit(s, m.from_user.id):
                await m.answer(t("no_view_rights", lang))
                return
            study_key = await get_study_key(s, m.from_user.id)
            if not study_key:
                await m.answer(t("no_topic", lang))
                return
            await _send_question_list(m, s, study_key, 1, lang)

    @dp.callback_query(F.data.startswith("page:"))
    async def on_page(c: CallbackQuery):
        parsed = _parse_int_parts(c.data, 1)
        if not parsed or not isinstance(c.message, Message):
            await c.answer()
            return
        async with sessionmaker() as s:
            study_key = await get_study_key(s, c.from_user.id)
            if not study_key or not await may_edit(s, c.from_user.id):
                await c.answer()
                return
            await _send_question_list(c.message, s, study_key, parsed[0], lang, edit=True)
        await c.answer()

    @dp.callback_query(F.data.startswith("del:"))
    async def on_delete(c: CallbackQuery):
        if not is_admin(c.from_user.id):
            await c.answer(t("delete_admin_only", lang), show_alert=True)
            return
        parsed = _parse_int_parts(c.data, 2)
        if not parsed:
            await c.answer()
            return
        question_id, page_num = parsed
        async with sessionmaker() as s:
            await delete_question(s, question_id)
            image_store.delete(question_id)
            await c.answer(t("deleted_toast", lang))
            study_key = await get_study_key(s, c.from_user.id)
            if study_key and isinstance(c.message, Message):
                await _send_question_list(c.message, s, study_key, page_num, lang, edit=True)

    @dp.callback_query(F.data.startswith("clean:"))
    async def on_clean_choice(c: CallbackQuery):
        _, action, *rest = c.data.split(":", 2)
        if action == "confirm" and not is_admin(c.from_user.id):
            await c.answer(t("admin_only", lang), show_alert=True)
            return
        async with sessionmaker() as s:
            study_key = rest[0] if rest else await get_study_key(s, c.from_user.id)
            if not study_key:
                await c.answer()
                return
            if action == "confirm":
                ids = await clear_questions(s, study_key)
                for question_id in ids:
                    image_store.delete(question_id)
                await c.answer(t("clean_done_toast", lang))
                text = t("clean_done", lang, study_key=study_key, count=len(ids))
            else:
                await c.answer(t("clean_cancelled_toast", lang))
                text = t("clean_cancelled", lang, study_key=study_key)
        if isinstance(c.message, Message):
            await _safe_edit(c.message.edit_text(text), "clean")

    # ---------- text → questions ----------
    @dp.message(F.text)
    async def on_text(m: Message):
        if m.text.startswith("/"):
            return
        user_id = m.from_user.id
        async with sessionmaker() as s:
            if not await may_edit(s, user_id):
                await m.answer(t("no_add_rights", lang))
                return
            study_key = await get_study_key(s, user_id)
        if not study_key:
            await m.answer(t("no_topic", lang))
            return
        if llm is None:
            await m.answer(t("llm_disabled", lang))
            return

        status = await m.answer(t("analyzing", lang, study_key=study_key))
        candidates = await generate_questions(llm, m.text, study_key)
        saved = []
        if candidates:
            try:
                async with sessionmaker() as s:
                    saved = await save_candidates(s, study_key, candidates)
            except SQLAlchemyError:
                logger.exception("questions_save_failed user_id=%s study_key=%s", user_id, study_key)
                await _safe_edit(status.delete(), "status_delete")
                await m.answer(t("generation_error", lang))
                return

        for q in saved:
            try:
                image = await asyncio.to_thread(renderer.render, q.question_text, q.options)
                await asyncio.to_thread(image_store.save, q.id, image)
            except Exception:
                logger.exception("render_failed question_id=%s", q.id)

        await _safe_edit(status.delete(), "status_delete")
        if not saved:
            await m.answer(t("generation_empty", lang))
            return
        await m.answer(t("generation_saved", lang, count=len(saved), study_key=study_key))
