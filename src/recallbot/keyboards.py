from __future__ import annotations
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder
from .i18n import t
from .models import Question
from .renderer import option_label

CALLBACK_DATA_LIMIT = 64  # bytes, enforced by Telegram

def fits_callback(data: str) -> bool:
    return len(data.encode("utf-8")) <= CALLBACK_DATA_LIMIT

def kb_answers(question_id: int, correct_index: int, option_count: int) -> InlineKeyboardMarkup:
    # payload: q:<question_id>:<correct_index>:<chosen_index>
    b = InlineKeyboardBuilder()
    for idx in range(option_count):
        b.button(text=option_label(idx), callback_data=f"q:{question_id}:{correct_index}:{idx}")
    b.adjust(4)
    return b.as_markup()

def kb_without_button(markup: InlineKeyboardMarkup | None, callback_data: str) -> InlineKeyboardMarkup:
    rows = []
    for row in (markup.inline_keyboard if markup else []):
        kept = [btn for btn in row if btn.callback_data != callback_data]
        if kept:
            rows.append(kept)
    return InlineKeyboardMarkup(inline_keyboard=rows)

def kb_vote(question_id: int, approve_count: int, reject_count: int) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text=f"👍 ({approve_count})", callback_data=f"vote:{question_id}:up")
    b.button(text=f"👎 ({reject_count})", callback_data=f"vote:{question_id}:down")
    b.adjust(2)
    return b.as_markup()

def kb_study_keys(keys: list[str]) -> InlineKeyboardMarkup | None:
    b = InlineKeyboardBuilder()
    count = 0
    for key in keys:
        data = f"study_select:{key}"
        if not fits_callback(data):
            continue
        b.button(text=key, callback_data=data)
        count += 1
    if not count:
        return None
    b.adjust(1)
    return b.as_markup()

def kb_question_list(questions: list[Question], page: int, total_pages: int, ui_lang: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    for q in questions:
        b.button(text=f"🗑 {q.id}", callback_data=f"del:{q.id}:{page}")
    sizes = [4] * (len(questions) // 4)
    if len(questions) % 4:
        sizes.append(len(questions) % 4)
    nav = 0
    if page > 1:
        b.button(text=t("prev_page", ui_lang), callback_data=f"page:{page - 1}")
        nav += 1
    if page < total_pages:
        b.button(text=t("next_page", ui_lang), callback_data=f"page:{page + 1}")
        nav += 1
    if nav:
        sizes.append(nav)
    if sizes:
        b.adjust(*sizes)
    return b.as_markup()

def kb_clean_confirm(study_key: str, ui_lang: str) -> InlineKeyboardMarkup:
    # Falls back to the clicking user's current topic when the key does not fit.
    confirm = f"clean:confirm:{study_key}"
    if not fits_callback(confirm):
        confirm = "clean:confirm"
    b = InlineKeyboardBuilder()
    b.button(text=t("clean_yes", ui_lang), callback_data=confirm)
    b.button(text=t("clean_no", ui_lang), callback_data="clean:cancel")
    b.adjust(2)
    return b.as_markup()
