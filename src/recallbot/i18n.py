from __future__ import annotations

STRINGS: dict[str, dict[str, str]] = {
    "welcome": {
        "ru": "Добро пожаловать!\nТема по умолчанию: {study_key}.\n\nИспользуйте /ask чтобы начать тренировку, или выберите другую тему ниже:",
        "en": "Welcome!\nDefault topic: {study_key}.\n\nUse /ask to start practicing, or pick another topic below:",
    },
    "welcome_empty": {
        "ru": "Добро пожаловать! Темы не найдены.\nЕсли вы админ, используйте /study <тема> и отправьте текст для создания вопросов.",
        "en": "Welcome! No topics yet.\nIf you are an admin, use /study <topic> and send text to create questions.",
    },
    "trusted_help": {
        "ru": "\n\n🔑 Вы доверенный пользователь.\n• /study <тема> переключает или создает тему.\n• Отправляйте текст или заметки, чтобы добавить вопросы в текущую тему.\n• Управляйте вопросами через /view и /clean.",
        "en": "\n\n🔑 You are a trusted user.\n• /study <topic> switches or creates a topic.\n• Send text or notes to add questions to the current topic.\n• Manage questions with /view and /clean.",
    },
    "study_usage": {
        "ru": "Пожалуйста укажите тему. Использование: /study <тема>",
        "en": "Please name a topic. Usage: /study <topic>",
    },
    "study_set": {
        "ru": "Тема установлена: {study_key}. Отправьте мне текст/заметки для генерации вопросов!",
        "en": "Topic set: {study_key}. Send me text/notes to generate questions!",
    },
    "study_selected": {
        "ru": "✅ Тема установлена: {study_key}\n\nИспользуйте /ask чтобы начать тренировку!",
        "en": "✅ Topic set: {study_key}\n\nUse /ask to start practicing!",
    },
    "no_topic": {
        "ru": "Тема не выбрана. Используйте /study <тема>.",
        "en": "No topic selected. Use /study <topic>.",
    },
    "no_questions": {
        "ru": "Вопросов по теме '{study_key}' не найдено. Отправьте мне текст для генерации (если есть права)!",
        "en": "No questions for topic '{study_key}'. Send me text to generate some (if you have rights)!",
    },
    "render_failed": {
        "ru": "Ошибка при рендеринге вопроса.",
        "en": "Failed to render the question.",
    },
    "no_add_rights": {
        "ru": "У вас нет прав добавлять новые вопросы. Вы можете только учить существующие темы.",
        "en": "You may not add questions. You can only study existing topics.",
    },
    "no_view_rights": {
        "ru": "У вас нет прав просматривать список вопросов.",
        "en": "You may not view the question list.",
    },
    "admin_only": {
        "ru": "Эта команда доступна только администратору.",
        "en": "This command is for the administrator only.",
    },
    "llm_disabled": {
        "ru": "Генерация вопросов не настроена (нет ключа API).",
        "en": "Question generation is not configured (no API key).",
    },
    "analyzing": {
        "ru": "Анализирую текст для темы '{study_key}'... ⏳",
        "en": "Analyzing text for topic '{study_key}'... ⏳",
    },
    "generation_empty": {
        "ru": "Не удалось сгенерировать вопросы из этого текста. Попробуйте добавить больше деталей.",
        "en": "Could not generate questions from this text. Try adding more detail.",
    },
    "generation_saved": {
        "ru": "✅ Сохранено {count} новых вопросов для темы '{study_key}'. Используйте /ask для тренировки!",
        "en": "✅ Saved {count} new questions for topic '{study_key}'. Use /ask to practice!",
    },
    "generation_error": {
        "ru": "Ошибка генерации вопросов. Пожалуйста попробуйте снова.",
        "en": "Question generation failed. Please try again.",
    },
    "correct_toast": {"ru": "Правильно! 🎉", "en": "Correct! 🎉"},
    "wrong_toast": {"ru": "Неверно! Попробуйте еще раз. ❌", "en": "Wrong! Try again. ❌"},
    "correct_caption": {
        "ru": "✅ Правильно! (Ответ: {letter})\n\nРейтинг: {percent}%",
        "en": "✅ Correct! (Answer: {letter})\n\nRating: {percent}%",
    },
    "voted_caption": {
        "ru": "✅ Правильно!\n\nРейтинг: {percent}%\nВы проголосовали: {vote}",
        "en": "✅ Correct!\n\nRating: {percent}%\nYour vote: {vote}",
    },
    "vote_up_toast": {"ru": "Спасибо за лайк! 👍", "en": "Thanks for the like! 👍"},
    "vote_down_toast": {"ru": "Спасибо за отзыв. 👎", "en": "Thanks for the feedback. 👎"},
    "question_missing": {"ru": "Вопрос не найден.", "en": "Question not found."},
    "list_header": {
        "ru": "📋 Вопросы по теме '{study_key}' (Стр. {page}/{pages}):",
        "en": "📋 Questions for topic '{study_key}' (Page {page}/{pages}):",
    },
    "list_answer": {"ru": "Ответ", "en": "Answer"},
    "list_empty": {
        "ru": "В теме '{study_key}' пока нет вопросов.",
        "en": "Topic '{study_key}' has no questions yet.",
    },
    "prev_page": {"ru": "⬅️ Назад", "en": "⬅️ Back"},
    "next_page": {"ru": "Вперед ➡️", "en": "Next ➡️"},
    "deleted_toast": {"ru": "Вопрос удален.", "en": "Question deleted."},
    "delete_admin_only": {
        "ru": "Только администратор может удалять вопросы.",
        "en": "Only the administrator can delete questions.",
    },
    "clean_confirm": {
        "ru": "Вы уверены, что хотите удалить ВСЕ вопросы по теме '{study_key}'?",
        "en": "Delete ALL questions for topic '{study_key}'?",
    },
    "clean_yes": {"ru": "Да, удалить все", "en": "Yes, delete all"},
    "clean_no": {"ru": "Отмена", "en": "Cancel"},
    "clean_done_toast": {"ru": "Вопросы удалены.", "en": "Questions deleted."},
    "clean_done": {
        "ru": "🗑️ Все вопросы по теме '{study_key}' были удалены ({count}).",
        "en": "🗑️ All questions for topic '{study_key}' were deleted ({count}).",
    },
    "clean_cancelled_toast": {"ru": "Отменено.", "en": "Cancelled."},
    "clean_cancelled": {
        "ru": "Операция отменена. Вопросы по теме '{study_key}' сохранены.",
        "en": "Cancelled. Questions for topic '{study_key}' were kept.",
    },
    "trust_usage": {
        "ru": "Использование: /{command} <uid|@username>",
        "en": "Usage: /{command} <uid|@username>",
    },
    "trust_unknown": {
        "ru": "Неверный ID пользователя или неизвестное имя пользователя (пользователь должен сначала запустить бота).",
        "en": "Invalid user id or unknown username (the user must start the bot first).",
    },
    "trust_granted": {
        "ru": "Пользователь {user_id} теперь доверенный. ✅",
        "en": "User {user_id} is now trusted. ✅",
    },
    "trust_revoked": {
        "ru": "Пользователь {user_id} больше не доверенный. ❌",
        "en": "User {user_id} is no longer trusted. ❌",
    },
    "rename_usage": {
        "ru": "Использование: /rename <старая тема> | <новая тема>",
        "en": "Usage: /rename <old topic> | <new topic>",
    },
    "rename_done": {
        "ru": "Тема '{old}' переименована в '{new}' ({count} вопросов).",
        "en": "Topic '{old}' renamed to '{new}' ({count} questions).",
    },
    "reshuffle_started": {
        "ru": "🔄 Перемешиваю варианты ответов...",
        "en": "🔄 Reshuffling answer options...",
    },
    "reshuffle_busy": {
        "ru": "Перемешивание уже выполняется.",
        "en": "A reshuffle is already running.",
    },
    "reshuffle_done": {
        "ru": "✅ Перемешано {shuffled} из {total}. Пропущено: {skipped}. Ошибок рендеринга: {render_failed}.",
        "en": "✅ Reshuffled {shuffled} of {total}. Skipped: {skipped}. Render failures: {render_failed}.",
    },
}

def t(key: str, lang: str, **fmt: object) -> str:
    template = STRINGS.get(key, {}).get(lang, STRINGS.get(key, {}).get("en", key))
    return template.format(**fmt) if fmt else template
